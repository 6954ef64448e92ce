"""
Request/response models for the batch API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BatchSubmitRequest(BaseModel):
    """Body of POST /api/batches. Range checks happen in BatchService (400, not 422)."""
    count: int = Field(..., description="Number of recipes to generate")
    chunk_size: Optional[int] = Field(None, description="Units generated per chunk")
    natural_language_prompt: Optional[str] = Field(None, description="Free-form generation prompt")
    options: Dict[str, Any] = Field(default_factory=dict, description="Pipeline options")


class BatchSubmitResponse(BaseModel):
    batch_id: str
    total_units: int
    started: bool


class BatchSnapshotResponse(BaseModel):
    """Progress-shaped snapshot, same keys as the stream's progress events."""
    batch_id: str
    phase: str
    completed: int
    failed: int
    total: int
    percentage: float
    current_unit_label: Optional[str] = None
    started_at: float
    finished_at: Optional[float] = None
    estimated_completion_at: Optional[float] = None
    per_agent_status: Dict[str, str] = Field(default_factory=dict)
    current_chunk: int = 0
    total_chunks: int = 0
    images_generated: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    warning: Optional[str] = None
    error: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    active_batches: int
    tracked_batches: int
