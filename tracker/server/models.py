"""
Server-side batch job state.

A BatchJob is owned by the generation pipeline; everything else reads
snapshots of it.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tracker.phases import Phase
from tracker.progress import percentage


@dataclass
class BatchRequest:
    """What a client asks the pipeline to produce."""
    count: int
    chunk_size: Optional[int] = None
    natural_language_prompt: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchJob:
    """Authoritative state of one submitted batch."""

    # Identification
    id: str
    total_units: int

    # Counters
    completed_units: int = 0
    failed_units: int = 0
    current_chunk: int = 0
    total_chunks: int = 0
    images_generated: int = 0

    # Lifecycle
    phase: Phase = Phase.STARTING
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    estimated_completion_at: Optional[float] = None
    current_unit_label: Optional[str] = None

    # Sub-agent status (concept, validator, artist, storage)
    per_agent_status: Dict[str, str] = field(default_factory=dict)

    # Diagnostics, insertion-ordered
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    # Terminal details
    failure_reason: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def percentage(self) -> float:
        return percentage(self.completed_units, self.failed_units, self.total_units)

    def to_snapshot(self) -> Dict[str, Any]:
        """Progress-shaped payload used by both the stream and the snapshot endpoint."""
        return {
            "batch_id": self.id,
            "phase": self.phase.value,
            "completed": self.completed_units,
            "failed": self.failed_units,
            "total": self.total_units,
            "percentage": round(self.percentage, 2),
            "current_unit_label": self.current_unit_label,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "estimated_completion_at": self.estimated_completion_at,
            "per_agent_status": dict(self.per_agent_status),
            "current_chunk": self.current_chunk,
            "total_chunks": self.total_chunks,
            "images_generated": self.images_generated,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "warning": self.warnings[-1] if self.warnings else None,
            "error": self.failure_reason,
            "metrics": dict(self.metrics) if self.is_terminal else None,
        }
