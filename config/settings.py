#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    API_BASE_URL,
    BATCH_CHUNK_SIZE,
    BATCH_MAX_UNITS,
    BROADCASTER_QUEUE_SIZE,
    POLL_FAILURE_THRESHOLD,
    POLL_INTERVAL_MS,
    REGISTRY_TTL_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    RESUME_SLOT_FILE,
    RESUME_TTL_SECONDS,
    SIMULATED_UNIT_SECONDS,
    SSE_PING_SECONDS,
    SUBMIT_RATE_LIMIT,
)


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields from .env that aren't defined in model
    )

    # ========== Server ==========
    api_base_url: str = API_BASE_URL
    registry_ttl_seconds: int = REGISTRY_TTL_SECONDS
    broadcaster_queue_size: int = BROADCASTER_QUEUE_SIZE
    sse_ping_seconds: int = SSE_PING_SECONDS
    submit_rate_limit: str = SUBMIT_RATE_LIMIT
    simulated_unit_seconds: float = SIMULATED_UNIT_SECONDS  # default worker only

    # ========== Batch Limits ==========
    max_units_per_batch: int = BATCH_MAX_UNITS
    chunk_size: int = BATCH_CHUNK_SIZE

    # ========== Client Observers ==========
    push_enabled: bool = True  # Poll is used only when push is off or unavailable
    poll_interval_ms: int = POLL_INTERVAL_MS
    poll_failure_threshold: int = POLL_FAILURE_THRESHOLD
    request_timeout_seconds: float = REQUEST_TIMEOUT_SECONDS

    # ========== Resume ==========
    resume_ttl_seconds: int = RESUME_TTL_SECONDS
    resume_slot_file: str = RESUME_SLOT_FILE

    # ========== Directories ==========
    data_dir: Path = BASE_DIR / "data"
    state_dir: Path = BASE_DIR / "data" / "state"
    logs_dir: Path = BASE_DIR / "data" / "logs"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Create directories
        for dir_path in [
            self.data_dir,
            self.state_dir,
            self.logs_dir,
        ]:
            dir_path.mkdir(exist_ok=True, parents=True)

    @property
    def resume_slot_path(self) -> Path:
        """Location of the single persisted resume slot."""
        return self.state_dir / self.resume_slot_file

    def print_config(self):
        """Print configuration summary"""
        print("\n" + "="*70)
        print("CONFIGURATION")
        print("="*70)
        print(f"API Base URL:    {self.api_base_url}")
        print(f"Push Enabled:    {self.push_enabled}")
        print(f"Poll Interval:   {self.poll_interval_ms} ms")
        print(f"Poll Threshold:  {self.poll_failure_threshold} failures")
        print(f"Resume TTL:      {self.resume_ttl_seconds} s")
        print(f"Resume Slot:     {self.resume_slot_path}")
        print("="*70 + "\n")


# Global settings instance
settings = Settings()
