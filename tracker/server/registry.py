"""
Job Registry - authoritative in-memory state of every batch, keyed by batch id.

Only the generation pipeline writes here (through ProgressReporter); the
broadcaster and the snapshot endpoint read.
"""

import threading
import time
import uuid
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from config.constants import BATCH_ID_PREFIX, REGISTRY_TTL_SECONDS
from config.logging_config import get_logger
from tracker.errors import BatchNotFoundError, PhaseRegressionError
from tracker.phases import Phase, can_transition, parse_phase
from tracker.server.models import BatchJob

logger = get_logger(__name__)

# Fields the pipeline may overwrite directly through update()
_MUTABLE_FIELDS = {
    "completed_units",
    "failed_units",
    "current_chunk",
    "total_chunks",
    "images_generated",
    "estimated_completion_at",
    "current_unit_label",
}


class JobRegistry:
    """
    Thread-safe registry of batch jobs.

    Invariants enforced here:
    - phases only move forward in canonical order
    - Complete and Failed are final and mutually exclusive
    - errors and warnings keep insertion order

    Terminal jobs are archived (dropped) ttl_seconds after they finish.
    """

    def __init__(self, ttl_seconds: int = REGISTRY_TTL_SECONDS):
        self._ttl_seconds = max(1, int(ttl_seconds))
        self._jobs: Dict[str, BatchJob] = {}
        self._lock = threading.RLock()

    def create(self, total_units: int, total_chunks: int = 0) -> BatchJob:
        """Register a new batch in the Starting phase."""
        job = BatchJob(
            id=f"{BATCH_ID_PREFIX}{uuid.uuid4().hex[:16]}",
            total_units=int(total_units),
            total_chunks=int(total_chunks),
        )
        with self._lock:
            self._purge_expired_locked()
            self._jobs[job.id] = job
        logger.info(f"Batch created: {job.id} ({job.total_units} units)")
        return job

    def get(self, batch_id: str) -> BatchJob:
        """Return a copy of the job so readers never see half-applied updates."""
        with self._lock:
            job = self._jobs.get(batch_id)
            if job is None:
                raise BatchNotFoundError(batch_id)
            return self._copy(job)

    def exists(self, batch_id: str) -> bool:
        with self._lock:
            return batch_id in self._jobs

    def snapshot(self, batch_id: str) -> Dict[str, Any]:
        """Progress-shaped payload for batch_id."""
        with self._lock:
            job = self._jobs.get(batch_id)
            if job is None:
                raise BatchNotFoundError(batch_id)
            return job.to_snapshot()

    def update(
        self,
        batch_id: str,
        phase: Optional[Any] = None,
        errors: Iterable[str] = (),
        warnings: Iterable[str] = (),
        per_agent_status: Optional[Dict[str, str]] = None,
        **changes: Any,
    ) -> BatchJob:
        """
        Apply a non-terminal update.

        Args:
            batch_id: Batch to update
            phase: New phase (canonical or legacy name); must not regress
            errors: Error strings to append
            warnings: Warning strings to append
            per_agent_status: Agent statuses to merge
            **changes: Counter and label fields to overwrite

        Returns:
            Copy of the updated job

        Raises:
            BatchNotFoundError: Unknown batch id
            PhaseRegressionError: Job is terminal or phase would move backwards
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported batch fields: {sorted(unknown)}")

        with self._lock:
            job = self._require(batch_id)
            if job.is_terminal:
                raise PhaseRegressionError(
                    f"Batch {batch_id} is already {job.phase.value}; updates are closed"
                )

            if phase is not None:
                new_phase = parse_phase(phase)
                if new_phase.is_terminal:
                    raise PhaseRegressionError(
                        "Terminal phases are set through complete() or fail()"
                    )
                if not can_transition(job.phase, new_phase):
                    raise PhaseRegressionError(
                        f"Batch {batch_id}: {job.phase.value} -> {new_phase.value} goes backwards"
                    )
                if new_phase != job.phase:
                    logger.info(f"Batch {batch_id}: {job.phase.value} → {new_phase.value}")
                job.phase = new_phase

            for key, value in changes.items():
                setattr(job, key, value)
            if per_agent_status:
                job.per_agent_status.update(per_agent_status)
            job.errors.extend(str(e) for e in errors)
            job.warnings.extend(str(w) for w in warnings)
            return self._copy(job)

    def complete(self, batch_id: str, metrics: Optional[Dict[str, Any]] = None) -> BatchJob:
        """Close the batch successfully (possibly with failed units)."""
        with self._lock:
            job = self._close(batch_id, Phase.COMPLETE)
            job.metrics = dict(metrics or {})
            logger.info(
                f"Batch complete: {batch_id} "
                f"({job.completed_units} ok, {job.failed_units} failed)"
            )
            return self._copy(job)

    def fail(self, batch_id: str, error: str) -> BatchJob:
        """Close the batch with a business failure."""
        with self._lock:
            job = self._close(batch_id, Phase.FAILED)
            job.failure_reason = str(error)
            if not job.errors or job.errors[-1] != job.failure_reason:
                job.errors.append(job.failure_reason)
            logger.error(f"Batch failed: {batch_id} - {error}")
            return self._copy(job)

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Archive terminal jobs older than the TTL. Returns how many were dropped."""
        with self._lock:
            return self._purge_expired_locked(now)

    def _close(self, batch_id: str, phase: Phase) -> BatchJob:
        job = self._require(batch_id)
        if job.is_terminal:
            raise PhaseRegressionError(
                f"Batch {batch_id} already finished as {job.phase.value}"
            )
        job.phase = phase
        job.finished_at = time.time()
        job.estimated_completion_at = None
        job.current_unit_label = None
        return job

    def _require(self, batch_id: str) -> BatchJob:
        job = self._jobs.get(batch_id)
        if job is None:
            raise BatchNotFoundError(batch_id)
        return job

    def _purge_expired_locked(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        expired = [
            batch_id for batch_id, job in self._jobs.items()
            if job.is_terminal and job.finished_at is not None
            and now - job.finished_at >= self._ttl_seconds
        ]
        for batch_id in expired:
            del self._jobs[batch_id]
        if expired:
            logger.debug(f"Archived {len(expired)} finished batches")
        return len(expired)

    @staticmethod
    def _copy(job: BatchJob) -> BatchJob:
        return replace(
            job,
            per_agent_status=dict(job.per_agent_status),
            errors=list(job.errors),
            warnings=list(job.warnings),
            metrics=dict(job.metrics),
        )
