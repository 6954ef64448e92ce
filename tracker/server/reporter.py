"""
Progress reporting for the generation pipeline.

The pipeline never touches the registry or broadcaster directly: it calls a
ProgressReporter, which writes the registry and publishes the new state.
"""

from typing import Any, Callable, Dict, List, Optional

from config.constants import AGENT_FAILED, AGENT_WORKING
from config.logging_config import get_logger
from tracker.phases import Phase
from tracker.progress import estimate_completion
from tracker.server.broadcaster import EventBroadcaster
from tracker.server.registry import JobRegistry

logger = get_logger(__name__)


# Type alias for progress callbacks: (percentage 0-100, message, snapshot)
ProgressCallback = Callable[[float, str, Dict[str, Any]], None]


class ProgressReporter:
    """
    Reports phase and counter updates for one batch.

    Usage:
        reporter = ProgressReporter(registry, broadcaster, batch_id)
        reporter.add_callback(log_callback)

        reporter.start_phase(Phase.GENERATING)
        for unit in units:
            reporter.unit_started(unit.name)
            # ... do work ...
            reporter.unit_completed()

        reporter.complete({"images": 10})
    """

    def __init__(
        self,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        batch_id: str,
    ):
        """
        Initialize progress reporter.

        Args:
            registry: Job registry holding the batch
            broadcaster: Broadcaster notified after every write
            batch_id: Batch being reported on
        """
        self.registry = registry
        self.broadcaster = broadcaster
        self.batch_id = batch_id
        self._callbacks: List[ProgressCallback] = []

    def add_callback(self, callback: ProgressCallback):
        """Add progress callback."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: ProgressCallback):
        """Remove progress callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def start_phase(self, phase: Phase):
        """Move the batch into a new phase."""
        self._apply(f"Starting {Phase(phase).value}...", phase=phase)

    def unit_started(self, label: str):
        """Record which unit is being worked on."""
        self._apply(label, current_unit_label=label)

    def unit_completed(self, label: Optional[str] = None):
        """Count one more unit as completed."""
        job = self.registry.get(self.batch_id)
        completed = job.completed_units + 1
        self._apply(
            f"Completed {label or 'unit'}",
            completed_units=completed,
            estimated_completion_at=self._estimate(job, completed + job.failed_units),
        )

    def unit_failed(self, label: str, error: str):
        """Count one more unit as failed and record why."""
        job = self.registry.get(self.batch_id)
        failed = job.failed_units + 1
        self._apply(
            f"Failed {label}: {error}",
            failed_units=failed,
            estimated_completion_at=self._estimate(job, job.completed_units + failed),
            errors=[error],
        )

    def warn(self, message: str):
        """Record a non-fatal warning."""
        self._apply(message, warnings=[message])

    def set_agent_status(self, agent: str, status: str):
        """Update one named sub-agent's status."""
        self._apply(f"{agent}: {status}", per_agent_status={agent: status})

    def set_chunk(self, current: int, total: int):
        """Record chunk position within the batch."""
        self._apply(f"Chunk {current}/{total}", current_chunk=current, total_chunks=total)

    def image_generated(self):
        """Count one generated image."""
        job = self.registry.get(self.batch_id)
        self._apply("Image generated", images_generated=job.images_generated + 1)

    def complete(self, metrics: Optional[Dict[str, Any]] = None):
        """Finish the batch. Failed units do not turn this into a failure."""
        self.registry.complete(self.batch_id, metrics)
        self._publish("Completed")

    def fail(self, error: str):
        """Finish the batch with a business failure. Agents still working are marked failed."""
        job = self.registry.get(self.batch_id)
        stuck = {agent: AGENT_FAILED for agent, status in job.per_agent_status.items() if status == AGENT_WORKING}
        if stuck and not job.is_terminal:
            self.registry.update(self.batch_id, per_agent_status=stuck)
        self.registry.fail(self.batch_id, error)
        self._publish(f"Failed: {error}")

    def _estimate(self, job, processed: int) -> Optional[float]:
        return estimate_completion(job.started_at, processed, job.total_units)

    def _apply(self, message: str, **changes: Any):
        self.registry.update(self.batch_id, **changes)
        self._publish(message)

    def _publish(self, message: str):
        self.broadcaster.publish(self.batch_id)
        snapshot = self.registry.snapshot(self.batch_id)
        for callback in self._callbacks:
            try:
                callback(snapshot["percentage"], message, snapshot)
            except Exception as e:
                logger.error(f"Progress callback error: {e}")


def create_logging_callback(log_interval: int = 5) -> ProgressCallback:
    """
    Create a logging callback that logs every N updates.

    Args:
        log_interval: Log every N updates

    Returns:
        Progress callback function
    """
    counter = {"count": 0}

    def callback(percentage: float, message: str, data: Dict[str, Any]):
        counter["count"] += 1
        if counter["count"] % log_interval == 0 or percentage >= 100.0:
            logger.info(
                f"Progress {data.get('batch_id')}: {data.get('completed', 0)}/{data.get('total', 0)} "
                f"({percentage:.1f}%) [{data.get('phase')}] - {message}"
            )

    return callback
