"""
Batch submission service.

Creates the registry entry, starts the worker as a background task and hands
back the batch id. A client disconnecting never cancels the task.
"""

import asyncio
from typing import Any, Dict, Optional, Set

from config.constants import BATCH_MAX_UNITS
from config.logging_config import get_logger
from tracker.errors import InvalidBatchRequestError
from tracker.server.broadcaster import EventBroadcaster
from tracker.server.models import BatchRequest
from tracker.server.registry import JobRegistry
from tracker.server.reporter import ProgressReporter, create_logging_callback
from tracker.server.worker import BatchWorker

logger = get_logger(__name__)


class BatchService:
    """
    Entry point for starting batches.

    Example:
        >>> service = BatchService(registry, broadcaster, worker)
        >>> result = await service.submit(BatchRequest(count=10))
        >>> result["batch_id"]
        'batch_3f2a...'
    """

    def __init__(
        self,
        registry: JobRegistry,
        broadcaster: EventBroadcaster,
        worker: BatchWorker,
        max_units: int = BATCH_MAX_UNITS,
    ):
        self.registry = registry
        self.broadcaster = broadcaster
        self.worker = worker
        self.max_units = max_units
        self._tasks: Set[asyncio.Task] = set()

    async def submit(self, request: BatchRequest) -> Dict[str, Any]:
        """
        Validate the request and start the batch in the background.

        Returns:
            {"batch_id", "total_units", "started"}

        Raises:
            InvalidBatchRequestError: count outside 1..max_units
        """
        self._validate(request)
        chunk_size = request.chunk_size or getattr(self.worker, "chunk_size", 0) or request.count
        total_chunks = -(-request.count // max(1, chunk_size))
        job = self.registry.create(request.count, total_chunks=total_chunks)

        task = asyncio.get_running_loop().create_task(self._run(job.id, request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return {"batch_id": job.id, "total_units": job.total_units, "started": True}

    async def wait_idle(self, timeout: Optional[float] = None):
        """Wait for every running batch to finish (used at shutdown and in tests)."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    async def shutdown(self):
        """Cancel running batches when the process itself stops."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def _validate(self, request: BatchRequest):
        if not isinstance(request.count, int) or request.count < 1:
            raise InvalidBatchRequestError("count must be at least 1")
        if request.count > self.max_units:
            raise InvalidBatchRequestError(
                f"count exceeds the maximum of {self.max_units} units per batch"
            )
        if request.chunk_size is not None and request.chunk_size < 1:
            raise InvalidBatchRequestError("chunk_size must be at least 1")

    async def _run(self, batch_id: str, request: BatchRequest):
        reporter = ProgressReporter(self.registry, self.broadcaster, batch_id)
        reporter.add_callback(create_logging_callback())
        try:
            await self.worker.run(request, reporter)
        except asyncio.CancelledError:
            logger.warning(f"Batch {batch_id} interrupted by shutdown")
            raise
        except Exception as e:
            logger.exception(f"Worker crashed for {batch_id}: {e}")
            if not self.registry.get(batch_id).is_terminal:
                reporter.fail(str(e) or e.__class__.__name__)
            return

        if not self.registry.get(batch_id).is_terminal:
            reporter.complete()
