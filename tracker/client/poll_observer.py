"""
Poll Progress Observer - follows a batch by fetching snapshots on a fixed interval.
"""

import asyncio
from enum import Enum
from typing import Optional

from config.constants import POLL_FAILURE_THRESHOLD, POLL_INTERVAL_MS
from config.logging_config import get_logger
from tracker.client.observer import BaseObserver, ObserverCallbacks
from tracker.client.reconciler import TerminalReconciler
from tracker.client.resume_registry import ResumeRegistry
from tracker.client.session import SessionStore, TransportKind
from tracker.client.transports import SnapshotFetcher
from tracker.errors import TransportError

logger = get_logger(__name__)


class PollState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPED = "stopped"


class PollProgressObserver(BaseObserver):
    """
    Fetches snapshots until the batch is terminal or polling is stopped.

    The state and the terminal flag are both checked before every fetch, so
    once either says stop no further request goes out. No backoff: the
    interval is fixed.
    """

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        sessions: SessionStore,
        reconciler: TerminalReconciler,
        resume_registry: ResumeRegistry,
        callbacks: Optional[ObserverCallbacks] = None,
        interval_ms: int = POLL_INTERVAL_MS,
        failure_threshold: int = POLL_FAILURE_THRESHOLD,
    ):
        super().__init__(sessions, reconciler, resume_registry, callbacks)
        self.fetcher = fetcher
        self.interval_ms = interval_ms
        self.failure_threshold = max(1, int(failure_threshold))
        self.state = PollState.IDLE
        self.consecutive_failures = 0
        self.fetch_count = 0
        self._task: Optional[asyncio.Task] = None

    async def start(self, batch_id: str, interval_ms: Optional[int] = None):
        """Begin polling batch_id; a running poll for another batch is stopped first."""
        await self.stop()

        if interval_ms is not None:
            self.interval_ms = interval_ms
        self._bind_session(batch_id, TransportKind.POLL)
        self.consecutive_failures = 0
        self.state = PollState.ACTIVE
        logger.info(f"Polling {batch_id} every {self.interval_ms}ms")
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self):
        """Cancel the pending tick. The resume record is left alone."""
        if self.state == PollState.ACTIVE:
            self.state = PollState.STOPPED
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def wait(self, timeout: Optional[float] = None):
        """Wait until polling ends."""
        if self._task is not None:
            await asyncio.wait({self._task}, timeout=timeout)

    @property
    def active(self) -> bool:
        return self.state == PollState.ACTIVE

    async def _close_transport(self):
        self.state = PollState.STOPPED

    def _should_continue(self) -> bool:
        return self.state == PollState.ACTIVE and not self.session.has_fired_terminal

    async def _run(self):
        while self._should_continue():
            await self._tick()
            if not self._should_continue():
                break
            await asyncio.sleep(self.interval_ms / 1000.0)
        if self.state == PollState.ACTIVE:
            self.state = PollState.STOPPED

    async def _tick(self):
        batch_id = self.batch_id
        self.fetch_count += 1
        try:
            snapshot = await self.fetcher.fetch(batch_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_failure(e)
            return

        self.consecutive_failures = 0
        await self._apply_snapshot(snapshot)

    def _record_failure(self, error: Exception):
        self.consecutive_failures += 1
        logger.warning(
            f"Poll {self.consecutive_failures}/{self.failure_threshold} failed for "
            f"{self.batch_id}: {error}"
        )
        if self.consecutive_failures < self.failure_threshold:
            return

        self.state = PollState.STOPPED
        transport_error = TransportError(
            f"connection lost after {self.consecutive_failures} failed polls",
            cause=error,
        )
        logger.error(f"Polling stopped for {self.batch_id}: {transport_error}")
        self.resume_registry.clear()
        self.transient_error = transport_error
        self._notify("on_error", transport_error)
