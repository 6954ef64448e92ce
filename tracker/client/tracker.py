"""
BatchTracker - the public client API.

Picks push or poll, keeps one observation per batch id, and exposes the
bootstrap check for a batch left running by a previous process.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Union

from config.logging_config import get_logger
from config.settings import Settings, settings as default_settings
from tracker.client.observer import ObserverCallbacks
from tracker.client.poll_observer import PollProgressObserver
from tracker.client.push_observer import PushProgressObserver
from tracker.client.reconciler import Success, TerminalReconciler
from tracker.client.resume_registry import FileSlotStorage, ResumeRegistry
from tracker.client.session import SessionStore, TransportKind
from tracker.client.transports import (
    BatchSubmitter,
    HttpSnapshotFetcher,
    PushTransport,
    SnapshotFetcher,
    SSEPushTransport,
)
from tracker.client.view import ProgressView
from tracker.errors import BatchTrackingError
from tracker.server.models import BatchRequest

logger = get_logger(__name__)

Observer = Union[PushProgressObserver, PollProgressObserver]


class ObservationHandle:
    """Running observation of one batch; stop() detaches without forgetting it."""

    def __init__(self, tracker: "BatchTracker", batch_id: str, callbacks: ObserverCallbacks):
        self.tracker = tracker
        self.batch_id = batch_id
        self.callbacks = callbacks
        self.observer: Optional[Observer] = None
        self.stopped = False

    @property
    def transport(self) -> Optional[TransportKind]:
        if isinstance(self.observer, PushProgressObserver):
            return TransportKind.PUSH
        if isinstance(self.observer, PollProgressObserver):
            return TransportKind.POLL
        return None

    @property
    def view(self) -> Optional[ProgressView]:
        session = self.tracker.sessions.get(self.batch_id)
        return session.view if session else None

    @property
    def finished(self) -> bool:
        session = self.tracker.sessions.get(self.batch_id)
        return bool(session and session.has_fired_terminal)

    async def stop(self):
        """Stop observing. The resume record stays so the batch can be resumed."""
        self.stopped = True
        observer = self.observer
        if isinstance(observer, PushProgressObserver):
            await observer.close()
        elif isinstance(observer, PollProgressObserver):
            await observer.stop()
        self.tracker._forget(self)
        logger.debug(f"Observation stopped: {self.batch_id}")

    @property
    def active(self) -> bool:
        return not self.stopped and self.observer is not None and self.observer.active

    async def wait(self, timeout: Optional[float] = None):
        """Wait until observation ends, following a push → poll fallback."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            observer = self.observer
            if observer is None:
                return
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            await observer.wait(remaining)
            if self.observer is observer or (deadline is not None and loop.time() >= deadline):
                return

    async def _start_push(self, factory: Callable[[], PushTransport]):
        observer = PushProgressObserver(
            factory,
            self.tracker.sessions,
            self.tracker.reconciler,
            self.tracker.resume_registry,
            self.callbacks,
            on_unavailable=self._fallback_to_poll,
        )
        self.observer = observer
        await observer.attach(self.batch_id)

    async def _start_poll(self):
        observer = PollProgressObserver(
            self.tracker.poll_fetcher,
            self.tracker.sessions,
            self.tracker.reconciler,
            self.tracker.resume_registry,
            self.callbacks,
            interval_ms=self.tracker.settings.poll_interval_ms,
            failure_threshold=self.tracker.settings.poll_failure_threshold,
        )
        self.observer = observer
        await observer.start(self.batch_id)

    async def _fallback_to_poll(self, batch_id: str):
        if self.stopped:
            return
        logger.info(f"Falling back to polling for {batch_id}")
        await self._start_poll()


class BatchTracker:
    """
    Client entry point for following batches.

    Example:
        >>> tracker = BatchTracker()
        >>> batch_id = tracker.try_resume()
        >>> if batch_id:
        ...     handle = await tracker.observe_batch(batch_id, on_update=print)
        ...     await handle.wait()
    """

    def __init__(
        self,
        resume_registry: Optional[ResumeRegistry] = None,
        reconciler: Optional[TerminalReconciler] = None,
        push_factory: Optional[Callable[[], PushTransport]] = None,
        poll_fetcher: Optional[SnapshotFetcher] = None,
        sessions: Optional[SessionStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings if settings is not None else default_settings
        if resume_registry is None:
            resume_registry = ResumeRegistry(
                FileSlotStorage(self.settings.resume_slot_path),
                ttl_seconds=self.settings.resume_ttl_seconds,
            )
        self.resume_registry = resume_registry
        self.reconciler = reconciler if reconciler is not None else TerminalReconciler(resume_registry)
        self.push_factory = push_factory
        self.poll_fetcher = poll_fetcher
        # SessionStore defines __len__, so an empty one is falsy
        self.sessions = sessions if sessions is not None else SessionStore(
            retention_seconds=self.settings.registry_ttl_seconds,
        )
        self._handles: Dict[str, ObservationHandle] = {}

    async def observe_batch(
        self,
        batch_id: str,
        on_update: Optional[Callable[[ProgressView], None]] = None,
        on_complete: Optional[Callable[[Success], None]] = None,
        on_error: Optional[Callable[[BatchTrackingError], None]] = None,
        on_error_cleared: Optional[Callable[[], None]] = None,
    ) -> ObservationHandle:
        """
        Start following batch_id.

        Push is used when enabled and available; otherwise snapshots are
        polled. Observing a batch that is already observed stops the old
        observation first and keeps its session. Handles of finished
        observations are dropped here.
        """
        previous = self._handles.pop(batch_id, None)
        if previous is not None:
            await previous.stop()
        self._prune_handles()

        callbacks = ObserverCallbacks(
            on_update=on_update,
            on_complete=on_complete,
            on_error=on_error,
            on_error_cleared=on_error_cleared,
        )
        use_push = self.settings.push_enabled and self.push_factory is not None
        if not use_push and self.poll_fetcher is None:
            raise ValueError("BatchTracker needs a push_factory or a poll_fetcher")

        handle = ObservationHandle(self, batch_id, callbacks)
        self._handles[batch_id] = handle
        if use_push:
            await handle._start_push(self.push_factory)
        else:
            await handle._start_poll()
        return handle

    def try_resume(self) -> Optional[str]:
        """Batch id left running by an earlier process, if still fresh."""
        record = self.resume_registry.load()
        if record is None:
            return None
        logger.info(f"Resuming progress tracking for ongoing batch {record.batch_id}")
        return record.batch_id

    async def submit_and_observe(
        self,
        submitter: BatchSubmitter,
        request: Union[BatchRequest, Dict[str, Any]],
        on_update: Optional[Callable[[ProgressView], None]] = None,
        on_complete: Optional[Callable[[Success], None]] = None,
        on_error: Optional[Callable[[BatchTrackingError], None]] = None,
        on_error_cleared: Optional[Callable[[], None]] = None,
    ) -> ObservationHandle:
        """Submit a batch, remember it for resume, and start observing it."""
        result = await submitter.submit(request)
        batch_id = result["batch_id"]
        logger.info(f"Batch submitted: {batch_id} ({result.get('total_units')} units)")
        self.resume_registry.save(batch_id)
        return await self.observe_batch(batch_id, on_update, on_complete, on_error, on_error_cleared)

    def handle_for(self, batch_id: str) -> Optional[ObservationHandle]:
        return self._handles.get(batch_id)

    def _forget(self, handle: ObservationHandle):
        if self._handles.get(handle.batch_id) is handle:
            del self._handles[handle.batch_id]

    def _prune_handles(self):
        for handle in [h for h in self._handles.values() if not h.active]:
            self._forget(handle)


# ============================================================================
# Module-level convenience
# ============================================================================

_default_tracker: Optional[BatchTracker] = None


def get_default_tracker() -> BatchTracker:
    """Tracker wired to the API at settings.api_base_url."""
    global _default_tracker
    if _default_tracker is None:
        base_url = default_settings.api_base_url
        timeout = default_settings.request_timeout_seconds
        _default_tracker = BatchTracker(
            push_factory=lambda: SSEPushTransport(base_url, timeout=timeout),
            poll_fetcher=HttpSnapshotFetcher(base_url, timeout=timeout),
        )
    return _default_tracker


async def observe_batch(
    batch_id: str,
    on_update: Optional[Callable[[ProgressView], None]] = None,
    on_complete: Optional[Callable[[Success], None]] = None,
    on_error: Optional[Callable[[BatchTrackingError], None]] = None,
    on_error_cleared: Optional[Callable[[], None]] = None,
) -> ObservationHandle:
    return await get_default_tracker().observe_batch(batch_id, on_update, on_complete, on_error, on_error_cleared)


def try_resume() -> Optional[str]:
    return get_default_tracker().try_resume()
