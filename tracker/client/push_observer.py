"""
Push Progress Observer - follows a batch over a server event stream.
"""

import asyncio
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

from config.logging_config import get_logger
from tracker.client.observer import BaseObserver, ObserverCallbacks
from tracker.client.reconciler import TerminalReconciler
from tracker.client.resume_registry import ResumeRegistry
from tracker.client.session import SessionStore, TransportKind
from tracker.client.transports import PushTransport
from tracker.errors import TransportError
from tracker.events import EVENT_COMPLETE, EVENT_CONNECTED, EVENT_ERROR, EVENT_PROGRESS, BatchEvent

logger = get_logger(__name__)


class PushState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    TERMINAL = "terminal"
    DISCONNECTED = "disconnected"


# Called when the stream drops before delivering anything
UnavailableHook = Callable[[str], Awaitable[None]]


class PushProgressObserver(BaseObserver):
    """
    Consumes connected/progress/complete/error events for one batch at a time.

    Holds at most one transport: attach() closes the previous one before a
    new one is created. A dropped stream is terminal for this observer; it
    does not reconnect.

    Example:
        >>> observer = PushProgressObserver(lambda: SSEPushTransport(url), sessions, reconciler, resume)
        >>> await observer.attach("batch_1")
        >>> await observer.wait()
    """

    def __init__(
        self,
        transport_factory: Callable[[], PushTransport],
        sessions: SessionStore,
        reconciler: TerminalReconciler,
        resume_registry: ResumeRegistry,
        callbacks: Optional[ObserverCallbacks] = None,
        on_unavailable: Optional[UnavailableHook] = None,
    ):
        super().__init__(sessions, reconciler, resume_registry, callbacks)
        self.transport_factory = transport_factory
        self.on_unavailable = on_unavailable
        self.state = PushState.IDLE
        self._transport: Optional[PushTransport] = None
        self._events: Optional[AsyncIterator[BatchEvent]] = None
        self._task: Optional[asyncio.Task] = None
        self._received_any = False

    async def attach(self, batch_id: str):
        """Start following batch_id, replacing any current connection."""
        await self.close()

        self._bind_session(batch_id, TransportKind.PUSH)
        self._received_any = False
        self.state = PushState.CONNECTING

        transport = self.transport_factory()
        self._transport = transport
        self._events = transport.events(batch_id)
        logger.info(f"Push observer attached: {batch_id}")
        self._task = asyncio.get_running_loop().create_task(self._consume(self._events))

    async def close(self):
        """Drop the current connection. The resume record is left alone."""
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_transport()
        if self.state in (PushState.CONNECTING, PushState.STREAMING):
            self.state = PushState.IDLE

    async def wait(self, timeout: Optional[float] = None):
        """Wait until the current stream ends."""
        if self._task is not None:
            await asyncio.wait({self._task}, timeout=timeout)

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _close_transport(self):
        events, transport = self._events, self._transport
        self._events = None
        self._transport = None
        if events is not None:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    logger.debug(f"Error closing event stream: {e}")
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug(f"Error closing transport: {e}")
            logger.debug(f"Push transport closed: {self.batch_id}")

    async def _consume(self, events: AsyncIterator[BatchEvent]):
        error: Optional[BaseException] = None
        try:
            async for event in events:
                if not self._received_any:
                    self._received_any = True
                    self.state = PushState.STREAMING
                await self._handle_event(event)
                if self.state == PushState.TERMINAL:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if self.state == PushState.TERMINAL:
            await self._close_transport()
        else:
            await self._handle_drop(error)

    async def _handle_event(self, event: BatchEvent):
        if event.event in (EVENT_CONNECTED, EVENT_PROGRESS):
            await self._apply_snapshot(event.data)
            if self.session.has_fired_terminal:
                self.state = PushState.TERMINAL
        elif event.event == EVENT_COMPLETE:
            self.state = PushState.TERMINAL
            await self._handle_complete(event.data)
        elif event.event == EVENT_ERROR:
            self.state = PushState.TERMINAL
            await self._handle_failure(event.data)
        else:
            logger.debug(f"Ignoring unknown event {event.event!r} for {self.batch_id}")

    async def _handle_drop(self, error: Optional[BaseException]):
        """The stream ended or failed without a terminal event."""
        self.state = PushState.DISCONNECTED
        await self._close_transport()

        if not self._received_any and self.on_unavailable is not None:
            logger.warning(f"Push unavailable for {self.batch_id}: {error or 'stream closed'}")
            await self.on_unavailable(self.batch_id)
            return

        if isinstance(error, TransportError):
            transport_error = error
        else:
            transport_error = TransportError(cause=error)
        logger.error(f"Push transport error for {self.batch_id}: {transport_error}")
        self.resume_registry.clear()
        self.transient_error = transport_error
        self._notify("on_error", transport_error)
