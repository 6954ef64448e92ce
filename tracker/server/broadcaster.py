"""
Event Broadcaster - streams batch state deltas to subscribers.

Each subscriber gets its own bounded queue. On attach the latest snapshot is
replayed as a ``connected`` event; afterwards ``progress`` events follow until
exactly one terminal event (``complete`` or ``error``) closes the stream.
"""

import asyncio
from typing import AsyncIterator, Dict, List

from config.constants import BROADCASTER_QUEUE_SIZE
from config.logging_config import get_logger
from tracker.events import EVENT_CONNECTED, BatchEvent, event_from_snapshot
from tracker.server.registry import JobRegistry

logger = get_logger(__name__)


class EventBroadcaster:
    """
    Fan-out of batch events to any number of subscribers per batch id.

    publish() must be called from the event loop thread that runs the
    subscribers; ProgressReporter does this for the pipeline.

    Example:
        >>> broadcaster = EventBroadcaster(registry)
        >>> async for event in broadcaster.subscribe(batch_id):
        ...     print(event.event, event.data)
    """

    def __init__(self, registry: JobRegistry, queue_size: int = BROADCASTER_QUEUE_SIZE):
        self._registry = registry
        self._queue_size = max(1, int(queue_size))
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}

    async def subscribe(self, batch_id: str) -> AsyncIterator[BatchEvent]:
        """
        Stream events for batch_id.

        Raises BatchNotFoundError on first iteration when the batch is unknown.
        """
        snapshot = self._registry.snapshot(batch_id)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.setdefault(batch_id, []).append(queue)
        logger.debug(f"Subscriber attached: {batch_id} ({self.subscriber_count(batch_id)} total)")

        try:
            yield BatchEvent(EVENT_CONNECTED, snapshot)

            current = event_from_snapshot(snapshot)
            if current.is_terminal:
                yield current
                return

            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    return
        finally:
            self._detach(batch_id, queue)

    def publish(self, batch_id: str) -> BatchEvent:
        """Broadcast the current state of batch_id to its subscribers."""
        event = event_from_snapshot(self._registry.snapshot(batch_id))
        for queue in list(self._subscribers.get(batch_id, [])):
            self._offer(batch_id, queue, event)
        return event

    def subscriber_count(self, batch_id: str) -> int:
        return len(self._subscribers.get(batch_id, []))

    def _offer(self, batch_id: str, queue: asyncio.Queue, event: BatchEvent):
        """Enqueue, coalescing away the oldest pending event when the queue is full."""
        if queue.full():
            try:
                dropped = queue.get_nowait()
                logger.debug(f"Coalesced {dropped.event} event for {batch_id}")
            except asyncio.QueueEmpty:
                pass
        queue.put_nowait(event)

    def _detach(self, batch_id: str, queue: asyncio.Queue):
        queues = self._subscribers.get(batch_id)
        if not queues:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            del self._subscribers[batch_id]
        logger.debug(f"Subscriber detached: {batch_id}")
