"""
Transports used by the observers.

HTTP variants talk to the API (SSE stream, snapshot endpoint, submission);
local variants bind straight to an in-process broadcaster/registry/service.
"""

import copy
from dataclasses import asdict
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Union

import httpx
from httpx_sse import aconnect_sse

from config.constants import REQUEST_TIMEOUT_SECONDS
from config.logging_config import get_logger
from tracker.errors import (
    BatchNotFoundError,
    InvalidBatchRequestError,
    TransportError,
)
from tracker.events import BatchEvent
from tracker.server.broadcaster import EventBroadcaster
from tracker.server.models import BatchRequest
from tracker.server.registry import JobRegistry
from tracker.server.service import BatchService

logger = get_logger(__name__)


class PushTransport(Protocol):
    """A one-shot event stream for a single batch."""

    def events(self, batch_id: str) -> AsyncIterator[BatchEvent]: ...

    async def close(self) -> None: ...


class SnapshotFetcher(Protocol):
    async def fetch(self, batch_id: str) -> Dict[str, Any]: ...


class BatchSubmitter(Protocol):
    async def submit(self, request: BatchRequest) -> Dict[str, Any]: ...


def _request_body(request: Union[BatchRequest, Dict[str, Any]]) -> Dict[str, Any]:
    body = asdict(request) if isinstance(request, BatchRequest) else dict(request)
    return {key: value for key, value in body.items() if value is not None}


class _HttpTransport:
    """Shared httpx client handling: use the caller's client or own one."""

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = http_client
        self._close_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self):
        if self._client is not None and self._close_client:
            await self._client.aclose()
            self._client = None


# ============================================================================
# HTTP
# ============================================================================

class SSEPushTransport(_HttpTransport):
    """
    Server-sent events from GET /api/batches/{id}/stream.

    The read timeout doubles as a liveness check: the server pings every
    few seconds, so a silent connection times out and ends the stream.
    """

    async def events(self, batch_id: str) -> AsyncIterator[BatchEvent]:
        url = f"/api/batches/{batch_id}/stream"
        try:
            async with aconnect_sse(self.client, "GET", url) as event_source:
                if event_source.response.status_code == 404:
                    raise BatchNotFoundError(batch_id)
                event_source.response.raise_for_status()
                logger.debug(f"SSE stream opened: {url}")
                async for sse in event_source.aiter_sse():
                    yield BatchEvent.from_sse(sse.event, sse.data)
        except httpx.HTTPError as e:
            raise TransportError(f"connection lost: {e}", cause=e) from e


class HttpSnapshotFetcher(_HttpTransport):
    """Snapshots from GET /api/batches/{id}."""

    async def fetch(self, batch_id: str) -> Dict[str, Any]:
        try:
            response = await self.client.get(f"/api/batches/{batch_id}")
        except httpx.HTTPError as e:
            raise TransportError(f"connection lost: {e}", cause=e) from e

        if response.status_code == 404:
            raise BatchNotFoundError(batch_id)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(f"snapshot request failed: {e}", cause=e) from e
        return response.json()


class HttpBatchSubmitter(_HttpTransport):
    """Submission through POST /api/batches."""

    async def submit(self, request: Union[BatchRequest, Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = await self.client.post("/api/batches", json=_request_body(request))
        except httpx.HTTPError as e:
            raise TransportError(f"connection lost: {e}", cause=e) from e

        if response.status_code in (400, 422):
            raise InvalidBatchRequestError(_error_detail(response))
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(f"submission failed: {e}", cause=e) from e
        return response.json()


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    return str(detail or response.text or f"HTTP {response.status_code}")


# ============================================================================
# In-process
# ============================================================================

class LocalPushTransport:
    """Subscribes directly to an in-process broadcaster."""

    def __init__(self, broadcaster: EventBroadcaster):
        self.broadcaster = broadcaster
        self.closed = False

    async def events(self, batch_id: str) -> AsyncIterator[BatchEvent]:
        stream = self.broadcaster.subscribe(batch_id)
        try:
            async for event in stream:
                yield BatchEvent(event.event, copy.deepcopy(event.data))
        except BatchNotFoundError as e:
            raise TransportError(str(e), cause=e) from e
        finally:
            await stream.aclose()

    async def close(self):
        self.closed = True


class LocalSnapshotFetcher:
    """Reads snapshots straight from a registry."""

    def __init__(self, registry: JobRegistry):
        self.registry = registry

    async def fetch(self, batch_id: str) -> Dict[str, Any]:
        return self.registry.snapshot(batch_id)

    async def close(self):
        pass


class LocalBatchSubmitter:
    """Submits straight to a BatchService."""

    def __init__(self, service: BatchService):
        self.service = service

    async def submit(self, request: Union[BatchRequest, Dict[str, Any]]) -> Dict[str, Any]:
        if not isinstance(request, BatchRequest):
            request = BatchRequest(**request)
        return await self.service.submit(request)

    async def close(self):
        pass
