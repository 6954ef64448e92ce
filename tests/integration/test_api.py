"""
Integration tests for API endpoints (api/main.py)
"""
import json
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sse_starlette.sse import AppStatus

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from api.main import create_app
from api.rate_limit import limiter
from config.settings import Settings
from tracker.client.reconciler import CollectionCache, LoggingNotifier, NotificationLevel, TerminalReconciler
from tracker.client.resume_registry import MemorySlotStorage, ResumeRegistry
from tracker.client.session import TransportKind
from tracker.client.tracker import BatchTracker
from tracker.client.transports import HttpBatchSubmitter, HttpSnapshotFetcher, SSEPushTransport
from tracker.errors import BatchNotFoundError, InvalidBatchRequestError
from tracker.server.worker import StagedBatchWorker

REJECTED_UNITS = (3, 7)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_shared_state():
    """Fresh rate-limit counters and SSE exit event per test."""
    limiter.reset()
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield
    limiter.reset()


@pytest.fixture
def fast_worker():
    """No delays; units 3 and 7 fail validation."""
    async def generate(index, request):
        return {"index": index, "prompt": request.natural_language_prompt}

    async def validate(index, draft):
        return index not in REJECTED_UNITS

    return StagedBatchWorker(generate, validate=validate, chunk_size=5)


@pytest.fixture
def api_app(fast_worker):
    return create_app(worker=fast_worker)


@pytest_asyncio.fixture
async def async_client(api_app):
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await api_app.state.batch_service.shutdown()


def parse_sse(text):
    """(event, data) pairs from a raw SSE body."""
    frames = []
    for block in text.replace("\r\n", "\n").split("\n\n"):
        event, data = None, None
        for line in block.split("\n"):
            if line.startswith("event:"):
                event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = line[len("data:"):].strip()
        if event:
            frames.append((event, json.loads(data) if data else {}))
    return frames


class TestAPIBasics:
    """Test basic API functionality."""

    @pytest.fixture
    def client(self, api_app):
        """Create a test client."""
        with TestClient(api_app) as test_client:
            yield test_client

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["active_batches"] == 0
        assert data["tracked_batches"] == 0

    def test_unknown_route(self, client):
        assert client.get("/api/unknown").status_code == 404


class TestBatchEndpoints:
    """Test /api/batches endpoints."""

    @pytest.fixture
    def client(self, api_app):
        with TestClient(api_app) as test_client:
            yield test_client

    def test_submit_returns_batch_id(self, client):
        response = client.post("/api/batches", json={"count": 10})
        assert response.status_code == 200
        data = response.json()
        assert data["batch_id"].startswith("batch_")
        assert data["total_units"] == 10
        assert data["started"] is True

    @pytest.mark.parametrize("count", [0, 101])
    def test_submit_rejects_out_of_range_count(self, client, count):
        response = client.post("/api/batches", json={"count": count})
        assert response.status_code == 400
        assert "count" in response.json()["detail"]

    def test_submit_requires_count(self, client):
        assert client.post("/api/batches", json={}).status_code == 422

    def test_snapshot(self, client):
        batch_id = client.post("/api/batches", json={"count": 4}).json()["batch_id"]

        response = client.get(f"/api/batches/{batch_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["batch_id"] == batch_id
        assert data["total"] == 4
        assert "percentage" in data
        assert "per_agent_status" in data

    def test_snapshot_unknown_batch(self, client):
        response = client.get("/api/batches/batch_missing")
        assert response.status_code == 404

    def test_stream_unknown_batch(self, client):
        response = client.get("/api/batches/batch_missing/stream")
        assert response.status_code == 404


class TestBatchStream:
    """Test the SSE stream end to end in-process."""

    @pytest.mark.asyncio
    async def test_stream_closes_after_terminal_event(self, async_client, api_app):
        response = await async_client.post("/api/batches", json={"count": 10})
        batch_id = response.json()["batch_id"]
        await api_app.state.batch_service.wait_idle(timeout=5)

        stream = await async_client.get(f"/api/batches/{batch_id}/stream")
        assert stream.status_code == 200
        assert stream.headers["content-type"].startswith("text/event-stream")

        frames = parse_sse(stream.text)
        events = [event for event, _ in frames]
        assert events[0] == "connected"
        assert events[-1] == "complete"
        assert events.count("complete") == 1

        _, complete = frames[-1]
        assert complete["completed"] == 8
        assert complete["failed"] == 2
        assert complete["errors"] == ["unit 3 invalid", "unit 7 invalid"]
        assert api_app.state.broadcaster.subscriber_count(batch_id) == 0


class TestHttpClients:
    """HTTP transports against the in-process app."""

    @pytest.mark.asyncio
    async def test_submitter_and_fetcher(self, async_client, api_app):
        submitter = HttpBatchSubmitter("http://test", http_client=async_client)
        fetcher = HttpSnapshotFetcher("http://test", http_client=async_client)

        result = await submitter.submit({"count": 3})
        await api_app.state.batch_service.wait_idle(timeout=5)
        snapshot = await fetcher.fetch(result["batch_id"])

        assert snapshot["phase"] == "complete"
        assert snapshot["completed"] == 2
        assert snapshot["failed"] == 1

        # Caller-owned client stays open
        await fetcher.close()
        assert not async_client.is_closed

    @pytest.mark.asyncio
    async def test_submitter_maps_validation_errors(self, async_client):
        submitter = HttpBatchSubmitter("http://test", http_client=async_client)
        with pytest.raises(InvalidBatchRequestError):
            await submitter.submit({"count": 0})

    @pytest.mark.asyncio
    async def test_fetcher_unknown_batch(self, async_client):
        fetcher = HttpSnapshotFetcher("http://test", http_client=async_client)
        with pytest.raises(BatchNotFoundError):
            await fetcher.fetch("batch_missing")

    @pytest.mark.asyncio
    async def test_track_over_http(self, async_client, api_app):
        """Submit over HTTP and follow the batch over SSE to its warning outcome."""
        notifier = LoggingNotifier()
        resume = ResumeRegistry(MemorySlotStorage())
        cache = CollectionCache()
        cache.put("recipes", ["stale"])
        tracker = BatchTracker(
            resume_registry=resume,
            reconciler=TerminalReconciler(resume, cache=cache, notifier=notifier),
            push_factory=lambda: SSEPushTransport("http://test", http_client=async_client),
            poll_fetcher=HttpSnapshotFetcher("http://test", http_client=async_client),
            settings=Settings(poll_interval_ms=1),
        )

        completed = []
        handle = await tracker.submit_and_observe(
            HttpBatchSubmitter("http://test", http_client=async_client),
            {"count": 10},
            on_complete=completed.append,
        )
        await handle.wait(timeout=5)

        assert handle.transport == TransportKind.PUSH
        assert len(completed) == 1
        assert completed[0].completed == 8
        assert completed[0].failed == 2
        assert [n.level for n in notifier.sent] == [NotificationLevel.WARNING]
        assert "recipes" not in cache
        assert tracker.try_resume() is None
