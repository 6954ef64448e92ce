"""
Pytest configuration and shared fixtures for batch tracker tests.
"""
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import Settings
from tracker.client.reconciler import CollectionCache, LoggingNotifier, TerminalReconciler
from tracker.client.resume_registry import MemorySlotStorage, ResumeRegistry
from tracker.client.session import SessionStore
from tracker.events import BatchEvent
from tracker.server.broadcaster import EventBroadcaster
from tracker.server.registry import JobRegistry


# ============================================================================
# Helpers
# ============================================================================

class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float):
        self.now_ms += int(seconds * 1000)


class ScriptedPushTransport:
    """
    Push transport that replays a fixed list of events.

    A BaseException instance in the script is raised at that point,
    simulating a dropped connection.
    """

    def __init__(self, script: List[Any], name: str = "transport", log: Optional[List[str]] = None):
        self.script = list(script)
        self.name = name
        self.log = log if log is not None else []
        self.closed = False
        self.delivered = 0

    async def events(self, batch_id: str):
        self.log.append(f"open {self.name}")
        for item in self.script:
            if isinstance(item, BaseException):
                raise item
            self.delivered += 1
            yield item

    async def close(self):
        self.closed = True
        self.log.append(f"close {self.name}")


class ScriptedFetcher:
    """Snapshot fetcher returning (or raising) scripted results in order."""

    def __init__(self, results: List[Any]):
        self.results = list(results)
        self.calls = 0

    async def fetch(self, batch_id: str) -> Dict[str, Any]:
        self.calls += 1
        index = min(self.calls - 1, len(self.results) - 1)
        result = self.results[index]
        if isinstance(result, BaseException):
            raise result
        return dict(result)

    async def close(self):
        pass


def progress(batch_id: str, phase: str, completed: int, total: int, failed: int = 0, **extra) -> BatchEvent:
    data = {
        "batch_id": batch_id,
        "phase": phase,
        "completed": completed,
        "failed": failed,
        "total": total,
        "started_at": 1_700_000_000.0,
    }
    data.update(extra)
    return BatchEvent("progress", data)


def snapshot(batch_id: str, phase: str, completed: int, total: int, failed: int = 0, **extra) -> Dict[str, Any]:
    return progress(batch_id, phase, completed, total, failed, **extra).data


# ============================================================================
# Fixtures: Configuration
# ============================================================================

@pytest.fixture
def test_settings():
    """Settings with fast polling."""
    return Settings(
        push_enabled=True,
        poll_interval_ms=1,
        poll_failure_threshold=3,
        resume_ttl_seconds=300,
    )


# ============================================================================
# Fixtures: Client side
# ============================================================================

@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def memory_storage():
    return MemorySlotStorage()


@pytest.fixture
def resume_registry(memory_storage, fake_clock):
    return ResumeRegistry(memory_storage, ttl_seconds=300, clock=fake_clock)


@pytest.fixture
def cache():
    collection_cache = CollectionCache()
    collection_cache.put("recipes", ["old"])
    collection_cache.put("admin-stats", {"total": 1})
    return collection_cache


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def reconciler(resume_registry, cache, notifier):
    return TerminalReconciler(resume_registry, cache=cache, notifier=notifier)


@pytest.fixture
def sessions():
    return SessionStore()


# ============================================================================
# Fixtures: Server side
# ============================================================================

@pytest.fixture
def registry():
    return JobRegistry(ttl_seconds=60)


@pytest.fixture
def broadcaster(registry):
    return EventBroadcaster(registry, queue_size=10)
