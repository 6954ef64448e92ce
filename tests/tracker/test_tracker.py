"""
Unit tests for tracker.client.tracker (BatchTracker facade).
"""

import asyncio

import pytest

from conftest import ScriptedFetcher, ScriptedPushTransport, progress, snapshot
from config.settings import Settings
from tracker.client.reconciler import NotificationLevel
from tracker.client.session import SessionStore, TransportKind
from tracker.client.tracker import BatchTracker
from tracker.client.transports import LocalBatchSubmitter, LocalPushTransport, LocalSnapshotFetcher
from tracker.errors import TransportError
from tracker.events import BatchEvent
from tracker.server.models import BatchRequest
from tracker.server.service import BatchService
from tracker.server.worker import StagedBatchWorker

BATCH = "batch_facade"


def make_tracker(test_settings, resume_registry, reconciler, sessions, push_factory=None, fetcher=None):
    return BatchTracker(
        resume_registry=resume_registry,
        reconciler=reconciler,
        push_factory=push_factory,
        poll_fetcher=fetcher,
        sessions=sessions,
        settings=test_settings,
    )


class TestTransportSelection:
    """Tests for push/poll choice."""

    @pytest.mark.asyncio
    async def test_push_preferred(self, test_settings, resume_registry, reconciler, sessions):
        tracker = make_tracker(
            test_settings, resume_registry, reconciler, sessions,
            push_factory=lambda: ScriptedPushTransport([progress(BATCH, "complete", 10, 10)]),
            fetcher=ScriptedFetcher([snapshot(BATCH, "complete", 10, 10)]),
        )
        handle = await tracker.observe_batch(BATCH)
        await handle.wait(timeout=1)

        assert handle.transport == TransportKind.PUSH
        assert handle.finished

    @pytest.mark.asyncio
    async def test_poll_when_push_disabled(self, resume_registry, reconciler, sessions):
        settings = Settings(push_enabled=False, poll_interval_ms=1)
        fetcher = ScriptedFetcher([snapshot(BATCH, "complete", 10, 10)])
        tracker = make_tracker(
            settings, resume_registry, reconciler, sessions,
            push_factory=lambda: ScriptedPushTransport([]),
            fetcher=fetcher,
        )
        handle = await tracker.observe_batch(BATCH)
        await handle.wait(timeout=1)

        assert handle.transport == TransportKind.POLL
        assert fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_poll_when_push_unavailable(
        self, test_settings, resume_registry, reconciler, sessions, notifier,
    ):
        fetcher = ScriptedFetcher([
            snapshot(BATCH, "generating", 4, 10),
            snapshot(BATCH, "complete", 10, 10),
        ])
        tracker = make_tracker(
            test_settings, resume_registry, reconciler, sessions,
            push_factory=lambda: ScriptedPushTransport([ConnectionError("no stream endpoint")]),
            fetcher=fetcher,
        )
        errors, completed = [], []
        handle = await tracker.observe_batch(BATCH, on_error=errors.append, on_complete=completed.append)
        await handle.wait(timeout=1)

        assert handle.transport == TransportKind.POLL
        assert errors == []
        assert len(completed) == 1
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_needs_a_transport(self, test_settings, resume_registry, reconciler, sessions):
        tracker = make_tracker(test_settings, resume_registry, reconciler, sessions)
        with pytest.raises(ValueError):
            await tracker.observe_batch(BATCH)


class TestResume:
    """Tests for try_resume and re-observation."""

    def test_try_resume_within_ttl(self, test_settings, resume_registry, reconciler, sessions, fake_clock):
        tracker = make_tracker(test_settings, resume_registry, reconciler, sessions)
        resume_registry.save(BATCH)
        fake_clock.advance(30)
        assert tracker.try_resume() == BATCH

    def test_try_resume_expired(self, test_settings, resume_registry, reconciler, sessions, fake_clock):
        tracker = make_tracker(test_settings, resume_registry, reconciler, sessions)
        resume_registry.save(BATCH)
        fake_clock.advance(301)
        assert tracker.try_resume() is None

    @pytest.mark.asyncio
    async def test_reload_mid_batch(self, test_settings, resume_registry, reconciler, sessions, notifier, fake_clock):
        """Reattaching after a reload continues without re-firing seen side effects."""
        first_stream = asyncio.Event()

        class Hanging(ScriptedPushTransport):
            async def events(self, batch_id):
                async for event in super().events(batch_id):
                    yield event
                first_stream.set()
                await asyncio.Event().wait()

        transports = [
            Hanging([
                progress(BATCH, "generating", 2, 10, failed=1, errors=["unit 1 invalid"]),
                progress(BATCH, "generating", 4, 10, failed=1, errors=["unit 1 invalid"]),
            ]),
            ScriptedPushTransport([
                BatchEvent("connected", progress(BATCH, "generating", 4, 10, failed=1, errors=["unit 1 invalid"]).data),
                progress(BATCH, "storing", 8, 10, failed=1, errors=["unit 1 invalid"]),
                BatchEvent("complete", {"batch_id": BATCH, "completed": 9, "failed": 1, "total": 10,
                                        "errors": ["unit 1 invalid"]}),
            ]),
        ]
        tracker = make_tracker(
            test_settings, resume_registry, reconciler, sessions,
            push_factory=lambda: transports.pop(0),
        )
        resume_registry.save(BATCH)

        first_errors = []
        handle = await tracker.observe_batch(BATCH, on_error=first_errors.append)
        await asyncio.wait_for(first_stream.wait(), timeout=1)
        await handle.stop()
        assert len(first_errors) == 1

        fake_clock.advance(30)
        resumed = tracker.try_resume()
        assert resumed == BATCH

        views, errors = [], []
        handle = await tracker.observe_batch(resumed, on_update=views.append, on_error=errors.append)
        await handle.wait(timeout=1)

        assert [round(v.percentage) for v in views] == [50, 90, 100]
        assert errors == []
        assert [n.level for n in notifier.sent] == [NotificationLevel.WARNING]
        assert tracker.try_resume() is None

    @pytest.mark.asyncio
    async def test_observe_again_stops_previous(self, test_settings, resume_registry, reconciler, sessions):
        fetcher = ScriptedFetcher([snapshot(BATCH, "generating", 1, 10)])
        settings = Settings(push_enabled=False, poll_interval_ms=1)
        tracker = make_tracker(settings, resume_registry, reconciler, sessions, fetcher=fetcher)

        first = await tracker.observe_batch(BATCH)
        second = await tracker.observe_batch(BATCH)

        assert first.stopped
        assert tracker.handle_for(BATCH) is second
        assert sessions.get(BATCH) is not None
        await second.stop()
        assert tracker.handle_for(BATCH) is None

    @pytest.mark.asyncio
    async def test_finished_handles_are_dropped(self, test_settings, resume_registry, reconciler, sessions):
        tracker = make_tracker(
            test_settings, resume_registry, reconciler, sessions,
            push_factory=lambda: ScriptedPushTransport([progress(BATCH, "complete", 10, 10)]),
        )
        handle = await tracker.observe_batch(BATCH)
        await handle.wait(timeout=1)
        assert tracker.handle_for(BATCH) is handle

        other = await tracker.observe_batch("batch_other")
        await other.wait(timeout=1)

        assert tracker.handle_for(BATCH) is None
        assert tracker.handle_for("batch_other") is other

    @pytest.mark.asyncio
    async def test_shared_empty_session_store(self, test_settings, resume_registry, reconciler, notifier):
        """Trackers given the same empty store share terminal state."""
        shared = SessionStore()
        trackers = [
            make_tracker(
                test_settings, resume_registry, reconciler, shared,
                push_factory=lambda: ScriptedPushTransport([progress(BATCH, "complete", 10, 10)]),
            )
            for _ in range(2)
        ]
        assert all(tracker.sessions is shared for tracker in trackers)

        for tracker in trackers:
            handle = await tracker.observe_batch(BATCH)
            await handle.wait(timeout=1)

        assert len(notifier.sent) == 1


class TestEndToEnd:
    """In-process server and client together."""

    @pytest.mark.asyncio
    async def test_submit_and_observe(self, test_settings, registry, broadcaster, resume_registry, reconciler, sessions, notifier):
        """A 10-unit batch with two invalid units finishes with a warning notification."""
        async def generate(index, request):
            await asyncio.sleep(0.001)
            return {"index": index}

        async def validate(index, draft):
            return index not in (3, 7)

        service = BatchService(registry, broadcaster, StagedBatchWorker(generate, validate=validate))
        tracker = make_tracker(
            test_settings, resume_registry, reconciler, sessions,
            push_factory=lambda: LocalPushTransport(broadcaster),
            fetcher=LocalSnapshotFetcher(registry),
        )

        completed = []
        handle = await tracker.submit_and_observe(
            LocalBatchSubmitter(service),
            BatchRequest(count=10),
            on_complete=completed.append,
        )
        assert tracker.try_resume() == handle.batch_id

        await handle.wait(timeout=5)
        await service.wait_idle(timeout=5)

        assert len(completed) == 1
        assert completed[0].completed == 8
        assert completed[0].failed == 2
        assert completed[0].errors == ["unit 3 invalid", "unit 7 invalid"]
        assert [n.level for n in notifier.sent] == [NotificationLevel.WARNING]
        assert handle.view.percentage == 100.0
        assert tracker.try_resume() is None
        assert broadcaster.subscriber_count(handle.batch_id) == 0

    @pytest.mark.asyncio
    async def test_unknown_batch_over_local_push(self, test_settings, registry, broadcaster, resume_registry, reconciler, sessions):
        """Push to an unknown batch falls back to polling, which gives up at the threshold."""
        tracker = make_tracker(
            test_settings, resume_registry, reconciler, sessions,
            push_factory=lambda: LocalPushTransport(broadcaster),
            fetcher=LocalSnapshotFetcher(registry),
        )
        errors = []
        handle = await tracker.observe_batch("batch_missing", on_error=errors.append)
        await handle.wait(timeout=1)

        assert handle.transport == TransportKind.POLL
        assert [type(e) for e in errors] == [TransportError]
