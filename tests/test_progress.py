"""
Unit tests for ProgressTracker and the event bridge.

Run with: python -m pytest tests/test_progress.py -v
"""

import asyncio
import logging

from conftest import make_job
from soulscribe.models import JobStatus
from soulscribe.scheduler import ProgressTracker
from soulscribe.services.events import (
    EVENT_CHAPTER_FAILED,
    EVENT_CHAPTER_READY,
    EVENT_RUN_PROGRESS,
    EVENT_STORY_COMPLETE,
    EventEmitter,
)


class TestProgressTracker:

    def setup_method(self):
        self.jobs = [make_job(i) for i in range(1, 5)]

    def test_initial_snapshot(self):
        tracker = ProgressTracker(self.jobs, default_job_estimate=30)
        snapshot = tracker.snapshot()

        assert (snapshot.total, snapshot.queued, snapshot.active) == (4, 4, 0)
        assert snapshot.estimated_time_remaining == 120
        assert snapshot.percent_complete == 0

    def test_running_average_replaces_default(self):
        tracker = ProgressTracker(self.jobs, default_job_estimate=30)
        tracker.mark_active(1)
        tracker.mark_completed(1, 10.0)
        tracker.mark_active(2)
        tracker.mark_completed(2, 20.0)

        snapshot = tracker.snapshot()
        assert snapshot.average_job_seconds == 15.0
        assert snapshot.estimated_time_remaining == 30.0
        assert snapshot.statuses[1] == JobStatus.COMPLETED

    def test_failed_jobs_do_not_affect_average(self):
        tracker = ProgressTracker(self.jobs, default_job_estimate=30)
        tracker.mark_failed(3)
        assert tracker.average_job_seconds == 30
        assert tracker.snapshot().failed == 1

    def test_emit_records_snapshots(self):
        tracker = ProgressTracker(self.jobs)
        tracker.emit()
        tracker.mark_active(1)
        tracker.emit()
        assert [s.active for s in tracker.snapshots] == [0, 1]

    def test_observer_exception_logged_and_swallowed(self, caplog):
        def observer(snapshot):
            raise ValueError("nope")

        tracker = ProgressTracker(self.jobs, on_progress=observer)
        with caplog.at_level(logging.WARNING):
            snapshot = tracker.emit()

        assert snapshot.total == 4
        assert "Progress observer raised ValueError" in caplog.text

    async def test_failing_async_observer_is_contained(self, caplog):
        async def observer(snapshot):
            raise RuntimeError("socket closed")

        tracker = ProgressTracker(self.jobs, on_progress=observer)
        with caplog.at_level(logging.WARNING):
            tracker.emit()
            await asyncio.sleep(0.01)

        assert "Async progress observer raised RuntimeError" in caplog.text

    def test_milestones_logged_once(self, caplog):
        tracker = ProgressTracker(self.jobs)
        with caplog.at_level(logging.INFO):
            tracker.mark_completed(1, 1.0)
            tracker.mark_failed(2)
            tracker.mark_completed(3, 1.0)
            tracker.mark_completed(4, 1.0)

        for milestone in ("25%", "50%", "75%", "100%"):
            assert caplog.text.count(f"{milestone} complete") == 1


class TestEventBridge:

    def setup_method(self):
        self.emitter = EventEmitter()
        self.tracker = ProgressTracker([make_job(1), make_job(2)])

    async def test_progress_listener_publishes_to_story_queue(self):
        queue = self.emitter.create_story_queue("story-1")
        listener = self.emitter.progress_listener("story-1")

        listener(self.tracker.snapshot())
        self.tracker.mark_active(1)
        self.tracker.mark_completed(1, 2.0)
        listener(self.tracker.snapshot())
        self.tracker.mark_active(2)
        self.tracker.mark_failed(2)
        listener(self.tracker.snapshot())

        types = []
        while not queue.empty():
            types.append((await queue.get()).event_type)

        assert types.count(EVENT_RUN_PROGRESS) == 3
        assert EVENT_CHAPTER_READY in types
        assert EVENT_CHAPTER_FAILED in types
        assert types[-1] == EVENT_STORY_COMPLETE

    def test_chapter_events_only_on_status_change(self):
        ready = []
        self.emitter.on(EVENT_CHAPTER_READY, ready.append)
        listener = self.emitter.progress_listener("story-2")

        self.tracker.mark_completed(1, 1.0)
        listener(self.tracker.snapshot())
        listener(self.tracker.snapshot())

        assert [event.data["chapter"] for event in ready] == [1]

    def test_listener_errors_are_isolated(self):
        def broken(event):
            raise KeyError("boom")

        received = []
        self.emitter.on(EVENT_RUN_PROGRESS, broken)
        self.emitter.on(EVENT_RUN_PROGRESS, received.append)

        self.emitter.publish(EVENT_RUN_PROGRESS, "story-3", {"completed": 0})

        assert len(received) == 1

    async def test_emit_awaits_async_listeners(self):
        received = []

        async def listener(event):
            received.append(event.to_dict())

        self.emitter.on(EVENT_STORY_COMPLETE, listener)
        await self.emitter.emit(EVENT_STORY_COMPLETE, "story-4", {"completed": 2})

        assert received[0]["type"] == EVENT_STORY_COMPLETE
        assert received[0]["story_id"] == "story-4"

    def test_removed_queue_receives_nothing(self):
        queue = self.emitter.create_story_queue("story-5")
        self.emitter.remove_story_queue("story-5")
        self.emitter.publish(EVENT_RUN_PROGRESS, "story-5", {})
        assert queue.empty()
