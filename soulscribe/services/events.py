"""
Event System for Real-Time Chapter Updates

Turns scheduler progress into story events and fans them out to registered
listeners and per-story queues (the hand-off point for a websocket layer).
"""

from typing import Dict, Callable, Any, List, Optional
from asyncio import Queue
import asyncio
import logging
from datetime import datetime

from soulscribe.models import JobStatus, ProgressSnapshot

logger = logging.getLogger(__name__)


# ==================== Event Type Constants ====================
EVENT_RUN_PROGRESS = "run_progress"
EVENT_CHAPTER_GENERATING = "chapter_generating"
EVENT_CHAPTER_READY = "chapter_ready"
EVENT_CHAPTER_FAILED = "chapter_failed"
EVENT_STORY_COMPLETE = "story_complete"


class StoryEvent:
    """Represents a story event"""
    def __init__(self, event_type: str, story_id: str, data: Dict[str, Any]):
        self.event_type = event_type
        self.story_id = story_id
        self.data = data
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "story_id": self.story_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat()
        }


class EventEmitter:
    """
    Event emitter for chapter run events.

    - run_progress: a ProgressSnapshot after every scheduler transition
    - chapter_generating: a chapter was admitted
    - chapter_ready: a chapter completed
    - chapter_failed: a chapter permanently failed
    - story_complete: nothing left queued or active
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._story_queues: Dict[str, Queue] = {}
        self._pending_tasks = set()

    def on(self, event_type: str, callback: Callable):
        """Register event listener"""
        self._listeners.setdefault(event_type, []).append(callback)

    def off(self, event_type: str, callback: Callable):
        """Remove event listener"""
        if event_type in self._listeners:
            self._listeners[event_type].remove(callback)

    async def emit(self, event_type: str, story_id: str, data: Dict[str, Any]) -> StoryEvent:
        """Emit event to all registered listeners, awaiting async ones"""
        event = StoryEvent(event_type, story_id, data)

        for callback in self._listeners.get(event_type, []):
            try:
                outcome = callback(event)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"Error in event listener for {event_type}: {e}")

        if story_id in self._story_queues:
            await self._story_queues[story_id].put(event)
        return event

    def publish(self, event_type: str, story_id: str, data: Dict[str, Any]) -> StoryEvent:
        """
        Fire-and-forget emission from synchronous code on the event loop.

        Sync listeners run inline; async listeners are scheduled as tasks.
        Never raises.
        """
        event = StoryEvent(event_type, story_id, data)

        for callback in self._listeners.get(event_type, []):
            try:
                outcome = callback(event)
                if asyncio.iscoroutine(outcome):
                    task = asyncio.get_running_loop().create_task(outcome)
                    self._pending_tasks.add(task)
                    task.add_done_callback(self._listener_task_done)
            except Exception as e:
                logger.warning(f"Error in event listener for {event_type}: {e}")

        queue = self._story_queues.get(story_id)
        if queue is not None:
            queue.put_nowait(event)
        return event

    def _listener_task_done(self, task: asyncio.Task):
        self._pending_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Async event listener failed: {task.exception()}")

    def create_story_queue(self, story_id: str) -> Queue:
        """Create event queue for a specific story (for a websocket connection)"""
        queue = Queue()
        self._story_queues[story_id] = queue
        return queue

    def remove_story_queue(self, story_id: str):
        """Remove story queue when the connection goes away"""
        self._story_queues.pop(story_id, None)

    # ==================== Scheduler bridge ====================

    def progress_listener(self, story_id: str) -> Callable[[ProgressSnapshot], None]:
        """
        Build an ``on_progress`` observer that republishes scheduler progress.

        Besides a run_progress event per snapshot, publishes per-chapter
        events when a job's status changes and story_complete once nothing is
        queued or active.
        """
        last_statuses: Dict[int, JobStatus] = {}
        state = {"complete": False}

        def on_progress(snapshot: ProgressSnapshot):
            self.publish(EVENT_RUN_PROGRESS, story_id, {
                "total": snapshot.total,
                "queued": snapshot.queued,
                "active": snapshot.active,
                "completed": snapshot.completed,
                "failed": snapshot.failed,
                "percent_complete": snapshot.percent_complete,
                "estimated_time_remaining": round(snapshot.estimated_time_remaining, 1),
            })

            for job_id, status in sorted(snapshot.statuses.items()):
                if last_statuses.get(job_id) == status:
                    continue
                last_statuses[job_id] = status
                if status == JobStatus.ACTIVE:
                    self.publish(EVENT_CHAPTER_GENERATING, story_id, {"chapter": job_id})
                elif status == JobStatus.COMPLETED:
                    self.publish(EVENT_CHAPTER_READY, story_id, {"chapter": job_id})
                elif status == JobStatus.FAILED:
                    self.publish(EVENT_CHAPTER_FAILED, story_id, {"chapter": job_id})

            if not state["complete"] and snapshot.queued == 0 and snapshot.active == 0:
                state["complete"] = True
                self.publish(EVENT_STORY_COMPLETE, story_id, {
                    "completed": snapshot.completed,
                    "failed": snapshot.failed,
                })

        return on_progress


# Global event emitter instance
story_events = EventEmitter()
