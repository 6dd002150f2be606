"""
Progress tracking for a chapter run.

The tracker is owned by the scheduler's control loop. It keeps the per-job
status map and the running average job duration, and pushes a
ProgressSnapshot to the caller's observer after every transition. Observer
failures are logged and swallowed so a broken callback never touches the run.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from soulscribe.models import ChapterJob, JobStatus, ProgressSnapshot

logger = logging.getLogger(__name__)

MILESTONE_MESSAGES = {
    25: "🎉 25% complete! SoulScribe is in the zone!",
    50: "🚀 50% complete! The story is coming alive!",
    75: "⭐ 75% complete! Almost there, the finale awaits!",
    100: "🎊 100% complete! What a masterpiece!",
}


class ProgressTracker:
    """Per-run job status bookkeeping and observer fan-out"""

    def __init__(
        self,
        jobs: Iterable[ChapterJob],
        on_progress: Optional[Callable[[ProgressSnapshot], Any]] = None,
        default_job_estimate: float = 120.0,
        app_logger=None,
    ):
        self.statuses: Dict[int, JobStatus] = {job.id: JobStatus.QUEUED for job in jobs}
        self.on_progress = on_progress
        self.default_job_estimate = default_job_estimate
        self.app_logger = app_logger
        self.snapshots: List[ProgressSnapshot] = []
        self._durations: List[float] = []
        self._milestones_reached: Set[int] = set()
        self._observer_tasks: Set[asyncio.Task] = set()

    # ===== Transitions =====

    def mark_active(self, job_id: int):
        self.statuses[job_id] = JobStatus.ACTIVE

    def mark_completed(self, job_id: int, elapsed: float):
        self.statuses[job_id] = JobStatus.COMPLETED
        self._durations.append(elapsed)
        self._check_milestones()

    def mark_failed(self, job_id: int):
        self.statuses[job_id] = JobStatus.FAILED
        self._check_milestones()

    # ===== Counts =====

    def count(self, status: JobStatus) -> int:
        return sum(1 for s in self.statuses.values() if s == status)

    @property
    def average_job_seconds(self) -> float:
        """Running average over completed jobs, or the default estimate before any"""
        if not self._durations:
            return self.default_job_estimate
        return sum(self._durations) / len(self._durations)

    def snapshot(self) -> ProgressSnapshot:
        queued = self.count(JobStatus.QUEUED)
        average = self.average_job_seconds
        return ProgressSnapshot(
            total=len(self.statuses),
            queued=queued,
            active=self.count(JobStatus.ACTIVE),
            completed=self.count(JobStatus.COMPLETED),
            failed=self.count(JobStatus.FAILED),
            average_job_seconds=average,
            estimated_time_remaining=queued * average,
            statuses=dict(self.statuses),
        )

    # ===== Observer =====

    def emit(self) -> ProgressSnapshot:
        """Build a snapshot and hand it to the observer, isolating its failures"""
        snapshot = self.snapshot()
        self.snapshots.append(snapshot)
        if self.on_progress is None:
            return snapshot

        try:
            outcome = self.on_progress(snapshot)
            if asyncio.iscoroutine(outcome):
                # Async observers run fire-and-forget
                task = asyncio.get_running_loop().create_task(outcome)
                self._observer_tasks.add(task)
                task.add_done_callback(self._observer_task_done)
        except Exception as e:
            logger.warning(f"Progress observer raised {type(e).__name__}: {e} (ignored)")

        return snapshot

    def _observer_task_done(self, task: asyncio.Task):
        self._observer_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Async progress observer raised {type(error).__name__}: {error} (ignored)")

    # ===== Milestones =====

    def _check_milestones(self):
        total = len(self.statuses)
        if total == 0:
            return
        resolved = self.count(JobStatus.COMPLETED) + self.count(JobStatus.FAILED)
        percent = resolved * 100 / total
        for milestone, message in MILESTONE_MESSAGES.items():
            if percent >= milestone and milestone not in self._milestones_reached:
                self._milestones_reached.add(milestone)
                if self.app_logger:
                    self.app_logger.info(message)
                else:
                    logger.info(message)
