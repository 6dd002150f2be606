"""
Scheduler error taxonomy

Only DeadlockError (and JobValidationError for malformed input) ever leaves
ChapterJobScheduler.run(). Generation and scoring failures are recovered per
job into a ProcessingResult.
"""

from typing import Iterable, List, Optional


class SchedulerError(Exception):
    """Base class for chapter scheduler errors"""


class JobValidationError(SchedulerError, ValueError):
    """Raised for malformed job lists (duplicate ids, self-dependencies)"""


class GenerationError(SchedulerError):
    """Transport or provider failure while generating a chapter draft"""

    def __init__(self, message: str, job_id: Optional[int] = None):
        self.job_id = job_id
        super().__init__(message)


class ScoringError(SchedulerError):
    """Failure while scoring a draft; the scheduler treats it as a zero score"""

    def __init__(self, message: str, job_id: Optional[int] = None):
        self.job_id = job_id
        super().__init__(message)


class DeadlockError(SchedulerError):
    """
    No pending job can ever start.

    Raised for dependency cycles, dependencies on unknown job ids, and
    dependencies on jobs that permanently failed. Carries the blocked job ids
    and whatever results were gathered before the abort.
    """

    def __init__(self, message: str, blocked_ids: Iterable[int] = (), results: Optional[List] = None):
        self.blocked_ids = sorted(blocked_ids)
        self.results = list(results or [])
        super().__init__(message)
