"""Chapter job scheduler package for SoulScribe"""

from .errors import (
    SchedulerError,
    JobValidationError,
    GenerationError,
    ScoringError,
    DeadlockError,
)
from .ordering import validate_jobs, check_feasibility, order_jobs, select_next
from .allocation import calculate_temperature, calculate_max_tokens
from .backoff import compute_backoff
from .progress import ProgressTracker
from .jobs import create_chapter_jobs
from .processor import ChapterJobScheduler, SchedulerState

__all__ = [
    "ChapterJobScheduler",
    "SchedulerState",
    "ProgressTracker",
    "create_chapter_jobs",
    # Errors
    "SchedulerError",
    "JobValidationError",
    "GenerationError",
    "ScoringError",
    "DeadlockError",
    # Ordering
    "validate_jobs",
    "check_feasibility",
    "order_jobs",
    "select_next",
    # Allocation
    "calculate_temperature",
    "calculate_max_tokens",
    "compute_backoff",
]
