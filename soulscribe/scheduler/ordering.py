"""
Job ordering and dependency gating

Pure functions over job lists; the scheduler's control loop is the only
caller and the only owner of the lists passed in.
"""

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Set, Tuple

from soulscribe.models import ChapterJob
from soulscribe.scheduler.errors import DeadlockError, JobValidationError

logger = logging.getLogger(__name__)


def validate_jobs(jobs: Iterable[ChapterJob]) -> List[ChapterJob]:
    """
    Reject malformed job lists.

    Raises:
        JobValidationError: on duplicate ids or a job depending on itself
    """
    seen: Set[int] = set()
    validated = []
    for job in jobs:
        if job.id in seen:
            raise JobValidationError(f"Duplicate chapter job id {job.id}")
        if job.id in job.dependencies:
            raise JobValidationError(f"Chapter {job.id} depends on itself")
        seen.add(job.id)
        validated.append(job)
    return validated


def check_feasibility(jobs: List[ChapterJob], completed_ids: Iterable[int] = ()) -> List[int]:
    """
    Verify every job can eventually start, using Kahn's algorithm.

    Args:
        jobs: Jobs still to run
        completed_ids: Ids already satisfied outside this job list

    Returns:
        A feasible topological order of job ids

    Raises:
        DeadlockError: for dependencies on unknown ids or dependency cycles
    """
    known = {job.id for job in jobs} | set(completed_ids)
    missing = {
        job.id: [dep for dep in job.dependencies if dep not in known]
        for job in jobs
    }
    missing = {job_id: deps for job_id, deps in missing.items() if deps}
    if missing:
        detail = ", ".join(f"chapter {job_id} needs {deps}" for job_id, deps in sorted(missing.items()))
        raise DeadlockError(f"Unknown dependencies: {detail}", blocked_ids=missing.keys())

    satisfied = set(completed_ids)
    in_degree: Dict[int, int] = {}
    dependents: Dict[int, List[int]] = {job.id: [] for job in jobs}
    for job in jobs:
        open_deps = [dep for dep in job.dependencies if dep not in satisfied]
        in_degree[job.id] = len(open_deps)
        for dep in open_deps:
            dependents[dep].append(job.id)

    ready = deque(sorted(job_id for job_id, degree in in_degree.items() if degree == 0))
    order = []
    while ready:
        job_id = ready.popleft()
        order.append(job_id)
        for child in dependents[job_id]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                ready.append(child)

    if len(order) < len(jobs):
        blocked = sorted(job_id for job_id, degree in in_degree.items() if degree > 0)
        raise DeadlockError(f"Dependency cycle among chapters {blocked}", blocked_ids=blocked)

    return order


def is_ready(job: ChapterJob, completed_ids) -> bool:
    """A job may start once every dependency has completed"""
    return all(dep in completed_ids for dep in job.dependencies)


def sort_key(job: ChapterJob) -> Tuple[int, int, float, int]:
    """
    Admission order among ready jobs.

    Fewer declared dependencies first, then higher priority, then lower
    complexity (cheap chapters surface completion signals sooner). The id is
    the final tie-break so identical input always admits in the same order.
    """
    return (len(job.dependencies), -job.priority.rank, job.estimated_complexity, job.id)


def order_jobs(jobs: List[ChapterJob]) -> List[ChapterJob]:
    """Initial queue order, before any dependency has completed"""
    return sorted(jobs, key=sort_key)


def select_next(pending: List[ChapterJob], completed_ids) -> Optional[ChapterJob]:
    """
    Pop the best ready job from ``pending``.

    Returns None when no pending job has all of its dependencies completed.
    """
    candidates = [job for job in pending if is_ready(job, completed_ids)]
    if not candidates:
        return None
    chosen = min(candidates, key=sort_key)
    pending.remove(chosen)
    return chosen


def find_blocked_by_failures(pending: List[ChapterJob], failed_ids) -> List[Tuple[ChapterJob, int]]:
    """Pending jobs with a dependency that permanently failed, with the first such dependency"""
    blocked = []
    for job in pending:
        failed_dep = next((dep for dep in job.dependencies if dep in failed_ids), None)
        if failed_dep is not None:
            blocked.append((job, failed_dep))
    return blocked
