"""
Unit tests for job ordering, allocation, backoff and the job factory.

Run with: python -m pytest tests/test_ordering.py -v
"""

import random

import pytest

from conftest import make_job
from soulscribe.models import ChapterJob, JobPriority
from soulscribe.scheduler import (
    DeadlockError,
    JobValidationError,
    calculate_max_tokens,
    calculate_temperature,
    check_feasibility,
    compute_backoff,
    create_chapter_jobs,
    order_jobs,
    select_next,
    validate_jobs,
)
from soulscribe.scheduler.ordering import find_blocked_by_failures


class TestValidation:

    def test_valid_jobs_pass_through(self):
        jobs = [make_job(1), make_job(2, [1])]
        assert validate_jobs(jobs) == jobs

    def test_duplicate_id(self):
        with pytest.raises(JobValidationError, match="Duplicate"):
            validate_jobs([make_job(3), make_job(3)])

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_jobs([make_job(2, [2])])


class TestFeasibility:

    def test_returns_topological_order(self):
        jobs = [make_job(3, [1, 2]), make_job(2, [1]), make_job(1)]
        assert check_feasibility(jobs) == [1, 2, 3]

    def test_three_node_cycle(self):
        jobs = [make_job(1, [3]), make_job(2, [1]), make_job(3, [2]), make_job(4)]
        with pytest.raises(DeadlockError) as exc_info:
            check_feasibility(jobs)
        assert exc_info.value.blocked_ids == [1, 2, 3]

    def test_unknown_ids_reported_before_cycles(self):
        jobs = [make_job(1, [2]), make_job(2, [1]), make_job(3, [99])]
        with pytest.raises(DeadlockError, match="Unknown dependencies"):
            check_feasibility(jobs)

    def test_completed_ids_satisfy_dependencies(self):
        assert check_feasibility([make_job(5, [4])], completed_ids=[4]) == [5]


class TestSelection:

    def test_only_ready_jobs_selected(self):
        pending = [make_job(2, [1]), make_job(3, [1])]
        assert select_next(pending, {}) is None
        assert len(pending) == 2

    def test_fewer_dependencies_first(self):
        pending = [make_job(3, [1, 2]), make_job(4, [1])]
        chosen = select_next(pending, {1: object(), 2: object()})
        assert chosen.id == 4
        assert [job.id for job in pending] == [3]

    def test_priority_breaks_ties(self):
        pending = [make_job(1, priority="low"), make_job(2, priority="high"), make_job(3)]
        assert [job.id for job in order_jobs(pending)] == [2, 3, 1]

    def test_lower_complexity_breaks_priority_ties(self):
        pending = [make_job(1, estimated_complexity=0.9), make_job(2, estimated_complexity=0.2)]
        assert select_next(pending, {}).id == 2

    def test_id_is_final_tie_break(self):
        pending = [make_job(7), make_job(4), make_job(5)]
        assert select_next(pending, {}).id == 4

    def test_blocked_by_failures(self):
        pending = [make_job(2, [1]), make_job(3, [5, 1]), make_job(4)]
        blocked = find_blocked_by_failures(pending, {1})
        assert [(job.id, dep) for job, dep in blocked] == [(2, 1), (3, 1)]


class TestJobModel:

    def test_priority_case_insensitive(self):
        assert ChapterJob(id=1, title="A", priority="HIGH").priority == JobPriority.HIGH

    def test_dependencies_deduplicated_in_order(self):
        assert ChapterJob(id=5, title="A", dependencies=[3, 1, 3, 2, 1]).dependencies == [3, 1, 2]

    def test_complexity_bounds(self):
        with pytest.raises(ValueError):
            ChapterJob(id=1, title="A", estimated_complexity=1.5)


class TestAllocation:

    def test_first_attempt_temperature(self):
        assert calculate_temperature(make_job(1), 1) == 0.85

    def test_temperature_cools_per_retry(self):
        job = make_job(1)
        assert calculate_temperature(job, 2) == 0.75
        assert calculate_temperature(job, 3) == 0.65

    def test_complex_chapter_runs_cooler(self):
        assert calculate_temperature(make_job(1, estimated_complexity=0.9), 1) == 0.75

    def test_temperature_floor(self):
        assert calculate_temperature(make_job(1, estimated_complexity=0.95), 10) == 0.3

    def test_token_budget(self):
        assert calculate_max_tokens(make_job(1)) == 4000
        assert calculate_max_tokens(make_job(1, estimated_complexity=0.8)) == 5000
        assert calculate_max_tokens(make_job(1, estimated_complexity=0.8, priority="high")) == 5500


class TestBackoff:

    def test_zero_base_means_no_delay(self):
        assert compute_backoff(3, 0.0, 30.0) == 0.0

    def test_doubles_per_attempt_without_jitter(self):
        assert compute_backoff(1, 1.0, 30.0, jitter=0) == 1.0
        assert compute_backoff(2, 1.0, 30.0, jitter=0) == 2.0
        assert compute_backoff(4, 1.0, 30.0, jitter=0) == 8.0

    def test_capped(self):
        assert compute_backoff(10, 1.0, 5.0, jitter=0) == 5.0

    def test_jitter_stays_in_band(self):
        rng = random.Random(3)
        for _ in range(50):
            delay = compute_backoff(2, 1.0, 30.0, jitter=0.5, rng=rng)
            assert 1.0 <= delay <= 3.0


class TestChapterJobFactory:

    def outline(self, count):
        return [{"number": n, "title": f"Part {n}"} for n in range(1, count + 1)]

    def test_linear_chain(self):
        jobs = create_chapter_jobs(self.outline(4))
        assert [job.dependencies for job in jobs] == [[], [1], [2], [3]]

    def test_bookends_are_high_priority(self):
        jobs = create_chapter_jobs(self.outline(6))
        high = [job.id for job in jobs if job.priority == JobPriority.HIGH]
        assert high == [1, 2, 5, 6]

    def test_unsorted_outline_and_complexity(self):
        jobs = create_chapter_jobs(
            [{"number": 2, "title": "B", "complexity": 0.9}, {"number": 1, "title": "A"}],
            story_context="seed",
        )
        assert [job.id for job in jobs] == [1, 2]
        assert jobs[0].estimated_complexity == 0.5
        assert jobs[1].estimated_complexity == 0.9
        assert jobs[1].dependencies == [1]
        assert all(job.story_context == "seed" for job in jobs)
