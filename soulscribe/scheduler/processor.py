"""
Chapter Job Scheduler - bounded-concurrency chapter generation

Runs chapter jobs through an injected generator and scorer:
1. Admits ready jobs (all dependencies completed) while fewer than
   ``max_concurrency`` are in flight
2. Waits for the first in-flight job to finish
3. Routes the outcome (completed map, store, results)
4. Emits a progress snapshot
until nothing is pending or in flight.

A single control loop owns all run state. Job tasks only read the context
string they were started with and hand their ProcessingResult back as the
task's return value, so no locks are needed.

Usage:
    scheduler = ChapterJobScheduler(generator=writer.generate, scorer=analyzer.score)
    report = await scheduler.run(jobs, shared_context, SchedulerConfig(max_concurrency=3))
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set

from soulscribe.models import (
    ChapterJob,
    Draft,
    GenerationContext,
    ProcessingResult,
    QualityScore,
    RunReport,
    SchedulerConfig,
)
from soulscribe.scheduler.allocation import calculate_max_tokens, calculate_temperature
from soulscribe.scheduler.backoff import compute_backoff
from soulscribe.scheduler.errors import DeadlockError, GenerationError, ScoringError
from soulscribe.scheduler.ordering import (
    check_feasibility,
    find_blocked_by_failures,
    order_jobs,
    select_next,
    validate_jobs,
)
from soulscribe.scheduler.progress import ProgressTracker
from soulscribe.services.revision import build_job_context, merge_notes, revision_notes_for

logger = logging.getLogger(__name__)

Generator = Callable[[ChapterJob, GenerationContext], Awaitable[Any]]
Scorer = Callable[[Draft], Awaitable[Any]]


@dataclass
class SchedulerState:
    """Run-local state, written only by the control loop"""
    pending: List[ChapterJob]
    in_flight: Dict[int, asyncio.Task] = field(default_factory=dict)
    completed: Dict[int, Draft] = field(default_factory=dict)
    results: List[ProcessingResult] = field(default_factory=list)
    failed_ids: Set[int] = field(default_factory=set)
    persisted_ids: Set[int] = field(default_factory=set)
    peak_in_flight: int = 0


class ChapterJobScheduler:
    """
    Dependency-gated, quality-gated chapter job scheduler.

    Holds no state between run() calls; each call builds a fresh
    SchedulerState.
    """

    def __init__(
        self,
        generator,
        scorer,
        store=None,
        story_id: str = "story",
        logger=None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            generator: Async callable (job, context) -> Draft, or an object with .generate
            scorer: Async callable (draft) -> QualityScore | float, or an object with .score
            store: Optional chapter store with async save_chapter(story_id, draft)
            story_id: Story the chapters belong to (store key and log label)
            logger: Optional application logger (defaults to get_logger())
            rng: Random source for backoff jitter
        """
        from soulscribe.services.logger import get_logger

        self.generator: Generator = getattr(generator, "generate", generator)
        self.scorer: Scorer = getattr(scorer, "score", scorer)
        self.store = store
        self.story_id = story_id
        self.logger = logger if logger else get_logger()
        self.rng = rng
        self.peak_in_flight = 0

    # ==================== Control loop ====================

    async def run(
        self,
        jobs: Sequence[ChapterJob],
        shared_context: str = "",
        config: Optional[SchedulerConfig] = None,
    ) -> RunReport:
        """
        Run every job to a terminal outcome.

        Job-level failures come back as failed ProcessingResults; callers must
        check ``succeeded`` per result.

        Raises:
            JobValidationError: duplicate ids or self-dependencies
            DeadlockError: no pending job can ever start (cycle, unknown or
                permanently failed dependency)
        """
        config = config or SchedulerConfig()
        validated = validate_jobs(jobs)
        check_feasibility(validated)

        state = SchedulerState(pending=order_jobs(validated))
        tracker = ProgressTracker(
            validated,
            on_progress=config.on_progress,
            default_job_estimate=config.default_job_estimate_seconds,
            app_logger=self.logger,
        )
        self.peak_in_flight = 0

        self.logger.run_started(self.story_id, len(validated), config.max_concurrency)
        started = time.monotonic()
        tracker.emit()

        try:
            while state.pending or state.in_flight:
                self._admit_ready_jobs(state, tracker, shared_context, config)

                if not state.in_flight:
                    blocked = [job.id for job in state.pending]
                    raise DeadlockError(
                        f"No runnable chapters: {blocked} wait on chapters that will never complete "
                        f"(failed: {sorted(state.failed_ids)})",
                        blocked_ids=blocked,
                        results=state.results,
                    )

                done, _ = await asyncio.wait(
                    list(state.in_flight.values()),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                finished = sorted(
                    job_id for job_id, task in state.in_flight.items() if task in done
                )
                for job_id in finished:
                    task = state.in_flight.pop(job_id)
                    result = self._task_result(job_id, task)
                    await self._route_result(state, tracker, result, config)
                    tracker.emit()
        finally:
            await self._cancel_in_flight(state)

        total_elapsed = time.monotonic() - started
        report = self._build_report(state, total_elapsed, config)
        self.logger.run_completed(
            self.story_id, len(report.succeeded_ids), len(report.failed_ids), total_elapsed
        )
        return report

    def _admit_ready_jobs(
        self,
        state: SchedulerState,
        tracker: ProgressTracker,
        shared_context: str,
        config: SchedulerConfig,
    ):
        while len(state.in_flight) < config.max_concurrency:
            job = select_next(state.pending, state.completed)
            if job is None:
                break

            context_text = build_job_context(shared_context, job, state.completed)
            self.logger.job_received(job.id, job.title, f"priority {job.priority.value}")
            self.logger.debug("SCHEDULER", f"Context built for chapter {job.id}", {
                "dependencies": job.dependencies,
                "context_chars": len(context_text),
            })

            state.in_flight[job.id] = asyncio.create_task(
                self._run_job(job, context_text, config),
                name=f"chapter-{job.id}",
            )
            state.peak_in_flight = max(state.peak_in_flight, len(state.in_flight))
            self.peak_in_flight = state.peak_in_flight

            tracker.mark_active(job.id)
            tracker.emit()

    def _task_result(self, job_id: int, task: asyncio.Task) -> ProcessingResult:
        if task.cancelled():
            # The collaborator cancelled itself; run() only cancels tasks on its way out
            logger.error(f"Chapter {job_id} task was cancelled")
            return ProcessingResult(job_id=job_id, succeeded=False, error_message="Chapter task was cancelled")
        error = task.exception()
        if error is None:
            return task.result()
        # _run_job recovers collaborator errors itself; anything here is a bug surfacing
        logger.error(f"Chapter {job_id} task crashed: {type(error).__name__}: {error}")
        return ProcessingResult(
            job_id=job_id,
            succeeded=False,
            error_message=f"{type(error).__name__}: {error}",
        )

    async def _route_result(
        self,
        state: SchedulerState,
        tracker: ProgressTracker,
        result: ProcessingResult,
        config: SchedulerConfig,
    ):
        state.results.append(result)

        if result.succeeded and result.payload is not None:
            state.completed[result.job_id] = result.payload
            tracker.mark_completed(result.job_id, result.elapsed_time)
            self.logger.job_completed(result.job_id, result.quality_score, result.elapsed_time)
            if self.store is not None:
                result.persisted = await self._persist(state, result.payload)
            return

        state.failed_ids.add(result.job_id)
        tracker.mark_failed(result.job_id)
        self.logger.job_failed(result.job_id, result.error_message or "unknown error")

        if config.abandon_dependents:
            self._abandon_dependents(state, tracker)

    def _abandon_dependents(self, state: SchedulerState, tracker: ProgressTracker):
        """Fail every pending job that transitively depends on a failed one"""
        blocked = find_blocked_by_failures(state.pending, state.failed_ids)
        while blocked:
            for job, failed_dep in blocked:
                state.pending.remove(job)
                state.failed_ids.add(job.id)
                state.results.append(ProcessingResult(
                    job_id=job.id,
                    succeeded=False,
                    attempts=0,
                    error_message=f"dependency {failed_dep} failed",
                ))
                tracker.mark_failed(job.id)
                self.logger.job_failed(job.id, f"abandoned, dependency {failed_dep} failed")
            blocked = find_blocked_by_failures(state.pending, state.failed_ids)

    async def _persist(self, state: SchedulerState, draft: Draft) -> bool:
        """Save a completed chapter at most once"""
        if draft.job_id in state.persisted_ids:
            return True
        state.persisted_ids.add(draft.job_id)
        try:
            await self.store.save_chapter(self.story_id, draft)
            return True
        except Exception as e:
            self.logger.error("ChapterStore", f"Saving chapter {draft.job_id} failed", e)
            return False

    async def _cancel_in_flight(self, state: SchedulerState):
        if not state.in_flight:
            return
        tasks = list(state.in_flight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Cancelled {len(tasks)} in-flight chapter job(s)")
        state.in_flight.clear()

    def _build_report(self, state: SchedulerState, total_elapsed: float, config: SchedulerConfig) -> RunReport:
        succeeded = [r for r in state.results if r.succeeded]
        average_quality = (
            sum(r.quality_score for r in succeeded) / len(succeeded) if succeeded else 0.0
        )
        average_job = (
            sum(r.elapsed_time for r in succeeded) / len(succeeded) if succeeded else 0.0
        )
        busy_time = sum(r.elapsed_time for r in state.results)
        efficiency = 0.0
        if total_elapsed > 0:
            efficiency = min(busy_time / total_elapsed, float(config.max_concurrency))

        return RunReport(
            results=list(state.results),
            completed_payloads=[state.completed[job_id] for job_id in sorted(state.completed)],
            total_elapsed=total_elapsed,
            average_quality_score=average_quality,
            average_job_seconds=average_job,
            tokens_used=sum(r.tokens_used for r in state.results),
            parallel_efficiency=round(efficiency, 3),
        )

    # ==================== Per-job execution ====================

    async def _run_job(self, job: ChapterJob, context_text: str, config: SchedulerConfig) -> ProcessingResult:
        """
        Attempt loop for one job.

        Generation errors retry after a backoff delay; low scores retry with
        the scorer's hints folded into the next context. Returns a result in
        every case except cancellation.
        """
        started = time.monotonic()
        max_attempts = config.max_retries + 1
        attempts = 0
        tokens = 0
        notes: List[str] = []
        best: Optional[tuple] = None
        last_error: Optional[Exception] = None

        while attempts < max_attempts:
            attempts += 1
            context = GenerationContext(
                story_context=context_text,
                revision_notes=list(notes),
                attempt=attempts,
                temperature=calculate_temperature(job, attempts),
                max_tokens=calculate_max_tokens(job),
            )

            try:
                draft = await self._generate(job, context, config)
            except GenerationError as e:
                last_error = e
                logger.warning(f"Chapter {job.id} attempt {attempts} generation failed: {e}")
                if attempts < max_attempts:
                    self.logger.job_retrying(job.id, attempts + 1, max_attempts, str(e))
                    delay = compute_backoff(
                        attempts, config.retry_backoff_seconds, config.max_backoff_seconds, rng=self.rng
                    )
                    if delay > 0:
                        await asyncio.sleep(delay)
                continue

            tokens += draft.tokens_used
            quality = await self._score(draft, config)
            if best is None or quality.score > best[1].score:
                best = (draft, quality)

            if quality.score >= config.quality_threshold:
                return ProcessingResult(
                    job_id=job.id,
                    succeeded=True,
                    payload=draft,
                    attempts=attempts,
                    quality_score=quality.score,
                    elapsed_time=time.monotonic() - started,
                    tokens_used=tokens,
                )

            if attempts < max_attempts:
                notes = merge_notes(notes, revision_notes_for(quality, config.quality_threshold))
                self.logger.job_retrying(
                    job.id, attempts + 1, max_attempts,
                    f"quality {quality.score:.2f} below threshold {config.quality_threshold:.2f}"
                )

        elapsed = time.monotonic() - started
        if best is None:
            return ProcessingResult(
                job_id=job.id,
                succeeded=False,
                error_message=str(last_error) if last_error else "Exceeded maximum retry attempts",
                attempts=attempts,
                elapsed_time=elapsed,
                tokens_used=tokens,
            )

        draft, quality = best
        if config.accept_low_quality:
            return ProcessingResult(
                job_id=job.id,
                succeeded=True,
                payload=draft,
                attempts=attempts,
                quality_score=quality.score,
                elapsed_time=elapsed,
                tokens_used=tokens,
                below_threshold=True,
            )
        return ProcessingResult(
            job_id=job.id,
            succeeded=False,
            payload=draft,
            error_message=(
                f"Quality {quality.score:.2f} below threshold {config.quality_threshold:.2f} "
                f"after {attempts} attempts"
            ),
            attempts=attempts,
            quality_score=quality.score,
            elapsed_time=elapsed,
            tokens_used=tokens,
            below_threshold=True,
        )

    async def _generate(self, job: ChapterJob, context: GenerationContext, config: SchedulerConfig) -> Draft:
        """Call the generator, normalizing every failure to GenerationError"""
        try:
            if config.attempt_timeout_seconds:
                raw = await asyncio.wait_for(self.generator(job, context), config.attempt_timeout_seconds)
            else:
                raw = await self.generator(job, context)
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"Chapter {job.id} generation timed out after {config.attempt_timeout_seconds}s", job.id
            ) from e
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"{type(e).__name__}: {e}", job.id) from e

        # The payload always belongs to the job it was generated for
        if isinstance(raw, Draft):
            if raw.job_id != job.id:
                logger.warning(f"Generator returned a draft for chapter {raw.job_id} while writing chapter {job.id}")
                return raw.model_copy(update={"job_id": job.id})
            return raw
        if isinstance(raw, dict):
            try:
                return Draft(**{"title": job.title, **raw, "job_id": job.id})
            except ValueError as e:
                raise GenerationError(f"Generator returned an invalid draft: {e}", job.id) from e
        raise GenerationError(f"Generator returned {type(raw).__name__}, expected Draft", job.id)

    async def _score(self, draft: Draft, config: SchedulerConfig) -> QualityScore:
        """Call the scorer; any failure counts as a zero score"""
        try:
            if config.attempt_timeout_seconds:
                raw = await asyncio.wait_for(self.scorer(draft), config.attempt_timeout_seconds)
            else:
                raw = await self.scorer(draft)
            return QualityScore.coerce(raw)
        except asyncio.TimeoutError:
            error = ScoringError(f"Scoring chapter {draft.job_id} timed out", draft.job_id)
        except ScoringError as e:
            error = e
        except Exception as e:
            error = ScoringError(f"{type(e).__name__}: {e}", draft.job_id)

        logger.warning(f"Chapter {draft.job_id} scoring failed, treating as 0.0: {error}")
        return QualityScore(score=0.0)
