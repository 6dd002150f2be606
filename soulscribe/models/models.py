"""
Pydantic data models for the SoulScribe chapter scheduler

Covers the unit of work (ChapterJob), what the collaborators exchange with
the scheduler (GenerationContext, Draft, QualityScore), and what the
scheduler reports back (ProcessingResult, ProgressSnapshot, RunReport).

| Field                      | Range      | Model            | Notes                                |
|----------------------------|------------|------------------|--------------------------------------|
| ChapterJob.id              | >= 1       | ChapterJob       | Chapter number, also dependency key  |
| ChapterJob.complexity      | 0.0 - 1.0  | ChapterJob       | Drives ordering and token budget     |
| QualityScore.score         | 0.0 - 1.0  | QualityScore     | Clamped; NaN and inf are rejected    |
| SchedulerConfig.concurrency| >= 1       | SchedulerConfig  | Admission gate, no upper bound       |
"""

import math

from pydantic import BaseModel, Field, validator, field_serializer
from typing import List, Optional, Dict, Any, Callable
from datetime import datetime
from enum import Enum

from soulscribe.config.limits import (
    DEFAULT_JOB_ESTIMATE_SECONDS,
    MAX_BACKOFF_SECONDS,
)


# ============================================================================
# Enums
# ============================================================================

class JobPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Numeric rank, higher runs first among equally-ready jobs"""
        return {"low": 1, "normal": 2, "high": 3}[self.value]


class JobStatus(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# Jobs
# ============================================================================

class ChapterJob(BaseModel):
    """One chapter to generate, gated on the chapters it depends on"""
    id: int = Field(..., ge=1, description="Chapter number, also the dependency key")
    title: str
    dependencies: List[int] = Field(
        default_factory=list,
        description="Job ids that must complete first, in declaration order"
    )
    priority: JobPriority = JobPriority.NORMAL
    estimated_complexity: float = Field(default=0.5, ge=0.0, le=1.0)
    story_context: str = Field(default="", description="Job-specific seed text added to the shared context")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @validator('priority', pre=True)
    def normalize_priority(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @validator('dependencies')
    def dedupe_dependencies(cls, v):
        # Keep first occurrence so context order follows the declaration
        seen = set()
        ordered = []
        for dep in v:
            if dep not in seen:
                seen.add(dep)
                ordered.append(dep)
        return ordered


class GenerationContext(BaseModel):
    """Everything the generator gets besides the job itself"""
    story_context: str = ""
    revision_notes: List[str] = Field(default_factory=list)
    attempt: int = Field(default=1, ge=1)
    temperature: float = Field(default=0.85, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4000, ge=1)

    @property
    def is_revision(self) -> bool:
        return bool(self.revision_notes)

    def to_prompt_context(self) -> str:
        """Render the context as a single block of prompt text"""
        parts = [self.story_context.strip()] if self.story_context.strip() else []
        if self.revision_notes:
            parts.append("IMPROVEMENT NEEDED:\n" + "\n".join(
                f"- revise to address: {note}" for note in self.revision_notes
            ))
        return "\n\n".join(parts)


class Draft(BaseModel):
    """Generator output for a job, before or after scoring"""
    job_id: int = Field(..., ge=1)
    title: str
    content: str
    summary: str = ""
    key_lessons: List[str] = Field(default_factory=list)
    word_count: int = Field(default=0, ge=0)
    tokens_used: int = Field(default=0, ge=0)
    model: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = {"protected_namespaces": ()}

    @validator('word_count', always=True)
    def calculate_word_count(cls, v, values):
        if 'content' in values:
            return len(values['content'].split())
        return v

    @field_serializer('created_at')
    def serialize_created_at(self, v: datetime, _info):
        """Serialize datetime to ISO format string for JSON compatibility."""
        return v.isoformat() if v else None

    def short_summary(self, max_length: int) -> str:
        """Summary for downstream context, falling back to the opening of the content"""
        text = (self.summary or self.content).strip()
        if len(text) > max_length:
            return text[:max_length].rstrip() + "..."
        return text


class QualityScore(BaseModel):
    """Scorer verdict for one draft"""
    score: float = Field(..., ge=0.0, le=1.0)
    hints: List[str] = Field(default_factory=list, description="Improvement suggestions for a revision")

    @validator('score', pre=True)
    def clamp_score(cls, v):
        score = float(v)
        # min/max would turn NaN into 1.0
        if not math.isfinite(score):
            raise ValueError(f"Quality score must be finite, got {v!r}")
        return max(0.0, min(1.0, score))

    @classmethod
    def coerce(cls, value: Any) -> "QualityScore":
        """Accept a QualityScore, a bare number, or a dict from a scorer"""
        if isinstance(value, QualityScore):
            return value
        if isinstance(value, dict):
            return cls(**value)
        return cls(score=value)


# ============================================================================
# Results and reporting
# ============================================================================

class ProcessingResult(BaseModel):
    """Terminal outcome of one job's attempt sequence"""
    job_id: int = Field(..., ge=1)
    succeeded: bool
    payload: Optional[Draft] = None
    error_message: Optional[str] = None
    attempts: int = Field(default=1, ge=0, description="Attempts made; 0 only for jobs abandoned behind a failed dependency")
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    elapsed_time: float = Field(default=0.0, ge=0.0, description="Seconds from admission to outcome")
    tokens_used: int = Field(default=0, ge=0)
    below_threshold: bool = Field(default=False, description="Accepted even though the score stayed under the threshold")
    persisted: Optional[bool] = Field(None, description="Store save outcome; None when no store is configured")


class ProgressSnapshot(BaseModel):
    """Aggregate progress emitted after every scheduler state transition"""
    total: int = Field(..., ge=0)
    queued: int = Field(..., ge=0)
    active: int = Field(..., ge=0)
    completed: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    average_job_seconds: float = Field(..., ge=0.0)
    estimated_time_remaining: float = Field(..., ge=0.0, description="Seconds, queued x running average")
    statuses: Dict[int, JobStatus] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def percent_complete(self) -> float:
        if self.total == 0:
            return 100.0
        return round((self.completed + self.failed) / self.total * 100, 1)

    @field_serializer('timestamp')
    def serialize_timestamp(self, v: datetime, _info):
        return v.isoformat() if v else None


class RunReport(BaseModel):
    """Everything run() hands back"""
    results: List[ProcessingResult] = Field(default_factory=list, description="In completion order")
    completed_payloads: List[Draft] = Field(default_factory=list, description="Ordered by job id")
    total_elapsed: float = Field(default=0.0, ge=0.0)
    average_quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    average_job_seconds: float = Field(default=0.0, ge=0.0)
    tokens_used: int = Field(default=0, ge=0)
    parallel_efficiency: float = Field(default=0.0, ge=0.0)

    @property
    def succeeded_ids(self) -> List[int]:
        return sorted(r.job_id for r in self.results if r.succeeded)

    @property
    def failed_ids(self) -> List[int]:
        return sorted(r.job_id for r in self.results if not r.succeeded)

    @property
    def all_succeeded(self) -> bool:
        return all(r.succeeded for r in self.results)


# ============================================================================
# Scheduler configuration
# ============================================================================

class SchedulerConfig(BaseModel):
    """Options for one ChapterJobScheduler.run() call"""
    max_concurrency: int = Field(default=3, ge=1)
    quality_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_retries: int = Field(default=2, ge=0)
    on_progress: Optional[Callable[[ProgressSnapshot], Any]] = None

    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)
    max_backoff_seconds: float = Field(default=MAX_BACKOFF_SECONDS, ge=0.0)
    attempt_timeout_seconds: Optional[float] = Field(default=300.0, gt=0.0)
    default_job_estimate_seconds: float = Field(default=DEFAULT_JOB_ESTIMATE_SECONDS, ge=0.0)

    # Exhausted retries below threshold: accept best attempt (True) or fail the job
    accept_low_quality: bool = True
    # Dependents of a permanently failed job: fail them (True) or raise DeadlockError
    abandon_dependents: bool = False

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> "SchedulerConfig":
        """Build a config from application Settings, with per-run overrides"""
        if settings is None:
            from soulscribe.config import get_settings
            settings = get_settings()

        values = {
            "max_concurrency": settings.scheduler_max_concurrency,
            "quality_threshold": settings.scheduler_quality_threshold,
            "max_retries": settings.scheduler_max_retries,
            "retry_backoff_seconds": settings.scheduler_retry_backoff_seconds,
            "attempt_timeout_seconds": settings.scheduler_attempt_timeout_seconds,
            "default_job_estimate_seconds": settings.scheduler_default_job_estimate_seconds,
            "accept_low_quality": settings.scheduler_accept_low_quality,
            "abandon_dependents": settings.scheduler_abandon_dependents,
        }
        values.update(overrides)
        return cls(**values)
