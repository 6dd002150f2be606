"""
Per-attempt resource allocation for chapter generation.

Complex chapters get a cooler temperature and a bigger token budget; every
retry cools the temperature further so revisions stay focused.
"""

from soulscribe.config.limits import (
    BASE_TEMPERATURE,
    MIN_TEMPERATURE,
    MAX_TEMPERATURE,
    BASE_MAX_TOKENS,
    COMPLEX_CHAPTER_EXTRA_TOKENS,
    HIGH_PRIORITY_EXTRA_TOKENS,
)
from soulscribe.models import ChapterJob, JobPriority


def calculate_temperature(job: ChapterJob, attempt: int) -> float:
    """Sampling temperature for the given 1-based attempt"""
    temperature = BASE_TEMPERATURE - (attempt - 1) * 0.1
    if job.estimated_complexity > 0.8:
        temperature -= 0.1
    return round(max(MIN_TEMPERATURE, min(MAX_TEMPERATURE, temperature)), 2)


def calculate_max_tokens(job: ChapterJob) -> int:
    """Token budget for one chapter draft"""
    tokens = BASE_MAX_TOKENS
    if job.estimated_complexity > 0.7:
        tokens += COMPLEX_CHAPTER_EXTRA_TOKENS
    if job.priority == JobPriority.HIGH:
        tokens += HIGH_PRIORITY_EXTRA_TOKENS
    return tokens
