"""
Centralized Limits

Summary lengths, scheduling defaults and allocation constants in one place.
Import these in the Pydantic models and the scheduler.
"""

# =============================================================================
# SCHEDULING DEFAULTS
# =============================================================================

# Fallback duration estimate before any chapter has completed (2 minutes)
DEFAULT_JOB_ESTIMATE_SECONDS = 120.0

# Retry backoff cap
MAX_BACKOFF_SECONDS = 30.0

# =============================================================================
# RESOURCE ALLOCATION
# =============================================================================

BASE_TEMPERATURE = 0.85
MIN_TEMPERATURE = 0.3
MAX_TEMPERATURE = 0.95

BASE_MAX_TOKENS = 4000
COMPLEX_CHAPTER_EXTRA_TOKENS = 1000
HIGH_PRIORITY_EXTRA_TOKENS = 500

# =============================================================================
# CONTEXT LENGTHS
# =============================================================================

# Chapter summary used when building downstream context
SUMMARY_MAX_LENGTH = 2000

# Per-dependency summary length inside a job context
CONTEXT_SUMMARY_MAX_LENGTH = 600

