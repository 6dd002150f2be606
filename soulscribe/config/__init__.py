"""Configuration package for SoulScribe"""

from .settings import Settings, get_settings
from .limits import (
    DEFAULT_JOB_ESTIMATE_SECONDS,
    SUMMARY_MAX_LENGTH,
    CONTEXT_SUMMARY_MAX_LENGTH,
)

__all__ = [
    "Settings",
    "get_settings",
    "DEFAULT_JOB_ESTIMATE_SECONDS",
    "SUMMARY_MAX_LENGTH",
    "CONTEXT_SUMMARY_MAX_LENGTH",
]
