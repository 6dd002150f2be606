"""
Models package - Pydantic data models for SoulScribe

Re-exports all models for cleaner imports:
    from soulscribe.models import ChapterJob, Draft, RunReport
"""

from soulscribe.models.models import *
