"""Services package for SoulScribe"""

from .logger import SoulScribeLogger, get_logger, init_logger
from .llm import LLMService, RateLimitError, get_llm_service, init_llm_service, reset_llm_service
from .llm_router import LLMRouter, get_llm_router, init_llm_router, reset_llm_router
from .events import EventEmitter, StoryEvent, story_events
from .storage import ChapterStore, InMemoryChapterStore, JsonFileChapterStore
from .parsing import (
    clean_json_output,
    parse_json_object,
    parse_chapter_output,
    parse_quality_analysis,
)
from .revision import (
    build_job_context,
    revision_notes_for,
    merge_notes,
    compile_revision_guidance,
)

__all__ = [
    "SoulScribeLogger",
    "get_logger",
    "init_logger",
    "LLMService",
    "RateLimitError",
    "get_llm_service",
    "init_llm_service",
    "reset_llm_service",
    # LLM Router
    "LLMRouter",
    "get_llm_router",
    "init_llm_router",
    "reset_llm_router",
    # Events
    "EventEmitter",
    "StoryEvent",
    "story_events",
    # Storage
    "ChapterStore",
    "InMemoryChapterStore",
    "JsonFileChapterStore",
    # Parsing utilities
    "clean_json_output",
    "parse_json_object",
    "parse_chapter_output",
    "parse_quality_analysis",
    # Revision utilities
    "build_job_context",
    "revision_notes_for",
    "merge_notes",
    "compile_revision_guidance",
]
