"""
Writing Prompts Package

Prompts for the chapter writing workflow:
- write_chapter: Chapter drafting (SoulScribe persona), including revision
  guidance on retries

Each prompt is a function that accepts context and returns a formatted prompt string.
"""

from .write_chapter import (
    SOULSCRIBE_SYSTEM_PROMPT,
    get_write_chapter_prompt,
    get_write_chapter_json_schema,
)

__all__ = [
    "SOULSCRIBE_SYSTEM_PROMPT",
    "get_write_chapter_prompt",
    "get_write_chapter_json_schema",
]
