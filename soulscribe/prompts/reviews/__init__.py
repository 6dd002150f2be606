"""
Chapter Review Prompts

Prompts for the Quality Guardian, which scores a chapter draft across five
dimensions and suggests targeted revisions.
"""

from .analyze_chapter import ANALYZER_SYSTEM_PROMPT, get_analyze_chapter_prompt

__all__ = [
    "ANALYZER_SYSTEM_PROMPT",
    "get_analyze_chapter_prompt",
]
