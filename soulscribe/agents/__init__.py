"""Agents package for SoulScribe"""

from .chapter_writer import ChapterWriterAgent, create_chapter_writer_agent
from .chapter_analyzer import ChapterAnalyzerAgent, create_chapter_analyzer_agent

__all__ = [
    "ChapterWriterAgent",
    "create_chapter_writer_agent",
    "ChapterAnalyzerAgent",
    "create_chapter_analyzer_agent",
]
