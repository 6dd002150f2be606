"""
Revision Service for chapter context and retry guidance

This module provides utilities for the chapter retry workflow:
- Building the context a chapter job is generated from
- Turning scorer hints into revision notes for the next attempt
- Compiling revision notes into prompt-ready guidance

Architecture:
- Pure functions with no external dependencies
- Called by the scheduler (context, notes) and the writer agent (guidance)
"""

import logging
from typing import Dict, List

from soulscribe.config.limits import CONTEXT_SUMMARY_MAX_LENGTH
from soulscribe.models import ChapterJob, Draft, QualityScore

logger = logging.getLogger(__name__)


def build_job_context(
    shared_context: str,
    job: ChapterJob,
    completed: Dict[int, Draft],
    summary_length: int = CONTEXT_SUMMARY_MAX_LENGTH
) -> str:
    """
    Build the generation context for one chapter job.

    Concatenates the shared story context, the job's own seed text, and short
    summaries of the job's dependencies in declaration order. Only
    dependencies already in ``completed`` are included; the scheduler never
    admits a job before all of them are.

    Args:
        shared_context: Story-wide context passed to run()
        job: The job about to start
        completed: Successful drafts by job id (read only)
        summary_length: Max characters per dependency summary

    Returns:
        Context text for GenerationContext.story_context
    """
    parts = []
    if shared_context.strip():
        parts.append(shared_context.strip())
    if job.story_context.strip():
        parts.append(job.story_context.strip())

    dependency_drafts = [completed[dep] for dep in job.dependencies if dep in completed]
    if dependency_drafts:
        lines = ["COMPLETED CHAPTERS:"]
        for draft in dependency_drafts:
            lines.append(f"Chapter {draft.job_id}: {draft.title}")
            lines.append(f"Summary: {draft.short_summary(summary_length)}")
            lines.append("")
        parts.append("\n".join(lines).rstrip())

    return "\n\n".join(parts)


def revision_notes_for(quality: QualityScore, threshold: float) -> List[str]:
    """
    Revision notes to fold into the next attempt after a low score.

    Falls back to a generic note when the scorer gave no hints (including
    scorer failures, which arrive here as a bare zero score).
    """
    notes = [hint.strip() for hint in quality.hints if hint and hint.strip()]
    if notes:
        return notes
    return [f"raise overall chapter quality from {quality.score:.2f} to at least {threshold:.2f}"]


def merge_notes(existing: List[str], new: List[str]) -> List[str]:
    """Append new notes, skipping ones already present"""
    merged = list(existing)
    for note in new:
        if note not in merged:
            merged.append(note)
    return merged


def compile_revision_guidance(notes: List[str], attempt: int) -> str:
    """
    Compile revision notes into structured guidance for the writer prompt.

    Args:
        notes: Accumulated revision notes from earlier attempts
        attempt: The attempt about to run (1-based)

    Returns:
        Guidance block, or an empty string for a first attempt without notes
    """
    if not notes:
        return ""

    guidance_parts = ["=" * 60]
    guidance_parts.append(f"REVISION GUIDANCE (attempt {attempt})")
    guidance_parts.append("=" * 60)
    guidance_parts.append("\nThe previous draft fell short. Revise to address:\n")
    for i, note in enumerate(notes, 1):
        guidance_parts.append(f"  {i}. {note}")

    guidance_parts.append("\n" + "=" * 60)
    guidance_parts.append("VERIFICATION CHECKLIST:")
    guidance_parts.append("=" * 60)
    guidance_parts.append(f"□ Address ALL {len(notes)} point(s) above")
    guidance_parts.append("□ Keep the chapter's emotional truth")
    guidance_parts.append("□ Keep the closing reflection")

    return "\n".join(guidance_parts)
