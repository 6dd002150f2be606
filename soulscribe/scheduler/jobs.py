"""Chapter job construction helpers."""

from typing import Any, Dict, List, Sequence

from soulscribe.models import ChapterJob, JobPriority


def create_chapter_jobs(chapters: Sequence[Dict[str, Any]], story_context: str = "") -> List[ChapterJob]:
    """
    Build a linear chain of chapter jobs from an outline.

    Each chapter depends on the one before it. The first two and last two
    chapters are high priority (openings and finales carry the story).

    Args:
        chapters: Dicts with ``number`` and ``title``, optionally ``complexity``
        story_context: Seed text copied onto every job

    Returns:
        One ChapterJob per outline entry, in outline order
    """
    ordered = sorted(chapters, key=lambda ch: ch["number"])
    total = len(ordered)
    jobs = []
    for index, chapter in enumerate(ordered):
        number = chapter["number"]
        is_bookend = index < 2 or index >= total - 2
        jobs.append(ChapterJob(
            id=number,
            title=chapter["title"],
            dependencies=[ordered[index - 1]["number"]] if index > 0 else [],
            priority=JobPriority.HIGH if is_bookend else JobPriority.NORMAL,
            estimated_complexity=chapter.get("complexity", 0.5),
            story_context=story_context,
        ))
    return jobs
