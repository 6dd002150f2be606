"""
Chapter storage for SoulScribe.

The scheduler saves each completed chapter through a ChapterStore exactly
once. Two implementations ship:
- InMemoryChapterStore: process-local dict, used by tests and dry runs
- JsonFileChapterStore: one JSON file per chapter under a directory, with
  blocking file I/O pushed to a thread pool
"""

import asyncio
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional

from soulscribe.models import Draft

logger = logging.getLogger(__name__)


class ChapterStore:
    """Async chapter persistence interface"""

    def __init__(self, app_logger=None):
        self.app_logger = app_logger

    async def save_chapter(self, story_id: str, draft: Draft) -> Draft:
        raise NotImplementedError

    async def get_chapter(self, story_id: str, chapter_number: int) -> Optional[Draft]:
        raise NotImplementedError

    async def get_chapters(self, story_id: str) -> List[Draft]:
        """All chapters for a story, ordered by chapter number"""
        raise NotImplementedError

    def _log(self, operation: str, path: str, summary: str, size_bytes: int = 0, duration: float = 0):
        if self.app_logger:
            self.app_logger.storage_operation(operation, path, summary, size_bytes, duration)


class InMemoryChapterStore(ChapterStore):
    """Dict-backed store; counts saves so callers can check at-most-once writes"""

    def __init__(self, app_logger=None):
        super().__init__(app_logger)
        self._chapters: Dict[str, Dict[int, Draft]] = {}
        self.save_count = 0

    async def save_chapter(self, story_id: str, draft: Draft) -> Draft:
        self._chapters.setdefault(story_id, {})[draft.job_id] = draft
        self.save_count += 1
        self._log("write", f"{story_id}/chapters/{draft.job_id}", f"{draft.word_count} words")
        return draft

    async def get_chapter(self, story_id: str, chapter_number: int) -> Optional[Draft]:
        return self._chapters.get(story_id, {}).get(chapter_number)

    async def get_chapters(self, story_id: str) -> List[Draft]:
        chapters = self._chapters.get(story_id, {})
        return [chapters[number] for number in sorted(chapters)]


class JsonFileChapterStore(ChapterStore):
    """
    Filesystem store: ``<root>/<story_id>/chapter_<NNN>.json``.

    Files are written to a temporary name and renamed into place so a reader
    never sees a half-written chapter.
    """

    def __init__(self, root_dir: str, app_logger=None, max_workers: int = 4):
        super().__init__(app_logger)
        self.root_dir = Path(root_dir)
        self._executor = ThreadPoolExecutor(max_workers=max_workers)

    async def _run_async(self, func, *args, **kwargs):
        """Run a sync function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            lambda: func(*args, **kwargs)
        )

    def _chapter_path(self, story_id: str, chapter_number: int) -> Path:
        return self.root_dir / story_id / f"chapter_{chapter_number:03d}.json"

    def _save_chapter_sync(self, story_id: str, draft: Draft) -> int:
        path = self._chapter_path(story_id, draft.job_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(draft.model_dump(mode="json"), ensure_ascii=False, indent=2)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(path)
        return len(payload.encode("utf-8"))

    async def save_chapter(self, story_id: str, draft: Draft) -> Draft:
        """Save or replace a chapter."""
        started = time.monotonic()
        size = await self._run_async(self._save_chapter_sync, story_id, draft)
        self._log(
            "write",
            str(self._chapter_path(story_id, draft.job_id)),
            f"chapter {draft.job_id}: {draft.title}",
            size_bytes=size,
            duration=time.monotonic() - started,
        )
        return draft

    def _get_chapter_sync(self, story_id: str, chapter_number: int) -> Optional[Draft]:
        path = self._chapter_path(story_id, chapter_number)
        if not path.exists():
            return None
        return Draft(**json.loads(path.read_text(encoding="utf-8")))

    async def get_chapter(self, story_id: str, chapter_number: int) -> Optional[Draft]:
        """Get a specific chapter."""
        return await self._run_async(self._get_chapter_sync, story_id, chapter_number)

    def _get_chapters_sync(self, story_id: str) -> List[Draft]:
        story_dir = self.root_dir / story_id
        if not story_dir.is_dir():
            return []
        chapters = [
            Draft(**json.loads(path.read_text(encoding="utf-8")))
            for path in story_dir.glob("chapter_*.json")
        ]
        return sorted(chapters, key=lambda draft: draft.job_id)

    async def get_chapters(self, story_id: str) -> List[Draft]:
        """Get all chapters for a story."""
        return await self._run_async(self._get_chapters_sync, story_id)

    def close(self):
        self._executor.shutdown(wait=True)
