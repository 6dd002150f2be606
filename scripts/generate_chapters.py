#!/usr/bin/env python3
"""
Generate every chapter of a story outline with the chapter scheduler.

The outline is a YAML or JSON file:

    story_id: lantern-keeper
    story_context: |
      A girl inherits her grandmother's lighthouse...
    chapters:
      - {number: 1, title: "The Key", complexity: 0.4}
      - {number: 2, title: "Storm Season", complexity: 0.8}

Each chapter depends on the one before it. Completed chapters are written to
``<output-dir>/<story_id>/chapter_NNN.json``.

Usage:
    python scripts/generate_chapters.py outline.yaml
    python scripts/generate_chapters.py outline.yaml --concurrency 4 --threshold 0.8
    TEST_WRITER_MODEL=gpt-4.1 python scripts/generate_chapters.py outline.yaml
"""

import sys
import argparse
import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

load_dotenv(project_root / ".env")

from soulscribe.agents import ChapterAnalyzerAgent, ChapterWriterAgent
from soulscribe.config import get_settings
from soulscribe.models import SchedulerConfig
from soulscribe.scheduler import ChapterJobScheduler, DeadlockError, create_chapter_jobs
from soulscribe.services import JsonFileChapterStore, get_llm_router, init_logger, story_events


def configure_logging(level: str, log_dir: Path) -> Path:
    """Detailed file log plus message-only console output."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"soulscribe_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(logging.Formatter('%(message)s'))

    logging.basicConfig(level=logging.DEBUG, handlers=[file_handler, console_handler])
    return log_file


def load_outline(path: Path) -> dict:
    """Load a YAML or JSON outline."""
    text = path.read_text(encoding='utf-8')
    if path.suffix.lower() == ".json":
        outline = json.loads(text)
    else:
        outline = yaml.safe_load(text)

    if not isinstance(outline, dict) or not outline.get("chapters"):
        print(f"Error: {path} has no chapters")
        sys.exit(1)
    return outline


def print_report(report):
    print("\n" + "=" * 60)
    print("RUN REPORT")
    print("=" * 60)
    for result in sorted(report.results, key=lambda r: r.job_id):
        status = "✅" if result.succeeded else "❌"
        flag = " (below threshold)" if result.below_threshold else ""
        detail = f"quality {result.quality_score:.2f}{flag}" if result.succeeded else result.error_message
        print(f"  {status} Chapter {result.job_id}: {detail} [{result.attempts} attempt(s), {result.elapsed_time:.1f}s]")
    print("-" * 60)
    print(f"  Succeeded:           {len(report.succeeded_ids)}/{len(report.results)}")
    print(f"  Average quality:     {report.average_quality_score:.2f}")
    print(f"  Total time:          {report.total_elapsed:.1f}s")
    print(f"  Tokens used:         {report.tokens_used}")
    print(f"  Parallel efficiency: {report.parallel_efficiency:.2f}x")


async def main():
    parser = argparse.ArgumentParser(
        description="Generate all chapters of a story outline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("outline", type=Path, help="YAML or JSON outline file")
    parser.add_argument("--concurrency", type=int, help="Max chapters in flight")
    parser.add_argument("--threshold", type=float, help="Minimum quality score (0-1)")
    parser.add_argument("--retries", type=int, help="Retries per chapter after the first attempt")
    parser.add_argument("--strict", action="store_true",
                        help="Fail chapters that never reach the threshold instead of keeping the best draft")
    parser.add_argument("--abandon-dependents", action="store_true",
                        help="Fail chapters behind a failed chapter instead of aborting the run")
    parser.add_argument("--output-dir", type=Path, default=project_root / "output",
                        help="Where chapter JSON files are written")
    args = parser.parse_args()

    settings = get_settings()
    log_file = configure_logging(settings.log_level, project_root / "logs")
    app_logger = init_logger(settings=settings)
    app_logger.info(f"📝 Logging to: {log_file}")

    outline = load_outline(args.outline)
    story_id = outline.get("story_id") or args.outline.stem
    jobs = create_chapter_jobs(outline["chapters"])

    overrides = {}
    if args.concurrency is not None:
        overrides["max_concurrency"] = args.concurrency
    if args.threshold is not None:
        overrides["quality_threshold"] = args.threshold
    if args.retries is not None:
        overrides["max_retries"] = args.retries
    if args.strict:
        overrides["accept_low_quality"] = False
    if args.abandon_dependents:
        overrides["abandon_dependents"] = True
    config = SchedulerConfig.from_settings(
        settings, on_progress=story_events.progress_listener(story_id), **overrides
    )

    get_llm_router().log_configuration()

    store = JsonFileChapterStore(str(args.output_dir), app_logger=app_logger)
    scheduler = ChapterJobScheduler(
        generator=ChapterWriterAgent(app_logger=app_logger),
        scorer=ChapterAnalyzerAgent(app_logger=app_logger),
        store=store,
        story_id=story_id,
        logger=app_logger,
    )

    try:
        report = await scheduler.run(jobs, outline.get("story_context", ""), config)
    except DeadlockError as e:
        app_logger.error("Scheduler", str(e), e)
        print(f"\nRun aborted. Blocked chapters: {e.blocked_ids}")
        return 1
    finally:
        store.close()

    print_report(report)
    print(f"\nChapters written to {args.output_dir / story_id}")
    return 0 if report.all_succeeded else 2


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
