"""
Chapter Analyzer Agent - Quality Guardian persona

Implements the scheduler's scorer contract:
``await analyzer.score(draft) -> QualityScore``.
"""

import logging
import time
from typing import Optional

from soulscribe.models import Draft, QualityScore
from soulscribe.prompts.reviews import ANALYZER_SYSTEM_PROMPT, get_analyze_chapter_prompt
from soulscribe.scheduler.errors import GenerationError, ScoringError
from soulscribe.services.parsing import parse_quality_analysis

logger = logging.getLogger(__name__)

AGENT_NAME = "analyzer"


class ChapterAnalyzerAgent:
    """LLM-backed chapter scorer"""

    def __init__(self, llm_service=None, router=None, model_override: Optional[str] = None, app_logger=None):
        from soulscribe.services.llm import get_llm_service
        from soulscribe.services.llm_router import get_llm_router
        from soulscribe.services.logger import get_logger

        self.llm = llm_service or get_llm_service()
        self.router = router or get_llm_router()
        self.model_override = model_override
        self.logger = app_logger or get_logger()
        self.display_name = self.router.get_agent_display_name(AGENT_NAME)

    async def score(self, draft: Draft) -> QualityScore:
        """
        Score one chapter draft.

        Raises:
            ScoringError: provider failure or unparseable analysis
        """
        prompt = get_analyze_chapter_prompt(
            chapter_number=draft.job_id,
            chapter_title=draft.title,
            chapter_content=draft.content,
            summary=draft.summary,
        )
        task = f"Analyze chapter {draft.job_id}"
        self.logger.agent_working(self.display_name, task)
        self.logger.agent_input(self.display_name, prompt, job_id=draft.job_id)

        started = time.monotonic()
        try:
            response = await self.llm.chat_completion(
                messages=[
                    {"role": "system", "content": ANALYZER_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                **self.router.get_llm_kwargs(AGENT_NAME, model_override=self.model_override)
            )
        except GenerationError as e:
            raise ScoringError(f"Analysis call failed: {e}", draft.job_id) from e
        duration = time.monotonic() - started

        content = response.get("content", "")
        try:
            quality = parse_quality_analysis(content)
        except ScoringError as e:
            self.logger.agent_output(self.display_name, content, status="error",
                                     duration=duration, job_id=draft.job_id)
            raise ScoringError(str(e), draft.job_id) from e

        self.logger.agent_output(self.display_name, content, duration=duration, job_id=draft.job_id)
        self.logger.agent_completed(self.display_name, f"{task}: {quality.score:.2f}", duration)
        return quality


def create_chapter_analyzer_agent(model_override: Optional[str] = None) -> ChapterAnalyzerAgent:
    """
    Create the ChapterAnalyzerAgent with the shared LLM service and router.

    Args:
        model_override: Optional model to use instead of config.
                        If None, uses model from models.yaml
    """
    return ChapterAnalyzerAgent(model_override=model_override)
