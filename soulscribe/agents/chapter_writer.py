"""
Chapter Writer Agent - SoulScribe persona

Implements the scheduler's generator contract:
``await writer.generate(job, context) -> Draft``.

Model configuration is loaded from soulscribe/config/models.yaml via
LLMRouter; per-attempt temperature and token budget come from the
GenerationContext the scheduler builds.
"""

import logging
import time
from typing import Optional

from soulscribe.models import ChapterJob, Draft, GenerationContext
from soulscribe.prompts.writing import SOULSCRIBE_SYSTEM_PROMPT, get_write_chapter_prompt
from soulscribe.scheduler.errors import GenerationError
from soulscribe.services.parsing import parse_chapter_output
from soulscribe.services.revision import compile_revision_guidance

logger = logging.getLogger(__name__)

AGENT_NAME = "writer"


class ChapterWriterAgent:
    """LLM-backed chapter generator"""

    def __init__(self, llm_service=None, router=None, model_override: Optional[str] = None, app_logger=None):
        from soulscribe.services.llm import get_llm_service
        from soulscribe.services.llm_router import get_llm_router
        from soulscribe.services.logger import get_logger

        self.llm = llm_service or get_llm_service()
        self.router = router or get_llm_router()
        self.model_override = model_override
        self.logger = app_logger or get_logger()
        self.display_name = self.router.get_agent_display_name(AGENT_NAME)

    def _llm_kwargs(self, context: GenerationContext) -> dict:
        kwargs = self.router.get_llm_kwargs(AGENT_NAME, model_override=self.model_override)
        kwargs.pop("max_completion_tokens", None)
        kwargs["temperature"] = context.temperature
        kwargs["max_tokens"] = context.max_tokens
        return self.router.apply_model_constraints(kwargs["model"], kwargs)

    async def generate(self, job: ChapterJob, context: GenerationContext) -> Draft:
        """
        Write one chapter draft.

        Raises:
            GenerationError: provider failure or an empty chapter
        """
        prompt = get_write_chapter_prompt(
            chapter_number=job.id,
            chapter_title=job.title,
            priority=job.priority.value,
            estimated_complexity=job.estimated_complexity,
            story_context=context.story_context,
            revision_guidance=compile_revision_guidance(context.revision_notes, context.attempt),
        )
        task = f"Chapter {job.id} (attempt {context.attempt})"
        self.logger.agent_working(self.display_name, task)
        self.logger.agent_input(self.display_name, prompt, job_id=job.id)

        started = time.monotonic()
        response = await self.llm.chat_completion(
            messages=[
                {"role": "system", "content": SOULSCRIBE_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            **self._llm_kwargs(context)
        )
        duration = time.monotonic() - started

        fields = parse_chapter_output(response.get("content", ""))
        if not fields["content"]:
            self.logger.agent_output(self.display_name, "", status="error", duration=duration, job_id=job.id)
            raise GenerationError(f"Chapter {job.id} came back empty", job.id)

        self.logger.agent_output(self.display_name, fields["content"], duration=duration, job_id=job.id)
        self.logger.agent_completed(self.display_name, task, duration)

        return Draft(
            job_id=job.id,
            title=job.title,
            content=fields["content"],
            summary=fields["summary"],
            key_lessons=fields["key_lessons"],
            tokens_used=response.get("usage", {}).get("total_tokens", 0),
            model=response.get("model"),
            metadata={"attempt": context.attempt, "temperature": context.temperature},
        )


def create_chapter_writer_agent(model_override: Optional[str] = None) -> ChapterWriterAgent:
    """
    Create the ChapterWriterAgent with the shared LLM service and router.

    Args:
        model_override: Optional model to use instead of config.
                        If None, uses model from models.yaml
    """
    return ChapterWriterAgent(model_override=model_override)
