"""
Tests for the LLM-backed chapter agents, using a fake OpenAI client.

Run with: python -m pytest tests/test_agents.py -v
"""

import json

import pytest

from conftest import fake_openai_client, fast_config, make_job
from soulscribe.agents import ChapterAnalyzerAgent, ChapterWriterAgent
from soulscribe.models import Draft, GenerationContext
from soulscribe.scheduler import ChapterJobScheduler, GenerationError, ScoringError
from soulscribe.services.llm import LLMService
from soulscribe.services.llm_router import LLMRouter
from soulscribe.services.storage import InMemoryChapterStore

CHAPTER_REPLY = json.dumps({
    "number": 1,
    "title": "The Key",
    "content": "[S1] Mira turned the iron key. What did we learn from this chapter? Doors open inward.",
    "summary": "Mira unlocks the lighthouse.",
    "key_lessons": ["Doors open inward"],
})


def analysis_reply(score, suggestion=None):
    recommendations = [{"dimension": "structure", "suggestion": suggestion}] if suggestion else []
    return f"```json\n{json.dumps({'overall_score': score, 'recommendations': recommendations})}\n```"


def make_draft():
    return Draft(job_id=1, title="Chapter 1", content="Short chapter text.")


class TestChapterWriterAgent:

    def setup_method(self):
        self.router = LLMRouter()

    async def test_generate_builds_draft(self, app_logger):
        client, completions = fake_openai_client([CHAPTER_REPLY])
        writer = ChapterWriterAgent(LLMService(client=client), self.router, app_logger=app_logger)
        context = GenerationContext(story_context="A lighthouse story", temperature=0.75, max_tokens=5000)

        draft = await writer.generate(make_job(1), context)

        assert draft.job_id == 1
        assert draft.summary == "Mira unlocks the lighthouse."
        assert draft.key_lessons == ["Doors open inward"]
        assert draft.tokens_used == 500
        assert draft.model == "gpt-4o-2024-08-06"

        request = completions.requests[0]
        assert request["temperature"] == 0.75
        assert request["max_tokens"] == 5000
        assert "A lighthouse story" in request["messages"][1]["content"]
        assert request["messages"][0]["role"] == "system"

    async def test_revision_guidance_reaches_prompt(self, app_logger):
        client, completions = fake_openai_client([CHAPTER_REPLY])
        writer = ChapterWriterAgent(LLMService(client=client), self.router, app_logger=app_logger)
        context = GenerationContext(revision_notes=["slow the ending"], attempt=2)

        await writer.generate(make_job(1), context)

        prompt = completions.requests[0]["messages"][1]["content"]
        assert "REVISION GUIDANCE (attempt 2)" in prompt
        assert "1. slow the ending" in prompt

    async def test_reasoning_model_gets_completion_token_budget(self, app_logger):
        client, completions = fake_openai_client([CHAPTER_REPLY])
        writer = ChapterWriterAgent(LLMService(client=client), self.router, model_override="o3-mini",
                                    app_logger=app_logger)

        await writer.generate(make_job(1), GenerationContext(max_tokens=4500))

        request = completions.requests[0]
        assert request["max_completion_tokens"] == 4500
        assert "temperature" not in request

    async def test_empty_chapter_raises(self, app_logger):
        client, _ = fake_openai_client(["   "])
        writer = ChapterWriterAgent(LLMService(client=client), self.router, app_logger=app_logger)

        with pytest.raises(GenerationError, match="empty"):
            await writer.generate(make_job(1), GenerationContext())


class TestChapterAnalyzerAgent:

    def setup_method(self):
        self.router = LLMRouter()

    async def test_score_parses_analysis(self, app_logger):
        client, completions = fake_openai_client([analysis_reply(0.55, "raise the stakes")])
        analyzer = ChapterAnalyzerAgent(LLMService(client=client), self.router, app_logger=app_logger)
        draft = await ChapterWriterAgent(
            LLMService(client=fake_openai_client([CHAPTER_REPLY])[0]), self.router, app_logger=app_logger
        ).generate(make_job(1), GenerationContext())

        quality = await analyzer.score(draft)

        assert quality.score == 0.55
        assert quality.hints == ["raise the stakes"]
        assert completions.requests[0]["temperature"] == 0.2

    async def test_provider_failure_becomes_scoring_error(self, app_logger):
        client, _ = fake_openai_client([TimeoutError("read timed out")])
        analyzer = ChapterAnalyzerAgent(LLMService(client=client), self.router, app_logger=app_logger)
        draft_stub = make_draft()

        with pytest.raises(ScoringError, match="Analysis call failed"):
            await analyzer.score(draft_stub)

    async def test_unparseable_analysis_becomes_scoring_error(self, app_logger):
        client, _ = fake_openai_client(["Lovely chapter!"])
        analyzer = ChapterAnalyzerAgent(LLMService(client=client), self.router, app_logger=app_logger)

        with pytest.raises(ScoringError) as exc_info:
            await analyzer.score(make_draft())

        assert exc_info.value.job_id == 1


class TestAgentsWithScheduler:

    async def test_full_run_with_revision(self, app_logger):
        writer_client, writer_calls = fake_openai_client([CHAPTER_REPLY])
        analyzer_client, _ = fake_openai_client([
            analysis_reply(0.4, "show more of the storm"),
            analysis_reply(0.85),
        ])
        router = LLMRouter()
        store = InMemoryChapterStore()
        scheduler = ChapterJobScheduler(
            generator=ChapterWriterAgent(LLMService(client=writer_client), router, app_logger=app_logger),
            scorer=ChapterAnalyzerAgent(LLMService(client=analyzer_client), router, app_logger=app_logger),
            store=store,
            story_id="lighthouse",
            logger=app_logger,
        )

        report = await scheduler.run([make_job(1)], "A lighthouse story", fast_config())

        result = report.results[0]
        assert result.succeeded
        assert result.attempts == 2
        assert result.quality_score == 0.85
        assert result.tokens_used == 1000
        assert "show more of the storm" in writer_calls.requests[1]["messages"][1]["content"]
        assert store.save_count == 1

