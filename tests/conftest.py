"""
Shared test helpers: job builders, stub collaborators and a fake LLM client.

No test touches the network; every collaborator is an async closure or a
small fake object.
"""

import asyncio
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from soulscribe.models import ChapterJob, Draft, QualityScore, SchedulerConfig
from soulscribe.services.llm_router import reset_llm_router
from soulscribe.services.logger import SoulScribeLogger


def make_job(job_id: int, deps: Optional[List[int]] = None, **kwargs) -> ChapterJob:
    return ChapterJob(id=job_id, title=f"Chapter {job_id}", dependencies=deps or [], **kwargs)


def fast_config(**overrides) -> SchedulerConfig:
    """Config with no backoff delays, for tests"""
    values = {"retry_backoff_seconds": 0.0, "attempt_timeout_seconds": 5.0}
    values.update(overrides)
    return SchedulerConfig(**values)


class StubGenerator:
    """
    Records every call and the completed set it could see.

    ``latency`` maps job id to seconds slept before returning; ``fail_ids``
    always raise.
    """

    def __init__(self, latency: Optional[Dict[int, float]] = None, fail_ids=(), tokens: int = 100):
        self.latency = latency or {}
        self.fail_ids = set(fail_ids)
        self.tokens = tokens
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def generate(self, job, context):
        self.calls.append((job.id, context))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.latency.get(job.id, 0.01))
            if job.id in self.fail_ids:
                raise RuntimeError(f"provider down for chapter {job.id}")
            return Draft(
                job_id=job.id,
                title=job.title,
                content=f"Chapter {job.id} text, attempt {context.attempt}.",
                summary=f"Summary of chapter {job.id}",
                tokens_used=self.tokens,
            )
        finally:
            self.active -= 1

    def attempts_for(self, job_id: int) -> int:
        return sum(1 for called_id, _ in self.calls if called_id == job_id)


class SequenceScorer:
    """Returns scores from a per-job sequence, repeating the last one"""

    def __init__(self, default: float = 0.9, sequences: Optional[Dict[int, List]] = None):
        self.default = default
        self.sequences = sequences or {}
        self.calls: Dict[int, int] = {}

    async def score(self, draft):
        index = self.calls.get(draft.job_id, 0)
        self.calls[draft.job_id] = index + 1
        sequence = self.sequences.get(draft.job_id)
        if not sequence:
            return QualityScore(score=self.default)
        value = sequence[min(index, len(sequence) - 1)]
        if isinstance(value, Exception):
            raise value
        return value


class FakeCompletions:
    """Stands in for ``AsyncOpenAI().chat.completions``"""

    def __init__(self, replies: List, model: str = "gpt-4o-2024-08-06"):
        self.replies = list(replies)
        self.model = model
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(
            model=self.model,
            choices=[SimpleNamespace(
                message=SimpleNamespace(content=reply),
                finish_reason="stop",
            )],
            usage=SimpleNamespace(prompt_tokens=120, completion_tokens=380, total_tokens=500),
        )


def fake_openai_client(replies: List, model: str = "gpt-4o-2024-08-06"):
    completions = FakeCompletions(replies, model)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


@pytest.fixture
def app_logger():
    return SoulScribeLogger(debug_mode=False)


@pytest.fixture(autouse=True)
def clean_model_env():
    """Keep TEST_*_MODEL overrides and router singletons from leaking between tests"""
    def _clear():
        reset_llm_router()
        for key in list(os.environ.keys()):
            if key.startswith('TEST_') and key.endswith('_MODEL'):
                del os.environ[key]

    _clear()
    yield
    _clear()
