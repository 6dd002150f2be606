"""
LLM Service - async OpenAI chat-completion client

Thin wrapper around ``openai.AsyncOpenAI`` used by the chapter writer and
analyzer agents. Works with api.openai.com or any OpenAI-compatible endpoint
(set ``OPENAI_BASE_URL``).

Usage:
    from soulscribe.services.llm import get_llm_service

    llm = get_llm_service()
    response = await llm.chat_completion(
        messages=[{"role": "user", "content": "Hello!"}],
        model="gpt-4o",
    )
    print(response["content"])
"""

import logging
import time
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from soulscribe.scheduler.errors import GenerationError

logger = logging.getLogger(__name__)


class RateLimitError(GenerationError):
    """Raised when a rate limit (429) is detected"""

    def __init__(self, provider: str, retry_after: Optional[float] = None):
        self.provider = provider
        self.retry_after = retry_after
        super().__init__(f"Rate limit hit for {provider}")


def _is_rate_limit_error(error: Exception) -> bool:
    """Detect if an exception is a rate limit (429) error from OpenAI."""
    error_str = str(error).lower()
    error_type = type(error).__name__.lower()

    if "ratelimit" in error_type or "toomanyrequests" in error_type:
        return True

    rate_limit_indicators = [
        "429",
        "rate limit",
        "rate_limit",
        "too many requests",
        "quota exceeded",
        "requests per minute",
        "tokens per minute",
    ]
    return any(indicator in error_str for indicator in rate_limit_indicators)


class LLMService:
    """Async chat-completion client shared by all agents"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[Any] = None,
        app_logger=None,
    ):
        """
        Initialize the LLM service.

        Args:
            api_key: OpenAI API key (None falls back to OPENAI_API_KEY)
            base_url: Optional OpenAI-compatible endpoint
            timeout: Request timeout in seconds
            client: Pre-built client exposing ``chat.completions.create`` (tests)
            app_logger: SoulScribeLogger for JSONL API-call logging
        """
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.app_logger = app_logger
        self._last_model_used: Optional[str] = None
        logger.info(f"LLM client initialized: base_url={base_url or 'default'}, timeout={timeout}s")

    @property
    def last_model_used(self) -> Optional[str]:
        return self._last_model_used

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: int = 4000,
        temperature: float = 0.7,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with "role" and "content"
            model: Model name
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            **kwargs: Additional parameters passed to the API

        Returns:
            Dict with "content", "model", "usage" and "finish_reason"

        Raises:
            RateLimitError: on 429 / quota failures
            GenerationError: on any other provider failure
        """
        user_msg = next((m['content'] for m in messages if m.get('role') == 'user'), None)
        logger.info(f"🔷 LLM Request: model={model}, temp={temperature}, max_tokens={max_tokens}")
        if user_msg:
            context_preview = user_msg[:150].replace('\n', ' ')
            logger.debug(f"   💬 Context: {context_preview}...")

        request = {"model": model, "messages": messages, **kwargs}
        # Reasoning models take max_completion_tokens and no temperature
        if "max_completion_tokens" not in kwargs:
            request["max_tokens"] = max_tokens
            request["temperature"] = temperature

        started = time.monotonic()
        try:
            response = await self.client.chat.completions.create(**request)
        except Exception as e:
            latency = time.monotonic() - started
            logger.error(f"LLM chat completion failed: {e}")
            self._log_api_call(model, latency=latency, status="error")
            if _is_rate_limit_error(e):
                raise RateLimitError("openai") from e
            raise GenerationError(f"LLM request failed: {e}") from e

        latency = time.monotonic() - started
        usage = response.usage
        result = {
            "content": response.choices[0].message.content or "",
            "model": response.model,
            "usage": {
                "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
                "total_tokens": getattr(usage, "total_tokens", 0) or 0,
            },
            "finish_reason": response.choices[0].finish_reason,
        }
        self._last_model_used = response.model

        logger.info(
            f"🤖 LLM Response: {result['model']} | "
            f"tokens: {result['usage']['total_tokens']} (prompt: {result['usage']['prompt_tokens']}, "
            f"completion: {result['usage']['completion_tokens']}) in {latency:.1f}s"
        )
        self._log_api_call(
            result["model"],
            prompt_tokens=result["usage"]["prompt_tokens"],
            completion_tokens=result["usage"]["completion_tokens"],
            latency=latency,
            status="success",
        )
        return result

    def _log_api_call(self, model: str, prompt_tokens: int = 0, completion_tokens: int = 0,
                      latency: float = 0.0, status: str = "success"):
        if self.app_logger:
            self.app_logger.llm_api_call(
                provider="openai",
                model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                latency=latency,
                status=status,
            )


# Singleton instance (initialized lazily)
_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """Get the global LLM service, building it from Settings on first use."""
    global _llm_service
    if _llm_service is None:
        from soulscribe.config import get_settings
        from soulscribe.services.logger import get_logger

        settings = get_settings()
        _llm_service = LLMService(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.llm_request_timeout_seconds,
            app_logger=get_logger(settings),
        )
    return _llm_service


def init_llm_service(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: float = 120.0,
    client: Optional[Any] = None,
    app_logger=None,
) -> LLMService:
    """
    Initialize the global LLM service.

    Call this at application startup to override Settings.
    """
    global _llm_service
    _llm_service = LLMService(
        api_key=api_key,
        base_url=base_url,
        timeout=timeout,
        client=client,
        app_logger=app_logger,
    )
    return _llm_service


def reset_llm_service():
    """Reset the singleton (useful for testing)."""
    global _llm_service
    _llm_service = None
