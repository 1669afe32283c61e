"""Chat-completion client used by every enrichment call site, with a circuit breaker."""

from __future__ import annotations

import enum
import time

import structlog
from circuitbreaker import CircuitBreakerError, circuit
from openai import AsyncOpenAI, OpenAIError

from bookshelf.config import get_settings
from bookshelf.errors import UpstreamGenerationFailure
from bookshelf.metrics import GENERATION_LATENCY, GENERATION_REQUESTS

logger = structlog.get_logger()


class ModelTier(str, enum.Enum):
    FAST = "fast"
    STANDARD = "standard"


class TextGenerationClient:
    """
    Thin async wrapper around the OpenAI chat-completions API.

    ``complete(prompt, tier, json_output)`` returns the raw assistant text.
    Any transport or API error, and an open circuit, surfaces as
    ``UpstreamGenerationFailure``. The client never retries.
    """

    def __init__(
        self,
        api_key: str,
        fast_model: str,
        standard_model: str,
        base_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )
        self._models = {
            ModelTier.FAST: fast_model,
            ModelTier.STANDARD: standard_model,
        }

    def model_for(self, tier: ModelTier) -> str:
        return self._models[tier]

    async def complete(
        self,
        prompt: str,
        tier: ModelTier = ModelTier.FAST,
        json_output: bool = False,
        call_site: str = "default",
    ) -> str:
        model = self.model_for(tier)
        start_time = time.time()
        try:
            content = await self._create(model, prompt, json_output)
        except (OpenAIError, CircuitBreakerError) as exc:
            GENERATION_REQUESTS.labels(call_site=call_site, outcome="error").inc()
            logger.error(
                "text_generation_failed",
                call_site=call_site,
                model=model,
                error=str(exc),
            )
            raise UpstreamGenerationFailure() from exc

        latency = time.time() - start_time
        GENERATION_REQUESTS.labels(call_site=call_site, outcome="ok").inc()
        GENERATION_LATENCY.labels(call_site=call_site).observe(latency)
        logger.info(
            "text_generation_completed",
            call_site=call_site,
            model=model,
            chars=len(content),
            latency_ms=round(latency * 1000, 2),
        )
        return content

    @circuit(failure_threshold=5, recovery_timeout=30, expected_exception=OpenAIError)
    async def _create(self, model: str, prompt: str, json_output: bool) -> str:
        extra = {"response_format": {"type": "json_object"}} if json_output else {}
        resp = await self._client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            **extra,
        )
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    async def close(self) -> None:
        await self._client.close()


def build_llm_client() -> TextGenerationClient:
    settings = get_settings()
    return TextGenerationClient(
        api_key=settings.openai_api_key,
        fast_model=settings.llm_fast_model,
        standard_model=settings.llm_standard_model,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout_seconds,
    )


_client: TextGenerationClient | None = None


def get_llm_client() -> TextGenerationClient:
    """Process-wide client for the API; the worker builds its own per run."""
    global _client
    if _client is None:
        _client = build_llm_client()
    return _client


async def close_client() -> None:
    global _client
    if _client:
        await _client.close()
        _client = None
