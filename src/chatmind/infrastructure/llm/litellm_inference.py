"""
LiteLLM-backed collaborators: inference, tokenizer and embeddings.

The provider is determined by the model string prefix (``anthropic/...``,
``ollama/...``, plain OpenAI names, ...); API keys are read by LiteLLM from
the usual provider environment variables.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator
from typing import Any

# Suppress LiteLLM verbose logging before import
os.environ.setdefault("LITELLM_LOG_LEVEL", "ERROR")
os.environ.setdefault("LITELLM_LOGGING", "off")
os.environ.setdefault("HTTPX_LOG_LEVEL", "warning")

for _ln in ["LiteLLM", "litellm", "httpcore", "httpx", "aiohttp", "openai"]:
    logging.getLogger(_ln).setLevel(logging.ERROR)

import litellm  # noqa: E402
import structlog  # noqa: E402

from chatmind.core.domain.config_schema import LLMSettings  # noqa: E402
from chatmind.core.domain.errors import InferenceError, RetrievalError  # noqa: E402
from chatmind.core.interfaces.llm import GenerationParams  # noqa: E402

litellm.suppress_debug_info = True
litellm.drop_params = True

logger = structlog.get_logger(__name__)

# Error type names that indicate transient failures worth retrying
_RETRYABLE_ERROR_TYPES = frozenset(
    {"RateLimitError", "APIConnectionError", "Timeout", "ServiceUnavailableError"}
)

_RETRYABLE_KEYWORDS = ("rate limit", "timeout", "503", "502", "429", "overloaded")

_NON_RETRYABLE_KEYWORDS = (
    "invalid api key",
    "authentication",
    "not found",
    "invalid model",
    "invalid request",
)


def should_retry(error: Exception) -> bool:
    """Check if an error is transient and worth retrying."""
    error_msg = str(error).lower()
    if any(kw in error_msg for kw in _NON_RETRYABLE_KEYWORDS):
        return False
    if type(error).__name__ in _RETRYABLE_ERROR_TYPES:
        return True
    return any(kw in error_msg for kw in _RETRYABLE_KEYWORDS)


class LiteLLMInference:
    """Chat completion through ``litellm.acompletion``."""

    def __init__(self, settings: LLMSettings | None = None) -> None:
        self._settings = settings or LLMSettings()

    @property
    def model(self) -> str:
        return self._settings.model

    def _kwargs(self, messages: list[dict[str, str]], params: GenerationParams) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": messages,
            "timeout": self._settings.timeout,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "drop_params": True,
            **params.extra,
        }
        if params.stop:
            kwargs["stop"] = list(params.stop)
        if self._settings.api_base:
            kwargs["api_base"] = self._settings.api_base
        return kwargs

    async def complete(self, messages: list[dict[str, str]], params: GenerationParams) -> str:
        kwargs = self._kwargs(messages, params)
        attempts = self._settings.max_attempts
        for attempt in range(attempts):
            start_time = time.time()
            try:
                response = await litellm.acompletion(**kwargs)
            except Exception as exc:
                if attempt < attempts - 1 and should_retry(exc):
                    backoff_time = self._settings.backoff_multiplier**attempt
                    logger.warning(
                        "llm.completion_retry",
                        model=self.model,
                        error_type=type(exc).__name__,
                        attempt=attempt + 1,
                        backoff_seconds=backoff_time,
                    )
                    await asyncio.sleep(backoff_time)
                    continue
                logger.error(
                    "llm.completion_failed",
                    model=self.model,
                    error_type=type(exc).__name__,
                    error=str(exc)[:200],
                    attempts=attempt + 1,
                )
                raise InferenceError(
                    f"Completion failed: {exc}",
                    details={"model": self.model, "error_type": type(exc).__name__},
                ) from exc

            content = response.choices[0].message.content or ""
            usage = getattr(response, "usage", None)
            logger.info(
                "llm.completion_success",
                model=self.model,
                tokens=getattr(usage, "total_tokens", 0) if usage else 0,
                latency_ms=int((time.time() - start_time) * 1000),
            )
            return content
        raise InferenceError("Completion failed without attempts", details={"model": self.model})

    async def stream(
        self, messages: list[dict[str, str]], params: GenerationParams
    ) -> AsyncIterator[str]:
        kwargs = self._kwargs(messages, params)
        kwargs["stream"] = True
        logger.info("llm.stream_started", model=self.model, message_count=len(messages))
        try:
            response = await litellm.acompletion(**kwargs)
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if getattr(delta, "content", None):
                    yield delta.content
        except Exception as exc:
            logger.error("llm.stream_failed", model=self.model, error=str(exc)[:200])
            raise InferenceError(
                f"Streaming failed: {exc}",
                details={"model": self.model, "error_type": type(exc).__name__},
            ) from exc
        logger.info("llm.stream_completed", model=self.model)


class LiteLLMTokenizer:
    """Token counts from ``litellm.token_counter`` for the configured model."""

    def __init__(self, model: str) -> None:
        self._model = model

    def count(self, text: str) -> int:
        if not text:
            return 0
        return int(litellm.token_counter(model=self._model, text=text))


class LiteLLMEmbedder:
    """Embeddings through ``litellm.aembedding``."""

    def __init__(self, settings: LLMSettings | None = None) -> None:
        self._settings = settings or LLMSettings()

    @property
    def enabled(self) -> bool:
        return bool(self._settings.embedding_model)

    async def embed(self, text: str) -> list[float]:
        if not self._settings.embedding_model:
            raise RetrievalError("No embedding model configured")
        kwargs: dict[str, Any] = {
            "model": self._settings.embedding_model,
            "input": [text],
            "timeout": self._settings.timeout,
        }
        if self._settings.api_base:
            kwargs["api_base"] = self._settings.api_base
        try:
            response = await litellm.aembedding(**kwargs)
        except Exception as exc:
            logger.error(
                "llm.embedding_failed",
                model=self._settings.embedding_model,
                error=str(exc)[:200],
            )
            raise RetrievalError(
                f"Embedding failed: {exc}",
                details={"model": self._settings.embedding_model},
            ) from exc
        item = response.data[0]
        vector = item["embedding"] if isinstance(item, dict) else item.embedding
        return [float(v) for v in vector]
