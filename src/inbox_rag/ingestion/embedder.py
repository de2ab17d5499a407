"""Embedding client: batching, a concurrency gate and rate-limit-aware retry.

The provider is any LangChain :class:`~langchain_core.embeddings.Embeddings`
implementation; production uses ``OpenAIEmbeddings`` with the SDK's own
retries disabled so that the policy here is the only one in play.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import openai
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from inbox_rag.exceptions import ChunkTooLargeError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings
    from langchain_openai import OpenAIEmbeddings

    from inbox_rag.config import Settings

logger = logging.getLogger(__name__)

MIN_DELAY = 0.1
MAX_DELAY = 60.0

_RETRY_HINT = re.compile(r"try again in (\d+(?:\.\d+)?)\s*(ms|s|sec|seconds?)\b", re.IGNORECASE)


class ProviderErrorKind(str, enum.Enum):
    RATE_LIMIT = "rate_limit"
    TOO_LARGE = "too_large"
    OTHER = "other"


def _error_message(exc: BaseException) -> str:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
    return str(exc)


def classify_error(exc: BaseException) -> ProviderErrorKind:
    """Map a provider exception onto the retry taxonomy."""
    status = getattr(exc, "status_code", None)
    code = getattr(exc, "code", None)
    message = _error_message(exc).lower()

    if isinstance(exc, openai.RateLimitError) or status == 429 or code == "rate_limit_exceeded":
        return ProviderErrorKind.RATE_LIMIT
    if (
        status == 413
        or code == "context_length_exceeded"
        or (status == 400 and "maximum context length" in message)
    ):
        return ProviderErrorKind.TOO_LARGE
    return ProviderErrorKind.OTHER


def _is_rate_limit(exc: BaseException) -> bool:
    return classify_error(exc) is ProviderErrorKind.RATE_LIMIT


def _retry_after_header(exc: BaseException) -> float | None:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    raw_ms = headers.get("retry-after-ms")
    if raw_ms is not None:
        try:
            return float(raw_ms) / 1000.0
        except ValueError:
            pass
    raw = headers.get("retry-after")
    if raw is not None:
        try:
            return float(raw)
        except ValueError:
            pass
    return None


def compute_backoff(exc: BaseException, attempt: int, initial_delay: float = 1.0) -> float:
    """Seconds to wait before retrying after a rate-limit error.

    Preference order: an explicit ``retry-after-ms`` / ``retry-after``
    header, then a "try again in N ms/s" hint in the error message, then
    ``initial_delay * 2 ** attempt``. The result is clamped to
    ``[0.1, 60]`` seconds.
    """
    delay = _retry_after_header(exc)
    if delay is None:
        match = _RETRY_HINT.search(_error_message(exc))
        if match:
            value = float(match.group(1))
            delay = value / 1000.0 if match.group(2).lower() == "ms" else value
    if delay is None:
        delay = initial_delay * (2**attempt)
    return max(MIN_DELAY, min(delay, MAX_DELAY))


class EmbeddingClient:
    """Bounded-concurrency wrapper around an embedding provider.

    Parameters
    ----------
    provider:
        LangChain embeddings implementation; only ``aembed_query`` is used.
    max_concurrency:
        Maximum in-flight provider calls, and the group size for
        :meth:`embed_batch`.
    batch_pause:
        Seconds to sleep between sequential groups in :meth:`embed_batch`.
    max_retries:
        Retries after a rate-limit error (so at most ``max_retries + 1``
        provider calls per text).
    initial_delay:
        Base for exponential backoff when the provider gives no hint.
    sleep:
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        provider: Embeddings,
        *,
        max_concurrency: int = 5,
        batch_pause: float = 0.5,
        max_retries: int = 5,
        initial_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._provider = provider
        self._gate = asyncio.Semaphore(max_concurrency)
        self.max_concurrency = max_concurrency
        self.batch_pause = batch_pause
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._sleep = sleep

    async def embed(self, text: str) -> list[float]:
        """Embed a single text, retrying on rate limits."""
        try:
            async for attempt in AsyncRetrying(
                reraise=True,
                stop=stop_after_attempt(self.max_retries + 1),
                wait=self._backoff,
                retry=retry_if_exception(_is_rate_limit),
                before_sleep=self._log_retry,
                sleep=self._sleep,
            ):
                with attempt:
                    async with self._gate:
                        return await self._provider.aembed_query(text)
        except Exception as exc:
            if classify_error(exc) is ProviderErrorKind.TOO_LARGE:
                logger.error("Token limit exceeded - chunk of %d chars is too large", len(text))
                raise ChunkTooLargeError() from exc
            raise
        # unreachable with reraise=True
        raise RuntimeError("Embedding retries exhausted")

    def _backoff(self, retry_state: RetryCallState) -> float:
        return compute_backoff(retry_state.outcome.exception(), retry_state.attempt_number - 1, self.initial_delay)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Rate limit hit, retrying in %.0fms (attempt %d/%d)",
            retry_state.next_action.sleep * 1000,
            retry_state.attempt_number,
            self.max_retries,
        )

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in sequential groups of ``max_concurrency``.

        Output order matches input order. Every call in a group settles
        before the first failure (in input order) is raised.
        """
        vectors: list[list[float]] = []
        size = self.max_concurrency
        for start in range(0, len(texts), size):
            group = texts[start : start + size]
            results = await asyncio.gather(*(self.embed(t) for t in group), return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            vectors.extend(results)  # type: ignore[arg-type]
            if start + size < len(texts):
                await self._sleep(self.batch_pause)
        return vectors


def get_embedding_provider(settings: Settings) -> OpenAIEmbeddings:
    """Return the configured OpenAI embeddings model with SDK retries off."""
    from langchain_openai import OpenAIEmbeddings

    return OpenAIEmbeddings(
        model=settings.embedding_model,
        api_key=settings.openai_api_key or None,
        max_retries=0,
    )
