"""LLM initialisation: single place to swap providers.

Supports two modes:

1. **OpenAI cloud** (default): set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint**: set ``LLM_BASE_URL`` (vLLM, a local
   gateway, ...). ``ChatOpenAI`` talks to it unchanged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_openai import ChatOpenAI

if TYPE_CHECKING:
    from inbox_rag.config import Settings

logger = logging.getLogger(__name__)


def get_llm(settings: Settings) -> ChatOpenAI:
    """Return the configured chat model.

    SDK retries are disabled: a failed generation falls back to a
    deterministic answer instead of being retried.
    """
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
        "max_retries": 0,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        # Self-hosted endpoints often need no key; the client requires a non-empty value.
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key or None

    return ChatOpenAI(**kwargs)
