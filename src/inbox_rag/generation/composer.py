"""Grounded answer composition with a deterministic fallback."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel

from inbox_rag.generation.prompts import build_answer_prompt

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from inbox_rag.retrieval.models import RetrievalResult

logger = logging.getLogger(__name__)

NOTHING_FOUND = "I could not find any relevant emails or attachments matching your query."


class Answer(BaseModel):
    text: str
    used_fallback: bool = False


def fallback_answer(retrieval: RetrievalResult) -> str:
    """Answer text used when generation fails; depends only on hit counts."""
    if retrieval.is_empty:
        return NOTHING_FOUND
    return (
        f"I found {len(retrieval.emails)} relevant email(s) and "
        f"{len(retrieval.attachments)} relevant attachment(s), but couldn't generate "
        "a detailed response. Please check the results manually."
    )


def _content_text(content: object) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Multi-part content blocks; keep the text parts.
        return "".join(p if isinstance(p, str) else str(p.get("text", "")) for p in content)
    return ""


class AnswerComposer:
    """Turn a retrieval result into a natural-language answer.

    Parameters
    ----------
    llm:
        Any LangChain chat model. It is called exactly once per
        :meth:`compose`; configure it without retries.
    """

    def __init__(self, llm: BaseChatModel) -> None:
        self.llm = llm

    async def compose(self, query: str, retrieval: RetrievalResult) -> Answer:
        messages = build_answer_prompt(query, retrieval.context)
        try:
            response = await self.llm.ainvoke(messages)
        except Exception:
            logger.warning("Answer generation failed; using fallback", exc_info=True)
            return Answer(text=fallback_answer(retrieval), used_fallback=True)

        text = _content_text(response.content).strip()
        if not text:
            logger.warning("Answer generation returned empty content; using fallback")
            return Answer(text=fallback_answer(retrieval), used_fallback=True)
        return Answer(text=text, used_fallback=False)
