"""Unit tests for prompt building and answer composition."""

from __future__ import annotations

from datetime import datetime, timezone

from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from inbox_rag.generation.composer import NOTHING_FOUND, AnswerComposer, fallback_answer
from inbox_rag.generation.prompts import build_answer_prompt
from inbox_rag.models import EmailDocument
from inbox_rag.retrieval.models import EmailHit, RetrievalResult


class ScriptedLLM:
    """Minimal chat model stand-in recording the messages it receives."""

    def __init__(self, reply: AIMessage | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[list] = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return self.reply


def _result(n_emails: int = 1) -> RetrievalResult:
    email = EmailDocument(
        id="e1",
        source_id="g",
        subject="Launch",
        from_name="Dana",
        from_email="dana@example.org",
        date=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    hits = [EmailHit(email=email, max_similarity=0.9) for _ in range(n_emails)]
    return RetrievalResult(query="q", emails=hits, context="=== RELEVANT EMAILS ===\n..." if hits else "")


def test_prompt_contains_question_and_context() -> None:
    messages = build_answer_prompt("when is the launch?", "CONTEXT BLOCK")

    assert isinstance(messages[0], SystemMessage)
    assert "email assistant" in messages[0].content
    assert isinstance(messages[1], HumanMessage)
    assert messages[1].content.startswith('User question: "when is the launch?"')
    assert "CONTEXT BLOCK" in messages[1].content


def test_prompt_without_context() -> None:
    messages = build_answer_prompt("anything?", "")
    assert "No relevant emails or attachments found." in messages[1].content


async def test_compose_returns_model_text() -> None:
    composer = AnswerComposer(FakeListChatModel(responses=["The launch is Friday."]))

    answer = await composer.compose("when is the launch?", _result())

    assert answer.text == "The launch is Friday."
    assert not answer.used_fallback


async def test_compose_calls_model_once() -> None:
    llm = ScriptedLLM(reply=AIMessage(content="ok"))
    await AnswerComposer(llm).compose("q", _result())
    assert len(llm.calls) == 1


async def test_compose_falls_back_on_error() -> None:
    llm = ScriptedLLM(error=TimeoutError("upstream timed out"))

    answer = await AnswerComposer(llm).compose("q", _result(n_emails=2))

    assert answer.used_fallback
    assert answer.text == (
        "I found 2 relevant email(s) and 0 relevant attachment(s), but couldn't generate "
        "a detailed response. Please check the results manually."
    )
    assert len(llm.calls) == 1


async def test_compose_falls_back_on_empty_content() -> None:
    answer = await AnswerComposer(ScriptedLLM(reply=AIMessage(content="  "))).compose("q", _result(n_emails=0))

    assert answer.used_fallback
    assert answer.text == NOTHING_FOUND


def test_fallback_answer_is_deterministic() -> None:
    assert fallback_answer(_result(0)) == NOTHING_FOUND
    assert fallback_answer(_result(3)) == fallback_answer(_result(3))
