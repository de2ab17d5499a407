"""Prompt templates for answer generation.

Keeping prompts in one place makes them easy to audit and version.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

NO_CONTEXT = "No relevant emails or attachments found."

SYSTEM_PROMPT = """\
You are a helpful email assistant. You help users find and understand information from their emails.
When answering questions:
- Be concise and natural, as if speaking to someone
- Use the context provided from relevant emails and attachments
- For questions about "last email", "recent email", or "latest email", use the most recent email in the context (sorted by date)
- If you find relevant information, reference specific emails with details like sender, subject, and date
- When answering about the last/recent email, provide the subject, sender, date, and a brief summary
- If no relevant information is found in the context, say so clearly
- Keep responses conversational and brief (2-3 sentences for simple questions, up to a paragraph for complex ones)
- Don't make up information - only use what's in the context
"""


def build_answer_prompt(query: str, context: str) -> list[BaseMessage]:
    """Assemble the messages for one grounded answer.

    Parameters
    ----------
    query:
        The user question, quoted verbatim.
    context:
        Output of :func:`~inbox_rag.retrieval.context.build_context`;
        an empty string is replaced by a "nothing found" note.

    Returns
    -------
    list[BaseMessage]
        A list of LangChain message objects ready for ``.ainvoke()``.
    """
    user_msg = (
        f'User question: "{query}"\n\n'
        f"Relevant context from emails and attachments:\n{context or NO_CONTEXT}\n\n"
        "Please provide a helpful answer based on this context."
    )
    return [
        SystemMessage(content=SYSTEM_PROMPT),
        HumanMessage(content=user_msg),
    ]
