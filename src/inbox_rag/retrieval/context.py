"""Prompt context assembly from ranked hits."""

from __future__ import annotations

from collections.abc import Sequence

from inbox_rag.retrieval.models import AttachmentHit, EmailHit

CHUNK_PREVIEW_CHARS = 500
BODY_PREVIEW_CHARS = 300


def _chunk_lines(chunks: Sequence) -> list[str]:
    return [f"\n[Chunk {i}]: {c.chunk_text[:CHUNK_PREVIEW_CHARS]}..." for i, c in enumerate(chunks, start=1)]


def build_context(emails: Sequence[EmailHit], attachments: Sequence[AttachmentHit]) -> str:
    """Render hits as the plain-text context block given to the chat model.

    Callers truncate *emails* and *attachments* to their display limits
    first; every hit passed in is rendered. Returns ``""`` when both are
    empty.
    """
    parts: list[str] = []

    if emails:
        parts.append("=== RELEVANT EMAILS ===")
        for idx, hit in enumerate(emails, start=1):
            email = hit.email
            parts.append(f"\nEmail {idx} (Relevance: {hit.max_similarity * 100:.1f}%):")
            parts.append(f"From: {email.from_name} <{email.from_email}>")
            parts.append(f"Subject: {email.subject}")
            parts.append(f"Date: {email.date:%Y-%m-%d %H:%M} UTC")
            parts.append(f"Snippet: {email.snippet}")
            if hit.matching_chunks:
                parts.append("\nMost relevant content:")
                parts.extend(_chunk_lines(hit.matching_chunks))
            if email.body:
                parts.append(f"\nFull body preview: {email.body[:BODY_PREVIEW_CHARS]}...")
            parts.append("\n")

    if attachments:
        parts.append("\n=== RELEVANT ATTACHMENTS ===")
        for idx, hit in enumerate(attachments, start=1):
            parts.append(f"\nAttachment {idx}: {hit.attachment.filename}")
            parts.append(f"Size: {hit.attachment.size / 1024:.1f} KB")
            if hit.matching_chunks:
                parts.append("\nRelevant content:")
                parts.extend(_chunk_lines(hit.matching_chunks))
            parts.append("\n")

    return "\n".join(parts)
