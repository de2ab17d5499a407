"""Text chunking for embedding.

Windows are measured in characters using a fixed ratio of ≈4 characters
per token. Each window is cut at the most natural boundary found in its
last 20%: a sentence end, then a paragraph break, then any whitespace.
"""

from __future__ import annotations

import re

from inbox_rag.models import CHARS_PER_TOKEN, Chunk

# Boundary patterns in priority order.
_BOUNDARIES = (
    re.compile(r"[.!?]\s+"),
    re.compile(r"\n\n+"),
    re.compile(r"\s+"),
)

_SEARCH_FRACTION = 0.8


def _find_cut(text: str, start: int, end: int, max_chars: int) -> int:
    search_start = max(start + int(max_chars * _SEARCH_FRACTION), start)
    window = text[search_start:end]
    for pattern in _BOUNDARIES:
        match = pattern.search(window)
        if match:
            return search_start + match.start() + 1
    return end


def chunk_text(text: str, max_tokens: int = 5000, overlap: int = 200) -> list[str]:
    """Split *text* into overlapping chunks of at most ``max_tokens`` tokens.

    Parameters
    ----------
    text:
        Arbitrary source text.
    max_tokens:
        Upper bound per chunk, converted to ``max_tokens * 4`` characters.
    overlap:
        Characters shared between consecutive chunks.

    Returns
    -------
    list[str]
        Trimmed, non-empty chunks in source order. Text that already fits
        comes back as a single (trimmed) chunk, so re-chunking a chunk is a
        no-op.
    """
    if max_tokens <= 0:
        raise ValueError(f"max_tokens must be positive, got {max_tokens}")
    if overlap < 0:
        raise ValueError(f"overlap must be non-negative, got {overlap}")

    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        stripped = text.strip()
        return [stripped] if stripped else []

    chunks: list[str] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(start + max_chars, length)
        if end < length:
            end = _find_cut(text, start, end, max_chars)

        fragment = text[start:end].strip()
        if fragment:
            chunks.append(fragment)

        if end >= length:
            break
        # Always advance, even when overlap >= window size.
        start = max(start + 1, end - overlap)

    return chunks


def chunk_for_embedding(
    text: str,
    *,
    max_tokens: int = 5000,
    overlap: int = 200,
    hard_cap_chars: int = 16000,
    rechunk_max_tokens: int = 4000,
    rechunk_overlap: int = 100,
) -> list[str]:
    """Two-stage chunking: a coarse pass, then a stricter pass on oversize fragments.

    Dense text (code, URLs, base64) can approach one token per character,
    so any coarse fragment longer than ``hard_cap_chars`` is split again.
    """
    result: list[str] = []
    for fragment in chunk_text(text, max_tokens, overlap):
        if len(fragment) > hard_cap_chars:
            result.extend(chunk_text(fragment, rechunk_max_tokens, rechunk_overlap))
        else:
            result.append(fragment)
    return result


def build_chunks(document_id: str, texts: list[str]) -> list[Chunk]:
    """Number *texts* into :class:`Chunk` records with gapless indices."""
    return [Chunk.from_text(document_id, i, t) for i, t in enumerate(texts)]
