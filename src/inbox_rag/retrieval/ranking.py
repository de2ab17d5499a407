"""Match grouping and recall-then-recency ranking."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from functools import cmp_to_key
from typing import TypeVar

from inbox_rag.models import ChunkMatch

T = TypeVar("T")

RECENCY_KEYWORDS = ("last", "recent", "latest", "newest")
_RECENCY_PATTERN = re.compile(r"\b(?:" + "|".join(RECENCY_KEYWORDS) + r")\b", re.IGNORECASE)


def is_recency_query(query: str) -> bool:
    """True when *query* asks for the newest items ("my last email", ...)."""
    return _RECENCY_PATTERN.search(query) is not None


def group_matches(matches: Iterable[ChunkMatch], per_document: int = 3) -> dict[str, list[ChunkMatch]]:
    """Group chunk matches by document, keeping each document's best *per_document*.

    Documents appear in first-seen order; chunks within a document are
    ordered by descending similarity.
    """
    grouped: dict[str, list[ChunkMatch]] = {}
    for match in matches:
        grouped.setdefault(match.document_id, []).append(match)
    return {
        doc_id: sorted(chunks, key=lambda m: m.similarity, reverse=True)[:per_document]
        for doc_id, chunks in grouped.items()
    }


def rank_by_similarity_then_recency(
    items: Sequence[T],
    *,
    similarity: Callable[[T], float],
    date: Callable[[T], datetime],
    epsilon: float = 0.1,
) -> list[T]:
    """Order *items* by similarity, letting recency decide near-ties.

    Two items whose similarities differ by less than *epsilon* are
    ordered newest first; otherwise the more similar one wins. The sort
    is stable, so equal items keep their input order.
    """

    def compare(a: T, b: T) -> int:
        sa, sb = similarity(a), similarity(b)
        if sa == sb or abs(sa - sb) < epsilon:
            da, db = date(a), date(b)
            return (db > da) - (db < da)
        return -1 if sa > sb else 1

    return sorted(items, key=cmp_to_key(compare))
