"""Exact-search in-memory index for small corpora and tests."""

from __future__ import annotations

import math

from inbox_rag.models import ChunkMatch, EmbeddedChunk, EntityType
from inbox_rag.retrieval.base import VectorIndexBase


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0.0:
        return 0.0
    return dot / norm


class InMemoryVectorIndex(VectorIndexBase):
    """Brute-force cosine search over a dict keyed on ``(entity, document, index)``."""

    def __init__(self) -> None:
        self._rows: dict[tuple[EntityType, str, int], EmbeddedChunk] = {}

    def __len__(self) -> int:
        return len(self._rows)

    async def upsert_chunks(
        self,
        entity_type: EntityType,
        document_id: str,
        chunks: list[EmbeddedChunk],
    ) -> None:
        for chunk in chunks:
            self._rows[(entity_type, document_id, chunk.chunk_index)] = chunk

    async def has_embeddings(self, entity_type: EntityType, document_id: str) -> bool:
        return any(e == entity_type and d == document_id for e, d, _ in self._rows)

    async def search(
        self,
        entity_type: EntityType,
        query_vector: list[float],
        *,
        threshold: float,
        top_k: int,
    ) -> list[ChunkMatch]:
        matches = []
        for (entity, document_id, index), chunk in self._rows.items():
            if entity != entity_type:
                continue
            similarity = cosine_similarity(query_vector, chunk.embedding)
            if similarity > threshold:
                matches.append(
                    ChunkMatch(
                        document_id=document_id,
                        chunk_text=chunk.text,
                        chunk_index=index,
                        similarity=similarity,
                    )
                )
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:top_k]

    async def health_check(self) -> bool:
        return True

    async def delete_document(self, entity_type: EntityType, document_id: str) -> None:
        for key in [k for k in self._rows if k[0] == entity_type and k[1] == document_id]:
            del self._rows[key]
