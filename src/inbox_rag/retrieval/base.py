"""Abstract base class for vector-index backends.

Adding a new backend (pgvector, Qdrant, …) only requires subclassing
:class:`VectorIndexBase` and implementing the abstract methods. Every
method is scoped to one :class:`~inbox_rag.models.EntityType` so emails
and attachments never share a collection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from inbox_rag.models import ChunkMatch, EmbeddedChunk, EntityType


def chunk_row_id(document_id: str, chunk_index: int) -> str:
    """Stable row key; upserting the same key replaces the row."""
    return f"{document_id}:{chunk_index}"


class VectorIndexBase(ABC):
    """Backend-agnostic chunk-vector store."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def upsert_chunks(
        self,
        entity_type: EntityType,
        document_id: str,
        chunks: list[EmbeddedChunk],
    ) -> None:
        """Write *chunks* for *document_id*, replacing rows with the same index."""
        ...

    @abstractmethod
    async def has_embeddings(self, entity_type: EntityType, document_id: str) -> bool:
        """Return ``True`` when any chunk vector exists for *document_id*."""
        ...

    @abstractmethod
    async def search(
        self,
        entity_type: EntityType,
        query_vector: list[float],
        *,
        threshold: float,
        top_k: int,
    ) -> list[ChunkMatch]:
        """Return up to *top_k* chunks with ``similarity > threshold``.

        Results are ordered by descending cosine similarity, where
        ``similarity = 1 - cosine_distance``.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    async def delete_document(self, entity_type: EntityType, document_id: str) -> None:
        """Drop every chunk of a document. Optional, raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")
