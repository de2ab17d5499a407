"""Chroma implementation of the vector-index abstraction."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import chromadb

from inbox_rag.models import ChunkMatch, EmbeddedChunk, EntityType
from inbox_rag.retrieval.base import VectorIndexBase, chunk_row_id

logger = logging.getLogger(__name__)


class ChromaVectorIndex(VectorIndexBase):
    """Chroma-backed index with one HNSW cosine collection per entity type.

    Parameters
    ----------
    client:
        A ``chromadb`` client (``HttpClient`` in production,
        ``EphemeralClient`` in tests).
    collection_prefix:
        Collections are named ``{prefix}_{entity}_chunks``.
    """

    def __init__(self, client: Any, *, collection_prefix: str = "inbox_rag") -> None:
        self._client = client
        self._prefix = collection_prefix
        self._collections: dict[EntityType, Any] = {}

    @classmethod
    def connect(cls, host: str, port: int, *, collection_prefix: str = "inbox_rag") -> ChromaVectorIndex:
        return cls(chromadb.HttpClient(host=host, port=port), collection_prefix=collection_prefix)

    async def _collection(self, entity_type: EntityType) -> Any:
        collection = self._collections.get(entity_type)
        if collection is None:
            collection = await asyncio.to_thread(
                self._client.get_or_create_collection,
                name=f"{self._prefix}_{entity_type.value}_chunks",
                metadata={"hnsw:space": "cosine"},
            )
            self._collections[entity_type] = collection
        return collection

    # -- VectorIndexBase overrides --------------------------------------------

    async def upsert_chunks(
        self,
        entity_type: EntityType,
        document_id: str,
        chunks: list[EmbeddedChunk],
    ) -> None:
        if not chunks:
            return
        collection = await self._collection(entity_type)
        await asyncio.to_thread(
            collection.upsert,
            ids=[chunk_row_id(document_id, c.chunk_index) for c in chunks],
            embeddings=[c.embedding for c in chunks],
            documents=[c.text for c in chunks],
            metadatas=[{"document_id": document_id, "chunk_index": c.chunk_index} for c in chunks],
        )

    async def has_embeddings(self, entity_type: EntityType, document_id: str) -> bool:
        collection = await self._collection(entity_type)
        result = await asyncio.to_thread(
            collection.get,
            where={"document_id": document_id},
            limit=1,
            include=["metadatas"],
        )
        return bool(result.get("ids"))

    async def search(
        self,
        entity_type: EntityType,
        query_vector: list[float],
        *,
        threshold: float,
        top_k: int,
    ) -> list[ChunkMatch]:
        collection = await self._collection(entity_type)
        results = await asyncio.to_thread(
            collection.query,
            query_embeddings=[query_vector],
            n_results=top_k,
            include=["documents", "metadatas", "distances"],
        )

        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        matches: list[ChunkMatch] = []
        for content, meta, dist in zip(docs, metas, distances):
            # Collections use cosine space, so distance = 1 - cosine similarity.
            similarity = 1.0 - dist
            if similarity <= threshold:
                continue
            meta = meta or {}
            matches.append(
                ChunkMatch(
                    document_id=str(meta.get("document_id", "")),
                    chunk_text=content or "",
                    chunk_index=int(meta.get("chunk_index", 0)),
                    similarity=similarity,
                )
            )
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._client.heartbeat)
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    async def delete_document(self, entity_type: EntityType, document_id: str) -> None:
        collection = await self._collection(entity_type)
        await asyncio.to_thread(collection.delete, where={"document_id": document_id})
