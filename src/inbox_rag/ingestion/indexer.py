"""Per-document chunk → embed → upsert."""

from __future__ import annotations

import logging

from inbox_rag.exceptions import ChunkTooLargeError
from inbox_rag.ingestion.chunker import build_chunks, chunk_for_embedding, chunk_text
from inbox_rag.ingestion.embedder import EmbeddingClient
from inbox_rag.ingestion.normalize import email_index_text
from inbox_rag.models import AttachmentDocument, EmailDocument, EmbeddedChunk, EntityType
from inbox_rag.retrieval.base import VectorIndexBase

logger = logging.getLogger(__name__)


class DocumentIndexer:
    """Write a document's chunk embeddings to the vector index.

    A document ends up with either no embeddings or one per chunk: every
    chunk is embedded before anything is upserted.

    Parameters
    ----------
    embedder:
        Rate-limited embedding client.
    index:
        Target vector index.
    max_tokens / overlap / hard_cap_chars / rechunk_max_tokens / rechunk_overlap:
        Forwarded to :func:`~inbox_rag.ingestion.chunker.chunk_for_embedding`.
    rechunk_attempts:
        How many times to halve the chunk size after the provider rejects
        a chunk as too large.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        index: VectorIndexBase,
        *,
        max_tokens: int = 5000,
        overlap: int = 200,
        hard_cap_chars: int = 16000,
        rechunk_max_tokens: int = 4000,
        rechunk_overlap: int = 100,
        rechunk_attempts: int = 2,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.max_tokens = max_tokens
        self.overlap = overlap
        self.hard_cap_chars = hard_cap_chars
        self.rechunk_max_tokens = rechunk_max_tokens
        self.rechunk_overlap = rechunk_overlap
        self.rechunk_attempts = rechunk_attempts

    async def index_email(self, email: EmailDocument) -> int:
        return await self.index_document(EntityType.EMAIL, email.id, email_index_text(email))

    async def index_attachment(self, attachment: AttachmentDocument) -> int:
        return await self.index_document(EntityType.ATTACHMENT, attachment.id, attachment.text or "")

    async def index_document(self, entity_type: EntityType, document_id: str, text: str) -> int:
        """Index *text* under *document_id*.

        Returns
        -------
        int
            Number of chunks written; 0 when skipped (empty text or the
            document already has embeddings).

        Raises
        ------
        ChunkTooLargeError
            If chunks are still rejected after every re-chunk attempt.
        """
        if not text.strip():
            logger.info("Skipping %s %s: no text to index", entity_type.value, document_id)
            return 0
        if await self.index.has_embeddings(entity_type, document_id):
            logger.info("Skipping %s %s: already indexed", entity_type.value, document_id)
            return 0

        texts = chunk_for_embedding(
            text,
            max_tokens=self.max_tokens,
            overlap=self.overlap,
            hard_cap_chars=self.hard_cap_chars,
            rechunk_max_tokens=self.rechunk_max_tokens,
            rechunk_overlap=self.rechunk_overlap,
        )
        if not texts:
            return 0

        max_tokens, overlap = self.max_tokens, self.overlap
        attempt = 0
        while True:
            try:
                vectors = await self.embedder.embed_batch(texts)
                break
            except ChunkTooLargeError:
                if attempt >= self.rechunk_attempts:
                    raise
                attempt += 1
                max_tokens, overlap = max(1, max_tokens // 2), overlap // 2
                logger.warning(
                    "Chunk too large for %s %s; re-chunking at %d tokens (attempt %d/%d)",
                    entity_type.value,
                    document_id,
                    max_tokens,
                    attempt,
                    self.rechunk_attempts,
                )
                texts = [piece for t in texts for piece in chunk_text(t, max_tokens, overlap)]

        chunks = build_chunks(document_id, texts)
        await self.index.upsert_chunks(
            entity_type,
            document_id,
            [EmbeddedChunk(chunk_index=c.chunk_index, text=c.text, embedding=v) for c, v in zip(chunks, vectors)],
        )
        logger.debug("Indexed %s %s: %d chunks", entity_type.value, document_id, len(chunks))
        return len(chunks)
