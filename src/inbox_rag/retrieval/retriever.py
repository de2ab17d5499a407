"""Email retriever: query embedding, dual-entity search and ranking.

This module is the **primary public interface** for retrieval. The
answer composer consumes :class:`~inbox_rag.retrieval.models.RetrievalResult`
and the ``/search`` route consumes :class:`~inbox_rag.retrieval.models.SearchResult`.

Usage::

    retriever = EmailRetriever(embedder, index, repository)
    result = await retriever.retrieve("what did Dana say about the launch?", grant_id)
    for hit in result.emails:
        print(hit.max_similarity, hit.email.subject)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from inbox_rag.models import ChunkMatch, EntityType
from inbox_rag.retrieval.base import VectorIndexBase
from inbox_rag.retrieval.context import build_context
from inbox_rag.retrieval.models import (
    AttachmentHit,
    AttachmentSummary,
    EmailHit,
    RetrievalResult,
    SearchAttachmentHit,
    SearchEmailHit,
    SearchResult,
)
from inbox_rag.retrieval.ranking import group_matches, is_recency_query, rank_by_similarity_then_recency

if TYPE_CHECKING:
    from inbox_rag.ingestion.embedder import EmbeddingClient
    from inbox_rag.models import AttachmentDocument
    from inbox_rag.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)

# Synthetic scores for emails surfaced by the recency override.
RECENCY_SIMILARITY = 0.9
FALLBACK_SIMILARITY = 0.8


def _summary(attachment: AttachmentDocument) -> AttachmentSummary:
    return AttachmentSummary(
        id=attachment.id,
        filename=attachment.filename,
        content_type=attachment.content_type,
        size=attachment.size,
    )


class EmailRetriever:
    """Retrieve ranked emails and attachments for a natural-language query.

    Parameters
    ----------
    embedder:
        Embeds the query text.
    index:
        Chunk-vector index holding both entity types.
    repository:
        Loads document rows for matched ids, scoped to a source.
    match_threshold / match_count / fetch_multiplier:
        Question answering searches each entity type with
        ``threshold=match_threshold`` and ``top_k=match_count * fetch_multiplier``.
    search_threshold:
        Stricter threshold used by :meth:`search`.
    recency_limit / fallback_limit:
        How many recent emails the recency override loads for keyword
        queries and for empty-result fallback respectively.
    tie_epsilon:
        Similarity gap below which recency decides the order.
    email_display / attachment_display:
        Hits kept in the result and rendered into the context.
    chunks_per_document:
        Best chunks kept per document.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        index: VectorIndexBase,
        repository: DocumentRepository,
        *,
        match_threshold: float = 0.5,
        match_count: int = 15,
        fetch_multiplier: int = 2,
        search_threshold: float = 0.7,
        recency_limit: int = 5,
        fallback_limit: int = 3,
        tie_epsilon: float = 0.1,
        email_display: int = 5,
        attachment_display: int = 3,
        chunks_per_document: int = 3,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.repository = repository
        self.match_threshold = match_threshold
        self.match_count = match_count
        self.fetch_multiplier = fetch_multiplier
        self.search_threshold = search_threshold
        self.recency_limit = recency_limit
        self.fallback_limit = fallback_limit
        self.tie_epsilon = tie_epsilon
        self.email_display = email_display
        self.attachment_display = attachment_display
        self.chunks_per_document = chunks_per_document

    # -- public API -----------------------------------------------------------

    async def retrieve(self, query: str, source_id: str) -> RetrievalResult:
        """Find the emails and attachments most relevant to *query*.

        Embedding failures propagate. A failed search on one entity type
        is logged and treated as no matches.
        """
        vector = await self.embedder.embed(query)
        top_k = self.match_count * self.fetch_multiplier
        email_matches, attachment_matches = await asyncio.gather(
            self._search_entity(EntityType.EMAIL, vector, self.match_threshold, top_k),
            self._search_entity(EntityType.ATTACHMENT, vector, self.match_threshold, top_k),
        )

        keyword = is_recency_query(query)
        used_recency = keyword or not email_matches
        if used_recency:
            emails = await self._recent_emails(source_id, keyword)
        else:
            emails = await self._rank_emails(email_matches, source_id)
        attachments = await self._rank_attachments(attachment_matches, source_id)

        emails = emails[: self.email_display]
        attachments = attachments[: self.attachment_display]
        logger.info(
            "Retrieved %d emails and %d attachments for %s (recency=%s)",
            len(emails),
            len(attachments),
            source_id,
            used_recency,
        )
        return RetrievalResult(
            query=query,
            emails=emails,
            attachments=attachments,
            context=build_context(emails, attachments),
            used_recency=used_recency,
        )

    async def search(
        self,
        query: str,
        source_id: str,
        *,
        limit: int = 10,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        sender_email: str | None = None,
        chunks_per_result: int = 2,
    ) -> SearchResult:
        """Filtered semantic search without answer generation.

        Parameters
        ----------
        limit:
            Maximum emails returned; each entity type is searched with
            ``top_k = limit * 2``.
        date_from / date_to / sender_email:
            Optional email filters, applied after the vector search.
        chunks_per_result:
            Matching chunk texts attached to each hit.
        """
        vector = await self.embedder.embed(query)
        top_k = limit * 2
        email_matches, attachment_matches = await asyncio.gather(
            self._search_entity(EntityType.EMAIL, vector, self.search_threshold, top_k),
            self._search_entity(EntityType.ATTACHMENT, vector, self.search_threshold, top_k),
        )

        email_groups = group_matches(email_matches, chunks_per_result)
        emails = await self.repository.get_emails(
            list(email_groups),
            source_id=source_id,
            date_from=date_from,
            date_to=date_to,
            sender_email=sender_email,
            with_recipients=True,
        )
        emails.sort(key=lambda e: email_groups[e.id][0].similarity, reverse=True)
        emails = emails[:limit]
        attachments = await self.repository.attachments_by_email([e.id for e in emails])
        email_hits = [
            SearchEmailHit(
                email=email,
                attachments=[_summary(a) for a in attachments.get(email.id, [])],
                matching_chunks=[c.chunk_text for c in email_groups[email.id]],
                max_similarity=email_groups[email.id][0].similarity,
            )
            for email in emails
        ]

        attachment_groups = group_matches(attachment_matches, chunks_per_result)
        pairs = await self.repository.get_attachments(list(attachment_groups), source_id=source_id)
        attachment_hits = [
            SearchAttachmentHit(
                attachment=_summary(attachment),
                email_id=attachment.email_id,
                email=parent,
                matching_chunks=[c.chunk_text for c in attachment_groups[attachment.id]],
                max_similarity=attachment_groups[attachment.id][0].similarity,
            )
            for attachment, parent in pairs
        ]
        attachment_hits.sort(key=lambda h: h.max_similarity, reverse=True)

        return SearchResult(emails=email_hits, attachments=attachment_hits)

    # -- internals ------------------------------------------------------------

    async def _search_entity(
        self,
        entity_type: EntityType,
        vector: list[float],
        threshold: float,
        top_k: int,
    ) -> list[ChunkMatch]:
        try:
            return await self.index.search(entity_type, vector, threshold=threshold, top_k=top_k)
        except Exception:
            logger.exception("Vector search failed for %s chunks", entity_type.value)
            return []

    async def _recent_emails(self, source_id: str, keyword: bool) -> list[EmailHit]:
        limit = self.recency_limit if keyword else self.fallback_limit
        similarity = RECENCY_SIMILARITY if keyword else FALLBACK_SIMILARITY
        recent = await self.repository.recent_emails(source_id, limit)
        return [EmailHit(email=e, matching_chunks=[], max_similarity=similarity) for e in recent]

    async def _rank_emails(self, matches: list[ChunkMatch], source_id: str) -> list[EmailHit]:
        groups = group_matches(matches, self.chunks_per_document)
        emails = await self.repository.get_emails(list(groups), source_id=source_id)
        hits = [
            EmailHit(email=e, matching_chunks=groups[e.id], max_similarity=groups[e.id][0].similarity)
            for e in emails
        ]
        return rank_by_similarity_then_recency(
            hits,
            similarity=lambda h: h.max_similarity,
            date=lambda h: h.email.date,
            epsilon=self.tie_epsilon,
        )

    async def _rank_attachments(self, matches: list[ChunkMatch], source_id: str) -> list[AttachmentHit]:
        if not matches:
            return []
        groups = group_matches(matches, self.chunks_per_document)
        pairs = await self.repository.get_attachments(list(groups), source_id=source_id)
        hits = [
            AttachmentHit(
                attachment=attachment,
                email=parent,
                matching_chunks=groups[attachment.id],
                max_similarity=groups[attachment.id][0].similarity,
            )
            for attachment, parent in pairs
        ]
        return rank_by_similarity_then_recency(
            hits,
            similarity=lambda h: h.max_similarity,
            date=lambda h: h.email.date,
            epsilon=self.tie_epsilon,
        )
