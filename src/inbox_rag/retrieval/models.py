"""Domain models for retrieval results."""

from __future__ import annotations

from pydantic import BaseModel, Field

from inbox_rag.models import AttachmentDocument, ChunkMatch, EmailDocument


class EmailHit(BaseModel):
    """An email ranked for a query, with its best-matching chunks.

    Attributes
    ----------
    matching_chunks:
        Highest-similarity chunks first; empty for emails surfaced by the
        recency override.
    max_similarity:
        Best chunk similarity, or the synthetic score assigned by the
        recency override.
    """

    email: EmailDocument
    matching_chunks: list[ChunkMatch] = Field(default_factory=list)
    max_similarity: float = 0.0


class AttachmentHit(BaseModel):
    """An attachment ranked for a query, with its parent email."""

    attachment: AttachmentDocument
    email: EmailDocument
    matching_chunks: list[ChunkMatch] = Field(default_factory=list)
    max_similarity: float = 0.0


class RetrievalResult(BaseModel):
    """Everything the answer composer needs for one question."""

    query: str
    emails: list[EmailHit] = Field(default_factory=list)
    attachments: list[AttachmentHit] = Field(default_factory=list)
    context: str = ""
    used_recency: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.emails and not self.attachments


# ── Filtered search ───────────────────────────────────────────────────


class AttachmentSummary(BaseModel):
    id: str
    filename: str
    content_type: str
    size: int


class SearchEmailHit(BaseModel):
    email: EmailDocument
    attachments: list[AttachmentSummary] = Field(default_factory=list)
    matching_chunks: list[str] = Field(default_factory=list)
    max_similarity: float = 0.0

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)


class SearchAttachmentHit(BaseModel):
    attachment: AttachmentSummary
    email_id: str
    email: EmailDocument | None = None
    matching_chunks: list[str] = Field(default_factory=list)
    max_similarity: float = 0.0


class SearchResult(BaseModel):
    """Semantic search results without a generated answer."""

    emails: list[SearchEmailHit] = Field(default_factory=list)
    attachments: list[SearchAttachmentHit] = Field(default_factory=list)
