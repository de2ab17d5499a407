"""Domain models shared by ingestion, storage and retrieval.

These are plain Pydantic models; ORM rows live in
:mod:`inbox_rag.storage.tables` and are converted at the repository seam.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

CHARS_PER_TOKEN = 4


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityType(str, enum.Enum):
    """Kinds of indexed document."""

    EMAIL = "email"
    ATTACHMENT = "attachment"


class JobStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class RecipientType(str, enum.Enum):
    TO = "to"
    CC = "cc"
    BCC = "bcc"


# ── Chunks & vectors ──────────────────────────────────────────────────


class Chunk(BaseModel):
    """A bounded text fragment of one document, the unit of embedding.

    Attributes
    ----------
    document_id:
        Id of the owning email or attachment.
    chunk_index:
        Zero-based position in source order; contiguous per document.
    text:
        The fragment itself (never empty).
    char_count / token_estimate:
        Size hints; ``token_estimate`` assumes ≈4 chars per token.
    """

    document_id: str
    chunk_index: int
    text: str
    char_count: int = 0
    token_estimate: int = 0

    @classmethod
    def from_text(cls, document_id: str, chunk_index: int, text: str) -> Chunk:
        return cls(
            document_id=document_id,
            chunk_index=chunk_index,
            text=text,
            char_count=len(text),
            token_estimate=len(text) // CHARS_PER_TOKEN,
        )


class EmbeddedChunk(BaseModel):
    """A chunk paired with its embedding vector, ready to upsert."""

    chunk_index: int
    text: str
    embedding: list[float]


class ChunkMatch(BaseModel):
    """One row returned by a vector-index search."""

    document_id: str
    chunk_text: str
    chunk_index: int
    similarity: float


# ── Documents ─────────────────────────────────────────────────────────


class Recipient(BaseModel):
    type: RecipientType
    name: str | None = None
    email: str


class EmailDocument(BaseModel):
    """A normalized email as persisted in the ``emails`` table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    source_id: str
    subject: str
    from_name: str
    from_email: str
    snippet: str = ""
    body: str | None = None
    date: datetime
    recipients: list[Recipient] = Field(default_factory=list)

    @field_validator("date")
    @classmethod
    def _date_is_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class AttachmentDocument(BaseModel):
    """Attachment metadata plus its extracted text (if any)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email_id: str
    filename: str
    content_type: str = "application/octet-stream"
    size: int = 0
    is_inline: bool = False
    content_id: str | None = None
    storage_path: str
    text: str | None = None


class IngestionJob(BaseModel):
    """One ingestion run and its terminal outcome."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_id: str
    status: JobStatus
    processed_count: int = 0
    started_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None

    @field_validator("started_at", "completed_at")
    @classmethod
    def _times_are_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None
