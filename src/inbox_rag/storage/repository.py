"""Document and job persistence.

All document writes are keyed upserts on the provider id, so re-ingesting
the same message overwrites fields without duplicating rows.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inbox_rag.models import (
    AttachmentDocument,
    EmailDocument,
    IngestionJob,
    JobStatus,
    Recipient,
    ensure_utc,
    utcnow,
)
from inbox_rag.storage.tables import AttachmentRow, EmailRow, IngestionJobRow, RecipientRow

logger = logging.getLogger(__name__)

_EMAIL_FIELDS = ("source_id", "subject", "from_name", "from_email", "snippet", "body", "date")
_ATTACHMENT_FIELDS = (
    "email_id",
    "filename",
    "content_type",
    "size",
    "is_inline",
    "content_id",
    "storage_path",
    "text",
)


_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


def _upsert(session: AsyncSession, table: type, values: dict) -> Any:
    """``INSERT ... ON CONFLICT (id) DO UPDATE`` for the session's dialect."""
    dialect = session.bind.dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Keyed upserts are not supported on {dialect}")
    stmt = insert(table).values(**values)
    changes = {key: stmt.excluded[key] for key in values if key != "id"}
    changes["updated_at"] = utcnow()
    return stmt.on_conflict_do_update(index_elements=["id"], set_=changes)


async def _load_recipients(session: AsyncSession, email_ids: list[str]) -> dict[str, list[Recipient]]:
    if not email_ids:
        return {}
    stmt = select(RecipientRow).where(RecipientRow.email_id.in_(email_ids))
    recipients: dict[str, list[Recipient]] = {}
    for rr in (await session.execute(stmt)).scalars():
        recipients.setdefault(rr.email_id, []).append(Recipient(type=rr.type, name=rr.name, email=rr.email))
    return recipients


def _to_email(row: EmailRow, recipients: list[Recipient] | None = None) -> EmailDocument:
    return EmailDocument(
        id=row.id,
        source_id=row.source_id,
        subject=row.subject,
        from_name=row.from_name,
        from_email=row.from_email,
        snippet=row.snippet,
        body=row.body,
        date=row.date,
        recipients=recipients or [],
    )


class DocumentRepository:
    """Repository over the relational tables.

    Parameters
    ----------
    session_factory:
        ``async_sessionmaker`` from :func:`inbox_rag.storage.database.create_session_factory`.
        Each method runs in its own short transaction.
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._sessions = session_factory

    # -- ingestion jobs -------------------------------------------------------

    async def create_job(self, source_id: str) -> IngestionJob:
        async with self._sessions.begin() as session:
            row = IngestionJobRow(
                source_id=source_id,
                status=JobStatus.RUNNING,
                processed_count=0,
                started_at=utcnow(),
            )
            session.add(row)
            await session.flush()
            return IngestionJob.model_validate(row)

    async def finish_job(
        self,
        job_id: UUID,
        status: JobStatus,
        *,
        processed_count: int,
        error_message: str | None = None,
    ) -> IngestionJob:
        """Move a running job to its terminal state."""
        if status is JobStatus.RUNNING:
            raise ValueError("finish_job requires a terminal status")
        async with self._sessions.begin() as session:
            row = await session.get(IngestionJobRow, job_id)
            if row is None:
                raise LookupError(f"Ingestion job {job_id} not found")
            row.status = status
            row.processed_count = processed_count
            row.completed_at = utcnow()
            row.error_message = error_message
            await session.flush()
            return IngestionJob.model_validate(row)

    async def get_job(self, job_id: UUID) -> IngestionJob | None:
        async with self._sessions() as session:
            row = await session.get(IngestionJobRow, job_id)
            return IngestionJob.model_validate(row) if row is not None else None

    async def list_jobs(self, source_id: str, limit: int = 50) -> list[IngestionJob]:
        """Jobs for *source_id*, newest first."""
        stmt = (
            select(IngestionJobRow)
            .where(IngestionJobRow.source_id == source_id)
            .order_by(IngestionJobRow.started_at.desc())
            .limit(limit)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [IngestionJob.model_validate(r) for r in rows]

    # -- emails ---------------------------------------------------------------

    async def upsert_email(self, email: EmailDocument) -> None:
        values = {"id": email.id, **{f: getattr(email, f) for f in _EMAIL_FIELDS}}
        async with self._sessions.begin() as session:
            await session.execute(_upsert(session, EmailRow, values))

    async def replace_recipients(self, email_id: str, recipients: Sequence[Recipient]) -> None:
        """Delete the email's recipient rows and insert *recipients*."""
        async with self._sessions.begin() as session:
            await session.execute(delete(RecipientRow).where(RecipientRow.email_id == email_id))
            session.add_all(
                RecipientRow(email_id=email_id, type=r.type, name=r.name, email=r.email) for r in recipients
            )

    async def get_email(self, email_id: str) -> EmailDocument | None:
        emails = await self.get_emails([email_id], with_recipients=True)
        return emails[0] if emails else None

    async def get_emails(
        self,
        ids: Sequence[str],
        *,
        source_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        sender_email: str | None = None,
        with_recipients: bool = False,
    ) -> list[EmailDocument]:
        """Emails with the given ids, optionally filtered; unordered."""
        if not ids:
            return []
        stmt = select(EmailRow).where(EmailRow.id.in_(list(ids)))
        if source_id is not None:
            stmt = stmt.where(EmailRow.source_id == source_id)
        if date_from is not None:
            stmt = stmt.where(EmailRow.date >= ensure_utc(date_from))
        if date_to is not None:
            stmt = stmt.where(EmailRow.date <= ensure_utc(date_to))
        if sender_email is not None:
            stmt = stmt.where(EmailRow.from_email == sender_email)

        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            recipients = await _load_recipients(session, [r.id for r in rows]) if with_recipients else {}
            return [_to_email(r, recipients.get(r.id)) for r in rows]

    async def list_emails(self, source_id: str, *, limit: int = 50, offset: int = 0) -> list[EmailDocument]:
        """A page of *source_id*'s emails with recipients, newest first."""
        stmt = (
            select(EmailRow)
            .where(EmailRow.source_id == source_id)
            .order_by(EmailRow.date.desc(), EmailRow.id)
            .offset(offset)
            .limit(limit)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            recipients = await _load_recipients(session, [r.id for r in rows])
            return [_to_email(r, recipients.get(r.id)) for r in rows]

    async def count_emails(self, source_id: str) -> int:
        stmt = select(func.count()).select_from(EmailRow).where(EmailRow.source_id == source_id)
        async with self._sessions() as session:
            return (await session.execute(stmt)).scalar_one()

    async def recent_emails(self, source_id: str, limit: int) -> list[EmailDocument]:
        """The *limit* newest emails for *source_id*, newest first."""
        stmt = (
            select(EmailRow)
            .where(EmailRow.source_id == source_id)
            .order_by(EmailRow.date.desc())
            .limit(limit)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_email(r) for r in rows]

    # -- attachments ----------------------------------------------------------

    async def upsert_attachment(self, attachment: AttachmentDocument) -> None:
        values = {"id": attachment.id, **{f: getattr(attachment, f) for f in _ATTACHMENT_FIELDS}}
        async with self._sessions.begin() as session:
            await session.execute(_upsert(session, AttachmentRow, values))

    async def list_attachments(self, email_id: str) -> list[AttachmentDocument]:
        stmt = select(AttachmentRow).where(AttachmentRow.email_id == email_id).order_by(AttachmentRow.id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [AttachmentDocument.model_validate(r) for r in rows]

    async def attachments_by_email(self, email_ids: Sequence[str]) -> dict[str, list[AttachmentDocument]]:
        """Attachments of several emails at once, keyed by email id."""
        if not email_ids:
            return {}
        stmt = (
            select(AttachmentRow)
            .where(AttachmentRow.email_id.in_(list(email_ids)))
            .order_by(AttachmentRow.email_id, AttachmentRow.id)
        )
        grouped: dict[str, list[AttachmentDocument]] = {}
        async with self._sessions() as session:
            for row in (await session.execute(stmt)).scalars():
                grouped.setdefault(row.email_id, []).append(AttachmentDocument.model_validate(row))
        return grouped

    async def get_attachments(
        self,
        ids: Sequence[str],
        *,
        source_id: str | None = None,
    ) -> list[tuple[AttachmentDocument, EmailDocument]]:
        """Attachments with their parent email, optionally scoped to a source."""
        if not ids:
            return []
        stmt = (
            select(AttachmentRow, EmailRow)
            .join(EmailRow, AttachmentRow.email_id == EmailRow.id)
            .where(AttachmentRow.id.in_(list(ids)))
        )
        if source_id is not None:
            stmt = stmt.where(EmailRow.source_id == source_id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()
            return [(AttachmentDocument.model_validate(a), _to_email(e)) for a, e in rows]
