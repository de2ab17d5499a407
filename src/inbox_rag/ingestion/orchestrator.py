"""Ingestion job: fetch → normalize → store → dispatch embedding.

One :meth:`IngestionOrchestrator.run` call is one job. Messages fan out
behind a job-wide semaphore and each message's attachments fan out behind
a per-message one; a failing message or attachment is logged and skipped
without failing the job. Embedding generation runs in background tasks
owned by an :class:`~inbox_rag.ingestion.tracker.EmbeddingTracker`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from inbox_rag.exceptions import BlobUploadError
from inbox_rag.ingestion.extractor import extract_text
from inbox_rag.ingestion.indexer import DocumentIndexer
from inbox_rag.ingestion.normalize import attachment_storage_path, normalize_message
from inbox_rag.ingestion.tracker import EmbeddingSummary, EmbeddingTracker
from inbox_rag.models import AttachmentDocument, EmailDocument, IngestionJob, JobStatus
from inbox_rag.sources.base import SourceProvider
from inbox_rag.sources.models import RawAttachment, RawMessage
from inbox_rag.storage.blob import BlobStore, upload_with_retry
from inbox_rag.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "unknown"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class IngestionRun:
    """A finished job plus its still-running embedding work."""

    job: IngestionJob
    embeddings: EmbeddingTracker
    summary: asyncio.Task[EmbeddingSummary] | None = field(default=None, repr=False)


class IngestionOrchestrator:
    """Run ingestion jobs for a source.

    Parameters
    ----------
    source:
        Message provider.
    repository:
        Relational store for jobs, emails, recipients and attachments.
    blob_store:
        Destination for raw attachment bytes.
    indexer:
        Chunks and embeds stored documents.
    message_concurrency / attachment_concurrency:
        Semaphore sizes for the two fan-out levels.
    upload_attempts / upload_base_delay:
        Blob upload retry policy (5xx only).
    """

    def __init__(
        self,
        source: SourceProvider,
        repository: DocumentRepository,
        blob_store: BlobStore,
        indexer: DocumentIndexer,
        *,
        message_concurrency: int = 10,
        attachment_concurrency: int = 5,
        upload_attempts: int = 3,
        upload_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.repository = repository
        self.blob_store = blob_store
        self.indexer = indexer
        self.message_concurrency = message_concurrency
        self.attachment_concurrency = attachment_concurrency
        self.upload_attempts = upload_attempts
        self.upload_base_delay = upload_base_delay
        self._sleep = sleep
        self._background: set[asyncio.Task[EmbeddingSummary]] = set()

    async def run(self, source_id: str, limit: int = 200) -> IngestionRun:
        """Run one job to a terminal state.

        The returned job is already ``completed`` or ``error``; embedding
        tasks may still be running (await ``run.embeddings.wait()`` or
        ``run.summary`` to observe them).
        """
        job = await self.repository.create_job(source_id)
        tracker = EmbeddingTracker(str(job.id))
        processed = 0

        try:
            messages = await self.source.fetch_messages(source_id, limit)
            logger.info("Job %s: fetched %d messages for %s", job.id, len(messages), source_id)
            gate = asyncio.Semaphore(self.message_concurrency)
            stored = await asyncio.gather(
                *(self._ingest_message(gate, source_id, m, tracker) for m in messages)
            )
            processed = sum(stored)
        except Exception as exc:
            logger.error("Job %s failed: %s", job.id, exc)
            job = await self.repository.finish_job(
                job.id,
                JobStatus.ERROR,
                processed_count=processed,
                error_message=str(exc) or type(exc).__name__,
            )
        else:
            job = await self.repository.finish_job(job.id, JobStatus.COMPLETED, processed_count=processed)
            logger.info(
                "Job %s completed: %d/%d messages stored, %d embedding tasks dispatched",
                job.id,
                processed,
                len(messages),
                len(tracker),
            )

        summary = asyncio.create_task(tracker.wait(), name=f"embed-summary:{job.id}")
        self._background.add(summary)
        summary.add_done_callback(self._background.discard)
        return IngestionRun(job=job, embeddings=tracker, summary=summary)

    # -- per item -------------------------------------------------------------

    async def _ingest_message(
        self,
        gate: asyncio.Semaphore,
        source_id: str,
        raw: RawMessage,
        tracker: EmbeddingTracker,
    ) -> bool:
        async with gate:
            try:
                email = normalize_message(raw, source_id)
                await self.repository.upsert_email(email)
            except Exception:
                logger.exception("Skipping message %s: could not store email", raw.id)
                return False

            try:
                await self.repository.replace_recipients(email.id, email.recipients)
            except Exception:
                logger.exception("Could not store recipients for message %s", email.id)

            tracker.dispatch(self.indexer.index_email(email), f"email {email.id}")

            if raw.attachments:
                attachment_gate = asyncio.Semaphore(self.attachment_concurrency)
                await asyncio.gather(
                    *(self._ingest_attachment(attachment_gate, source_id, email, a, tracker) for a in raw.attachments)
                )
            return True

    async def _ingest_attachment(
        self,
        gate: asyncio.Semaphore,
        source_id: str,
        email: EmailDocument,
        raw: RawAttachment,
        tracker: EmbeddingTracker,
    ) -> None:
        async with gate:
            try:
                attachment = await self._store_attachment(source_id, email, raw)
            except Exception:
                logger.exception("Skipping attachment %s of message %s", raw.id, email.id)
                return
        if attachment.text:
            tracker.dispatch(self.indexer.index_attachment(attachment), f"attachment {attachment.id}")

    async def _store_attachment(self, source_id: str, email: EmailDocument, raw: RawAttachment) -> AttachmentDocument:
        data = await self.source.fetch_attachment_bytes(source_id, email.id, raw.id)
        filename = raw.filename or DEFAULT_FILENAME
        content_type = raw.content_type or DEFAULT_CONTENT_TYPE
        path = attachment_storage_path(source_id, email.id, raw.id, filename)

        try:
            await upload_with_retry(
                self.blob_store,
                path,
                data,
                content_type,
                attempts=self.upload_attempts,
                base_delay=self.upload_base_delay,
                sleep=self._sleep,
            )
        except BlobUploadError as exc:
            # Metadata is still saved; the blob is just unavailable.
            logger.error("Upload failed for attachment %s at %s: %s", raw.id, path, exc)

        extracted = await asyncio.to_thread(extract_text, data, content_type, filename)
        if not extracted.success:
            logger.info("No text extracted from %s (%s): %s", filename, content_type, extracted.error)

        attachment = AttachmentDocument(
            id=raw.id,
            email_id=email.id,
            filename=filename,
            content_type=content_type,
            size=raw.size or 0,
            is_inline=bool(raw.is_inline),
            content_id=raw.content_id,
            storage_path=path,
            text=(extracted.text or None) if extracted.success else None,
        )
        await self.repository.upsert_attachment(attachment)
        return attachment
