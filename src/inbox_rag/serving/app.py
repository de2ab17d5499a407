"""FastAPI application exposing ingestion, question answering and search."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from inbox_rag.bootstrap import Services, build_services
from inbox_rag.config import settings
from inbox_rag.models import AttachmentDocument, EmailDocument, IngestionJob, JobStatus
from inbox_rag.retrieval.models import SearchResult

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.services = await build_services(settings)
    try:
        yield
    finally:
        await app.state.services.aclose()


app = FastAPI(
    title="Inbox RAG API",
    version="0.1.0",
    description="Email ingestion, semantic search and grounded answers over an inbox.",
    lifespan=lifespan,
)


def get_services(request: Request) -> Services:
    """Dependency returning the process-wide :class:`Services`."""
    return request.app.state.services


# ── Request / Response schemas ────────────────────────────────────────
class IngestRequest(BaseModel):
    source_id: str = Field(min_length=1)
    limit: int | None = Field(default=None, ge=1)


class QueryRequest(BaseModel):
    """Incoming question from the user."""

    query: str = Field(min_length=1)
    source_id: str = Field(min_length=1)


class EmailResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    subject: str
    from_: str = Field(alias="from")
    from_email: str
    date: datetime
    relevance: float


class AttachmentResult(BaseModel):
    id: str
    filename: str
    email_id: str
    relevance: float


class QueryResults(BaseModel):
    emails: list[EmailResult] = []
    attachments: list[AttachmentResult] = []


class QueryResponse(BaseModel):
    """Answer plus the hits it was grounded on."""

    query: str
    answer: str
    used_fallback: bool
    results: QueryResults


class AttachmentSummary(BaseModel):
    id: str
    filename: str
    content_type: str
    size: int
    is_inline: bool
    has_text: bool

    @classmethod
    def from_document(cls, attachment: AttachmentDocument) -> AttachmentSummary:
        return cls(
            id=attachment.id,
            filename=attachment.filename,
            content_type=attachment.content_type,
            size=attachment.size,
            is_inline=attachment.is_inline,
            has_text=bool(attachment.text),
        )


class StoredEmail(EmailDocument):
    """A persisted email with summaries of its attachments."""

    attachments: list[AttachmentSummary] = []


class EmailPage(BaseModel):
    total: int
    limit: int
    offset: int
    emails: list[StoredEmail]


def _stored(email: EmailDocument, attachments: list[AttachmentDocument]) -> StoredEmail:
    return StoredEmail(
        **email.model_dump(),
        attachments=[AttachmentSummary.from_document(a) for a in attachments],
    )


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    source_id: str = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=100)
    date_from: datetime | None = None
    date_to: datetime | None = None
    sender_email: str | None = None


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


@app.post("/ingest", response_model=IngestionJob)
async def ingest(request: IngestRequest, services: Services = Depends(get_services)):
    """Run one ingestion job; embedding continues after the response."""
    limit = request.limit or services.settings.default_fetch_limit
    run = await services.orchestrator.run(request.source_id, limit)
    if run.job.status is JobStatus.ERROR:
        return JSONResponse(status_code=502, content=run.job.model_dump(mode="json"))
    return run.job


@app.get("/jobs/{source_id}", response_model=list[IngestionJob])
async def list_jobs(
    source_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    services: Services = Depends(get_services),
) -> list[IngestionJob]:
    return await services.repository.list_jobs(source_id, limit)


@app.get("/jobs/{source_id}/{job_id}", response_model=IngestionJob)
async def get_job(source_id: str, job_id: UUID, services: Services = Depends(get_services)) -> IngestionJob:
    job = await services.repository.get_job(job_id)
    if job is None or job.source_id != source_id:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.get("/emails/{source_id}", response_model=EmailPage)
async def list_emails(
    source_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    services: Services = Depends(get_services),
) -> EmailPage:
    """Stored emails for a source, newest first."""
    repository = services.repository
    emails = await repository.list_emails(source_id, limit=limit, offset=offset)
    attachments = await repository.attachments_by_email([e.id for e in emails])
    return EmailPage(
        total=await repository.count_emails(source_id),
        limit=limit,
        offset=offset,
        emails=[_stored(e, attachments.get(e.id, [])) for e in emails],
    )


@app.get("/emails/{source_id}/{email_id}", response_model=StoredEmail)
async def get_email(source_id: str, email_id: str, services: Services = Depends(get_services)) -> StoredEmail:
    email = await services.repository.get_email(email_id)
    if email is None or email.source_id != source_id:
        raise HTTPException(status_code=404, detail="Email not found")
    return _stored(email, await services.repository.list_attachments(email_id))


@app.post("/query", response_model=QueryResponse, response_model_by_alias=True)
async def query(request: QueryRequest, services: Services = Depends(get_services)) -> QueryResponse:
    """Retrieve context for the question and answer it."""
    try:
        retrieval = await services.retriever.retrieve(request.query, request.source_id)
    except Exception as exc:
        logger.exception("Retrieval failed for %s", request.source_id)
        raise HTTPException(status_code=502, detail=f"Failed to retrieve context: {exc}") from exc

    answer = await services.composer.compose(request.query, retrieval)
    return QueryResponse(
        query=request.query,
        answer=answer.text,
        used_fallback=answer.used_fallback,
        results=QueryResults(
            emails=[
                EmailResult(
                    id=h.email.id,
                    subject=h.email.subject,
                    from_=h.email.from_name,
                    from_email=h.email.from_email,
                    date=h.email.date,
                    relevance=h.max_similarity,
                )
                for h in retrieval.emails
            ],
            attachments=[
                AttachmentResult(
                    id=h.attachment.id,
                    filename=h.attachment.filename,
                    email_id=h.attachment.email_id,
                    relevance=h.max_similarity,
                )
                for h in retrieval.attachments
            ],
        ),
    )


@app.post("/search", response_model=SearchResult)
async def search(request: SearchRequest, services: Services = Depends(get_services)) -> SearchResult:
    """Semantic search with optional date and sender filters."""
    try:
        return await services.retriever.search(
            request.query,
            request.source_id,
            limit=request.limit,
            date_from=request.date_from,
            date_to=request.date_to,
            sender_email=request.sender_email,
        )
    except Exception as exc:
        logger.exception("Search failed for %s", request.source_id)
        raise HTTPException(status_code=502, detail=f"Search failed: {exc}") from exc
