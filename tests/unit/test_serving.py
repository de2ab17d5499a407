"""Unit tests for the serving layer."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from inbox_rag.config import Settings
from inbox_rag.generation.composer import Answer
from inbox_rag.ingestion.orchestrator import IngestionRun
from inbox_rag.ingestion.tracker import EmbeddingTracker
from inbox_rag.models import (
    AttachmentDocument,
    EmailDocument,
    IngestionJob,
    JobStatus,
    Recipient,
    RecipientType,
)
from inbox_rag.retrieval.models import AttachmentHit, EmailHit, RetrievalResult, SearchEmailHit, SearchResult
from inbox_rag.serving.app import app, get_services

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
EMAIL = EmailDocument(
    id="e1",
    source_id="g1",
    subject="Launch",
    from_name="Dana",
    from_email="dana@example.org",
    date=NOW,
    body="Launch is Friday.",
    recipients=[Recipient(type=RecipientType.TO, email="me@example.org")],
)
OLDER = EmailDocument(
    id="e0",
    source_id="g1",
    subject="Kickoff",
    from_name="Lee",
    from_email="lee@example.org",
    date=datetime(2025, 2, 1, tzinfo=timezone.utc),
)
PLAN = AttachmentDocument(
    id="a1",
    email_id="e1",
    filename="plan.txt",
    content_type="text/plain",
    size=12,
    storage_path="g1/e1/a1/plan.txt",
    text="launch plan",
)


def make_job(status: JobStatus = JobStatus.COMPLETED, **kw) -> IngestionJob:
    return IngestionJob(
        id=uuid4(),
        source_id=kw.get("source_id", "g1"),
        status=status,
        processed_count=kw.get("processed_count", 3),
        started_at=NOW,
        completed_at=NOW,
        error_message=kw.get("error_message"),
    )


class FakeOrchestrator:
    def __init__(self, job: IngestionJob) -> None:
        self.job = job
        self.calls: list[tuple[str, int]] = []

    async def run(self, source_id: str, limit: int = 200) -> IngestionRun:
        self.calls.append((source_id, limit))
        return IngestionRun(job=self.job, embeddings=EmbeddingTracker())


class FakeRepository:
    def __init__(self, jobs: list[IngestionJob]) -> None:
        self.jobs = jobs
        self.emails = [EMAIL, OLDER]
        self.attachments = {"e1": [PLAN]}
        self.page_calls: list[tuple[str, int, int]] = []

    async def list_jobs(self, source_id: str, limit: int = 50) -> list[IngestionJob]:
        return self.jobs[:limit]

    async def get_job(self, job_id: UUID) -> IngestionJob | None:
        return next((j for j in self.jobs if j.id == job_id), None)

    async def list_emails(self, source_id: str, *, limit: int = 50, offset: int = 0) -> list[EmailDocument]:
        self.page_calls.append((source_id, limit, offset))
        return [e for e in self.emails if e.source_id == source_id][offset : offset + limit]

    async def count_emails(self, source_id: str) -> int:
        return sum(e.source_id == source_id for e in self.emails)

    async def attachments_by_email(self, email_ids) -> dict[str, list[AttachmentDocument]]:
        return {i: self.attachments[i] for i in email_ids if i in self.attachments}

    async def get_email(self, email_id: str) -> EmailDocument | None:
        return next((e for e in self.emails if e.id == email_id), None)

    async def list_attachments(self, email_id: str) -> list[AttachmentDocument]:
        return self.attachments.get(email_id, [])


class FakeRetriever:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.search_kwargs: dict = {}

    async def retrieve(self, query: str, source_id: str) -> RetrievalResult:
        if self.error:
            raise self.error
        attachment = AttachmentDocument(id="a1", email_id="e1", filename="plan.txt", storage_path="p")
        return RetrievalResult(
            query=query,
            emails=[EmailHit(email=EMAIL, max_similarity=0.9)],
            attachments=[AttachmentHit(attachment=attachment, email=EMAIL, max_similarity=0.75)],
            context="ctx",
        )

    async def search(self, query: str, source_id: str, **kwargs) -> SearchResult:
        self.search_kwargs = kwargs
        return SearchResult(emails=[SearchEmailHit(email=EMAIL, matching_chunks=["launch chunk"], max_similarity=0.8)])


class FakeComposer:
    async def compose(self, query: str, retrieval: RetrievalResult) -> Answer:
        return Answer(text="The launch is on Friday.", used_fallback=False)


class FakeServices:
    def __init__(self, job: IngestionJob | None = None, retriever: FakeRetriever | None = None) -> None:
        self.settings = Settings(default_fetch_limit=200)
        self.orchestrator = FakeOrchestrator(job or make_job())
        self.repository = FakeRepository([make_job(), make_job()])
        self.retriever = retriever or FakeRetriever()
        self.composer = FakeComposer()


@pytest.fixture()
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture()
def client(services: FakeServices):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient) -> None:
    """GET /health should return 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ingest_uses_default_limit(client: TestClient, services: FakeServices) -> None:
    response = client.post("/ingest", json={"source_id": "g1"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["processed_count"] == 3
    assert services.orchestrator.calls == [("g1", 200)]


def test_ingest_error_job_returns_502(services: FakeServices, client: TestClient) -> None:
    services.orchestrator.job = make_job(JobStatus.ERROR, processed_count=0, error_message="Invalid grant")

    response = client.post("/ingest", json={"source_id": "g1", "limit": 10})

    assert response.status_code == 502
    assert response.json()["error_message"] == "Invalid grant"


def test_ingest_requires_source_id(client: TestClient) -> None:
    assert client.post("/ingest", json={}).status_code == 422


def test_list_jobs(client: TestClient) -> None:
    response = client.get("/jobs/g1", params={"limit": 1})
    assert response.status_code == 200
    assert len(response.json()) == 1


def test_query_response_shape(client: TestClient) -> None:
    response = client.post("/query", json={"query": "when is the launch?", "source_id": "g1"})

    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == "The launch is on Friday."
    assert body["used_fallback"] is False
    assert body["results"]["emails"] == [
        {
            "id": "e1",
            "subject": "Launch",
            "from": "Dana",
            "from_email": "dana@example.org",
            "date": "2025-03-01T09:00:00Z",
            "relevance": 0.9,
        }
    ]
    assert body["results"]["attachments"] == [
        {"id": "a1", "filename": "plan.txt", "email_id": "e1", "relevance": 0.75}
    ]


def test_query_embedding_failure_returns_502() -> None:
    services = FakeServices(retriever=FakeRetriever(error=RuntimeError("embedding provider down")))
    app.dependency_overrides[get_services] = lambda: services
    try:
        response = TestClient(app).post("/query", json={"query": "q", "source_id": "g1"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 502


def test_query_rejects_empty_question(client: TestClient) -> None:
    assert client.post("/query", json={"query": "", "source_id": "g1"}).status_code == 422


def test_search_forwards_filters(client: TestClient, services: FakeServices) -> None:
    response = client.post(
        "/search",
        json={"query": "launch", "source_id": "g1", "limit": 5, "sender_email": "dana@example.org"},
    )

    assert response.status_code == 200
    assert response.json()["emails"][0]["matching_chunks"] == ["launch chunk"]
    assert services.retriever.search_kwargs["limit"] == 5
    assert services.retriever.search_kwargs["sender_email"] == "dana@example.org"
    assert services.retriever.search_kwargs["date_from"] is None


def test_get_job(client: TestClient, services: FakeServices) -> None:
    job = services.repository.jobs[0]

    response = client.get(f"/jobs/g1/{job.id}")

    assert response.status_code == 200
    assert response.json()["id"] == str(job.id)


def test_get_job_from_another_source_is_404(client: TestClient, services: FakeServices) -> None:
    other = make_job(source_id="g2")
    services.repository.jobs.append(other)

    assert client.get(f"/jobs/g1/{other.id}").status_code == 404
    assert client.get(f"/jobs/g1/{uuid4()}").status_code == 404


def test_list_emails_page(client: TestClient, services: FakeServices) -> None:
    response = client.get("/emails/g1", params={"limit": 1, "offset": 0})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["limit"] == 1
    assert body["offset"] == 0
    assert [e["id"] for e in body["emails"]] == ["e1"]
    email = body["emails"][0]
    assert email["recipients"] == [{"type": "to", "name": None, "email": "me@example.org"}]
    assert email["attachments"] == [
        {
            "id": "a1",
            "filename": "plan.txt",
            "content_type": "text/plain",
            "size": 12,
            "is_inline": False,
            "has_text": True,
        }
    ]
    assert services.repository.page_calls == [("g1", 1, 0)]


def test_list_emails_second_page(client: TestClient) -> None:
    body = client.get("/emails/g1", params={"limit": 1, "offset": 1}).json()

    assert [e["id"] for e in body["emails"]] == ["e0"]
    assert body["emails"][0]["attachments"] == []


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 501}, {"offset": -1}])
def test_list_emails_rejects_bad_paging(client: TestClient, params: dict) -> None:
    assert client.get("/emails/g1", params=params).status_code == 422


def test_get_email(client: TestClient) -> None:
    response = client.get("/emails/g1/e1")

    assert response.status_code == 200
    body = response.json()
    assert body["subject"] == "Launch"
    assert body["body"] == "Launch is Friday."
    assert [a["filename"] for a in body["attachments"]] == ["plan.txt"]


def test_get_email_is_scoped_to_source(client: TestClient) -> None:
    assert client.get("/emails/g2/e1").status_code == 404
    assert client.get("/emails/g1/missing").status_code == 404
