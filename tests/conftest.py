"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import AsyncIterator

import pytest
from langchain_core.embeddings import Embeddings

from inbox_rag.exceptions import BlobUploadError, SourceFetchError
from inbox_rag.sources.base import SourceProvider
from inbox_rag.sources.models import RawMessage
from inbox_rag.storage.blob import BlobStore
from inbox_rag.storage.database import create_engine, create_session_factory, init_models
from inbox_rag.storage.repository import DocumentRepository


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ───────────────────────────────────────────────────────────────

_TOKEN = re.compile(r"\w+")


class HashingEmbeddings(Embeddings):
    """Deterministic bag-of-words embeddings; texts sharing words are similar.

    ``overrides`` pins exact vectors for specific texts.
    """

    def __init__(self, dim: int = 64, overrides: dict[str, list[float]] | None = None) -> None:
        self.dim = dim
        self.overrides = overrides or {}
        self.calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        if text in self.overrides:
            return self.overrides[text]
        vec = [0.0] * self.dim
        for token in _TOKEN.findall(text.lower()):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dim
            vec[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        return self._vector(text)

    async def aembed_query(self, text: str) -> list[float]:
        return self.embed_query(text)


class FakeSource(SourceProvider):
    """In-memory message source.

    Parameters
    ----------
    messages:
        Raw provider payload dicts (``RawMessage`` shape).
    attachments:
        ``{attachment_id: bytes}``; a missing id raises ``SourceFetchError``.
    fail_fetch:
        Make :meth:`fetch_messages` raise with this message.
    """

    def __init__(
        self,
        messages: list[dict] | None = None,
        attachments: dict[str, bytes] | None = None,
        fail_fetch: str | None = None,
    ) -> None:
        self.messages = [RawMessage.model_validate(m) for m in messages or []]
        self.attachments = attachments or {}
        self.fail_fetch = fail_fetch
        self.fetch_calls: list[tuple[str, int]] = []

    async def fetch_messages(self, source_id: str, limit: int) -> list[RawMessage]:
        self.fetch_calls.append((source_id, limit))
        if self.fail_fetch:
            raise SourceFetchError(self.fail_fetch, status_code=401)
        return self.messages[:limit]

    async def fetch_attachment_bytes(self, source_id: str, message_id: str, attachment_id: str) -> bytes:
        if attachment_id not in self.attachments:
            raise SourceFetchError(f"Attachment {attachment_id} not found", status_code=404)
        return self.attachments[attachment_id]


class RecordingBlobStore(BlobStore):
    """Records uploads; ``failures`` is a queue of status codes to fail with first."""

    def __init__(self, failures: list[int] | None = None) -> None:
        self.failures = list(failures or [])
        self.attempts: list[str] = []
        self.uploads: dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        self.attempts.append(path)
        if self.failures:
            status = self.failures.pop(0)
            raise BlobUploadError(f"Upload failed: {status}", status_code=status)
        self.uploads[path] = data


async def no_sleep(_: float) -> None:
    return None


class SleepRecorder:
    """Awaitable sleep replacement recording requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
async def repository(tmp_path) -> AsyncIterator[DocumentRepository]:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield DocumentRepository(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture()
def embeddings() -> HashingEmbeddings:
    return HashingEmbeddings()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()
