"""Unit tests for the vector-index backends."""

from __future__ import annotations

import threading
import uuid

import pytest

from inbox_rag.models import EmbeddedChunk, EntityType
from inbox_rag.retrieval.base import VectorIndexBase, chunk_row_id
from inbox_rag.retrieval.chroma_store import ChromaVectorIndex
from inbox_rag.retrieval.memory_store import InMemoryVectorIndex, cosine_similarity


def _chunk(index: int, vector: list[float], text: str | None = None) -> EmbeddedChunk:
    return EmbeddedChunk(chunk_index=index, text=text or f"chunk {index}", embedding=vector)


@pytest.fixture(params=["memory", "chroma"])
def index(request) -> VectorIndexBase:
    if request.param == "memory":
        return InMemoryVectorIndex()
    import chromadb

    # Ephemeral clients share state in-process; isolate by prefix.
    return ChromaVectorIndex(chromadb.EphemeralClient(), collection_prefix=f"t{uuid.uuid4().hex[:12]}")


def test_chunk_row_id() -> None:
    assert chunk_row_id("msg-1", 3) == "msg-1:3"


def test_cosine_similarity() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


async def test_has_embeddings_after_upsert(index: VectorIndexBase) -> None:
    assert not await index.has_embeddings(EntityType.EMAIL, "e1")
    await index.upsert_chunks(EntityType.EMAIL, "e1", [_chunk(0, [1.0, 0.0, 0.0])])
    assert await index.has_embeddings(EntityType.EMAIL, "e1")
    # Entity types are separate namespaces.
    assert not await index.has_embeddings(EntityType.ATTACHMENT, "e1")


async def test_search_orders_by_similarity_and_applies_threshold(index: VectorIndexBase) -> None:
    await index.upsert_chunks(
        EntityType.EMAIL,
        "e1",
        [_chunk(0, [1.0, 0.0, 0.0], "exact"), _chunk(1, [1.0, 1.0, 0.0], "partial")],
    )
    await index.upsert_chunks(EntityType.EMAIL, "e2", [_chunk(0, [0.0, 0.0, 1.0], "orthogonal")])

    matches = await index.search(EntityType.EMAIL, [1.0, 0.0, 0.0], threshold=0.5, top_k=10)

    assert [m.chunk_text for m in matches] == ["exact", "partial"]
    assert matches[0].similarity == pytest.approx(1.0, abs=1e-4)
    assert matches[1].similarity == pytest.approx(0.7071, abs=1e-3)
    assert all(m.document_id == "e1" for m in matches)


async def test_search_respects_top_k(index: VectorIndexBase) -> None:
    chunks = [_chunk(i, [1.0, 0.1 * i, 0.0]) for i in range(5)]
    await index.upsert_chunks(EntityType.ATTACHMENT, "a1", chunks)

    matches = await index.search(EntityType.ATTACHMENT, [1.0, 0.0, 0.0], threshold=0.0, top_k=2)

    assert len(matches) == 2
    assert [m.chunk_index for m in matches] == [0, 1]


async def test_upsert_is_idempotent_per_chunk_index(index: VectorIndexBase) -> None:
    await index.upsert_chunks(EntityType.EMAIL, "e1", [_chunk(0, [1.0, 0.0, 0.0], "old")])
    await index.upsert_chunks(EntityType.EMAIL, "e1", [_chunk(0, [1.0, 0.0, 0.0], "new")])

    matches = await index.search(EntityType.EMAIL, [1.0, 0.0, 0.0], threshold=0.0, top_k=10)

    assert [m.chunk_text for m in matches] == ["new"]


async def test_delete_document(index: VectorIndexBase) -> None:
    await index.upsert_chunks(EntityType.EMAIL, "e1", [_chunk(0, [1.0, 0.0, 0.0])])
    await index.delete_document(EntityType.EMAIL, "e1")
    assert not await index.has_embeddings(EntityType.EMAIL, "e1")


async def test_memory_health_check() -> None:
    assert await InMemoryVectorIndex().health_check()


async def test_chroma_collection_lookup_runs_off_the_event_loop() -> None:
    loop_thread = threading.get_ident()

    class RecordingCollection:
        def get(self, **kwargs):
            return {"ids": []}

    class RecordingClient:
        def __init__(self) -> None:
            self.created: list[tuple[str, int]] = []

        def get_or_create_collection(self, name: str, metadata: dict):
            self.created.append((name, threading.get_ident()))
            return RecordingCollection()

    client = RecordingClient()
    index = ChromaVectorIndex(client, collection_prefix="t")

    assert not await index.has_embeddings(EntityType.EMAIL, "e1")
    assert not await index.has_embeddings(EntityType.EMAIL, "e2")

    assert [name for name, _ in client.created] == ["t_email_chunks"]
    assert client.created[0][1] != loop_thread
