"""Service wiring: builds every component from :class:`~inbox_rag.config.Settings`."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from inbox_rag.config import Settings
from inbox_rag.generation.composer import AnswerComposer
from inbox_rag.generation.llm import get_llm
from inbox_rag.ingestion.embedder import EmbeddingClient, get_embedding_provider
from inbox_rag.ingestion.indexer import DocumentIndexer
from inbox_rag.ingestion.orchestrator import IngestionOrchestrator
from inbox_rag.retrieval.base import VectorIndexBase
from inbox_rag.retrieval.memory_store import InMemoryVectorIndex
from inbox_rag.retrieval.retriever import EmailRetriever
from inbox_rag.sources.base import SourceProvider
from inbox_rag.sources.nylas import NylasSourceProvider
from inbox_rag.storage.blob import BlobStore, SupabaseBlobStore
from inbox_rag.storage.database import create_engine, create_session_factory, init_models
from inbox_rag.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide component graph used by the HTTP layer."""

    settings: Settings
    repository: DocumentRepository
    index: VectorIndexBase
    orchestrator: IngestionOrchestrator
    retriever: EmailRetriever
    composer: AnswerComposer
    source: SourceProvider | None = None
    blob_store: BlobStore | None = None
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        if self.source is not None:
            await self.source.close()
        if self.blob_store is not None:
            await self.blob_store.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_index(settings: Settings) -> VectorIndexBase:
    if settings.vector_backend == "memory":
        logger.info("Using in-memory vector index")
        return InMemoryVectorIndex()
    from inbox_rag.retrieval.chroma_store import ChromaVectorIndex

    logger.info("Using Chroma vector index at %s:%d", settings.chroma_host, settings.chroma_port)
    return ChromaVectorIndex.connect(
        settings.chroma_host,
        settings.chroma_port,
        collection_prefix=settings.chroma_collection_prefix,
    )


async def build_services(settings: Settings) -> Services:
    """Create the database schema and every long-lived component."""
    engine = create_engine(settings.database_url, echo=settings.database_echo)
    await init_models(engine)
    repository = DocumentRepository(create_session_factory(engine))

    index = build_index(settings)
    embedder = EmbeddingClient(
        get_embedding_provider(settings),
        max_concurrency=settings.embed_concurrency,
        batch_pause=settings.embed_batch_pause,
        max_retries=settings.embed_max_retries,
        initial_delay=settings.embed_initial_delay,
    )
    indexer = DocumentIndexer(
        embedder,
        index,
        max_tokens=settings.chunk_max_tokens,
        overlap=settings.chunk_overlap,
        hard_cap_chars=settings.chunk_hard_cap_chars,
        rechunk_max_tokens=settings.rechunk_max_tokens,
        rechunk_overlap=settings.rechunk_overlap,
        rechunk_attempts=settings.rechunk_attempts,
    )

    source = NylasSourceProvider(
        settings.nylas_api_key,
        base_url=settings.nylas_api_base,
        timeout=settings.source_timeout,
    )
    blob_store = SupabaseBlobStore(
        settings.storage_url,
        settings.storage_key,
        bucket=settings.storage_bucket,
    )
    orchestrator = IngestionOrchestrator(
        source,
        repository,
        blob_store,
        indexer,
        message_concurrency=settings.message_concurrency,
        attachment_concurrency=settings.attachment_concurrency,
        upload_attempts=settings.upload_attempts,
        upload_base_delay=settings.upload_base_delay,
    )
    retriever = EmailRetriever(
        embedder,
        index,
        repository,
        match_threshold=settings.match_threshold,
        match_count=settings.match_count,
        fetch_multiplier=settings.fetch_multiplier,
        search_threshold=settings.search_threshold,
        recency_limit=settings.recency_limit,
        fallback_limit=settings.fallback_limit,
        tie_epsilon=settings.tie_epsilon,
        email_display=settings.email_display,
        attachment_display=settings.attachment_display,
    )
    return Services(
        settings=settings,
        repository=repository,
        index=index,
        orchestrator=orchestrator,
        retriever=retriever,
        composer=AnswerComposer(get_llm(settings)),
        source=source,
        blob_store=blob_store,
        engine=engine,
    )
