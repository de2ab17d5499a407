"""
Ingestion: fetching messages, storing them, and embedding their text
into the vector index.

Public surface
--------------
- :func:`chunk_text` / :func:`chunk_for_embedding`: boundary-aware chunking.
- :class:`EmbeddingClient`: batched, rate-limit-aware embedding calls.
- :class:`DocumentIndexer`: per-document chunk → embed → upsert.
- :class:`IngestionOrchestrator`: one ingestion job end to end.
"""

from inbox_rag.ingestion.chunker import chunk_for_embedding, chunk_text
from inbox_rag.ingestion.embedder import EmbeddingClient, get_embedding_provider
from inbox_rag.ingestion.extractor import ExtractedText, extract_text
from inbox_rag.ingestion.indexer import DocumentIndexer
from inbox_rag.ingestion.orchestrator import IngestionOrchestrator, IngestionRun
from inbox_rag.ingestion.tracker import EmbeddingSummary, EmbeddingTracker

__all__ = [
    "DocumentIndexer",
    "EmbeddingClient",
    "EmbeddingSummary",
    "EmbeddingTracker",
    "ExtractedText",
    "IngestionOrchestrator",
    "IngestionRun",
    "chunk_for_embedding",
    "chunk_text",
    "extract_text",
    "get_embedding_provider",
]
