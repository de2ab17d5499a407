"""
Retrieval: vector search, ranking, and context assembly.

This module wraps the vector index behind a clean interface so that
the answer layer never needs to know which DB is backing retrieval.

Public surface
--------------
- :class:`EmailRetriever`: main entry point for question answering and search.
- :class:`VectorIndexBase`: abstract backend (subclass for pgvector, etc.).
- :class:`ChromaVectorIndex`: default Chroma backend.
- :class:`InMemoryVectorIndex`: exact-search backend for small corpora and tests.
- :class:`RetrievalResult`, :class:`SearchResult`, :class:`EmailHit`, :class:`AttachmentHit`: data models.
"""

from inbox_rag.retrieval.base import VectorIndexBase
from inbox_rag.retrieval.memory_store import InMemoryVectorIndex
from inbox_rag.retrieval.models import AttachmentHit, EmailHit, RetrievalResult, SearchResult
from inbox_rag.retrieval.retriever import EmailRetriever

__all__ = [
    "AttachmentHit",
    "ChromaVectorIndex",
    "EmailHit",
    "EmailRetriever",
    "InMemoryVectorIndex",
    "RetrievalResult",
    "SearchResult",
    "VectorIndexBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorIndex to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorIndex":
        from inbox_rag.retrieval.chroma_store import ChromaVectorIndex

        return ChromaVectorIndex
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
