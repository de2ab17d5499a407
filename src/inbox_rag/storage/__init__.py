"""
Storage: relational persistence for emails, attachments and jobs, plus
the blob store that holds raw attachment bytes.
"""

from inbox_rag.storage.blob import BlobStore, SupabaseBlobStore, upload_with_retry
from inbox_rag.storage.database import create_engine, create_session_factory, init_models
from inbox_rag.storage.repository import DocumentRepository

__all__ = [
    "BlobStore",
    "DocumentRepository",
    "SupabaseBlobStore",
    "create_engine",
    "create_session_factory",
    "init_models",
    "upload_with_retry",
]
