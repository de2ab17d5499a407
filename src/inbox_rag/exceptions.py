"""Exception hierarchy shared by the ingestion and retrieval layers."""

from __future__ import annotations


class InboxRagError(Exception):
    """Base class for all errors raised by this package."""


class ChunkTooLargeError(InboxRagError):
    """The embedding provider rejected a chunk for exceeding its context length.

    Never retried as-is; callers re-chunk with a smaller unit size.
    """

    def __init__(self, message: str = "Chunk size exceeds token limit. Please reduce chunk size.") -> None:
        super().__init__(message)


class SourceFetchError(InboxRagError):
    """The source provider failed to return messages or attachment bytes."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BlobUploadError(InboxRagError):
    """The blob store rejected an upload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.status_code is not None and self.status_code >= 500
