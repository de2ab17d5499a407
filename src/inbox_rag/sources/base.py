"""Abstract base class for message source providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from inbox_rag.sources.models import RawMessage


class SourceProvider(ABC):
    """Supplies raw messages and attachment bytes for a grant/session id.

    Implementations raise :class:`~inbox_rag.exceptions.SourceFetchError`
    for any provider-side failure.
    """

    @abstractmethod
    async def fetch_messages(self, source_id: str, limit: int) -> list[RawMessage]:
        """Return up to *limit* of the newest messages for *source_id*."""
        ...

    @abstractmethod
    async def fetch_attachment_bytes(self, source_id: str, message_id: str, attachment_id: str) -> bytes:
        """Download one attachment's raw content."""
        ...

    async def close(self) -> None:
        """Release network resources. Optional."""
