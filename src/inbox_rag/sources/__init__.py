"""
Sources: clients for the mail providers that messages are ingested from.

Public surface
--------------
- :class:`SourceProvider`: abstract provider (subclass for Gmail, Graph, …).
- :class:`NylasSourceProvider`: Nylas v3 REST implementation.
- :class:`RawMessage`, :class:`RawAttachment`, :class:`RawParticipant`: payload models.
"""

from inbox_rag.sources.base import SourceProvider
from inbox_rag.sources.models import RawAttachment, RawMessage, RawParticipant
from inbox_rag.sources.nylas import NylasSourceProvider

__all__ = [
    "NylasSourceProvider",
    "RawAttachment",
    "RawMessage",
    "RawParticipant",
    "SourceProvider",
]
