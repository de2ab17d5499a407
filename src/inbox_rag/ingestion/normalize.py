"""Provider payload normalization.

Turns :class:`~inbox_rag.sources.models.RawMessage` objects into storage
documents with explicit defaults, and builds the safe blob paths and
indexable text derived from them.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from inbox_rag.ingestion.extractor import html_to_text
from inbox_rag.models import EmailDocument, Recipient, RecipientType, ensure_utc, utcnow
from inbox_rag.sources.models import RawMessage, RawParticipant

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "(No subject)"
DEFAULT_SENDER_NAME = "Unknown"
DEFAULT_ADDRESS = "unknown@example.com"
MAX_FILENAME_BASE = 200

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_NON_ASCII = re.compile(r"[^\x00-\x7f]")
_WHITESPACE = re.compile(r"\s+")
_UNDERSCORES = re.compile(r"_+")
_EXTENSION = re.compile(r"\.[A-Za-z0-9]+")
_HTML_HINT = re.compile(r"<[a-zA-Z/!][^>]*>")


def parse_message_date(value: int | float | str | None, now: datetime | None = None) -> datetime:
    """Epoch seconds or ISO-8601 to an aware UTC datetime; *now* otherwise."""
    fallback = now or utcnow()
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(value, str) and value.strip():
        try:
            return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            logger.debug("Unparseable message date %r; using ingestion time", value)
    return fallback


def _recipients(kind: RecipientType, people: list[RawParticipant]) -> list[Recipient]:
    return [Recipient(type=kind, name=p.name or None, email=p.email or DEFAULT_ADDRESS) for p in people]


def normalize_message(raw: RawMessage, source_id: str, now: datetime | None = None) -> EmailDocument:
    """Apply storage defaults to one raw message."""
    sender = raw.from_[0] if raw.from_ else None
    sender_name = (sender.name or sender.email) if sender else None
    return EmailDocument(
        id=raw.id,
        source_id=source_id,
        subject=raw.subject or DEFAULT_SUBJECT,
        from_name=sender_name or DEFAULT_SENDER_NAME,
        from_email=(sender.email if sender else None) or DEFAULT_ADDRESS,
        snippet=raw.snippet or "",
        body=raw.body or None,
        date=parse_message_date(raw.date, now),
        recipients=[
            *_recipients(RecipientType.TO, raw.to),
            *_recipients(RecipientType.CC, raw.cc),
            *_recipients(RecipientType.BCC, raw.bcc),
        ],
    )


def sanitize_filename(filename: str) -> str:
    """Make *filename* safe for use as a storage key segment.

    The extension (text after the last dot, when that dot is not the
    first character) is kept only when it is plain alphanumeric; otherwise
    it stays part of the base. The base is reduced to ASCII without path
    or control characters and capped in length.

    >>> sanitize_filename("Q3 report (final).pdf")
    'Q3_report_(final).pdf'
    >>> sanitize_filename("résumé.docx")
    'r_sum.docx'
    >>> sanitize_filename("report.p/../../évil")
    'report.p_.._.._vil'
    """
    dot = filename.rfind(".")
    if dot > 0 and _EXTENSION.fullmatch(filename[dot:]):
        base, ext = filename[:dot], filename[dot:]
    else:
        base, ext = filename, ""

    base = _NON_ASCII.sub("_", base)
    base = _UNSAFE_CHARS.sub("_", base)
    base = _WHITESPACE.sub("_", base)
    base = _UNDERSCORES.sub("_", base).strip("_")
    if not base.strip("."):
        base = ""
    base = base[:MAX_FILENAME_BASE] or "file"
    return base + ext


def attachment_storage_path(source_id: str, message_id: str, attachment_id: str, filename: str) -> str:
    return f"{source_id}/{message_id}/{attachment_id}/{sanitize_filename(filename)}"


def email_index_text(email: EmailDocument) -> str:
    """Text embedded for an email: subject, blank line, plain-text body."""
    body = email.body or ""
    if _HTML_HINT.search(body):
        body = html_to_text(body)
    return f"{email.subject}\n\n{body}"
