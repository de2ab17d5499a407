"""Plain-text extraction from attachment bytes.

Only formats that decode to text are supported. Binary office formats,
PDFs and images come back as unsuccessful results so the attachment is
stored without indexable text.
"""

from __future__ import annotations

import json
import logging

from bs4 import BeautifulSoup
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class ExtractedText(BaseModel):
    """Outcome of one extraction attempt."""

    text: str = ""
    success: bool
    error: str | None = None


def html_to_text(html: str) -> str:
    """Visible text of an HTML fragment, whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return " ".join(soup.get_text(separator=" ").split())


def _unsupported(error: str) -> ExtractedText:
    return ExtractedText(text="", success=False, error=error)


def extract_text(data: bytes, content_type: str, filename: str | None = None) -> ExtractedText:
    """Extract text from *data* according to its MIME type.

    Parameters
    ----------
    data:
        Raw attachment content.
    content_type:
        MIME type reported by the provider (parameters such as
        ``; charset=...`` are ignored).
    filename:
        Used as a secondary hint when the MIME type is generic.

    Returns
    -------
    ExtractedText
        ``success=False`` with an ``error`` for unsupported or undecodable
        content; never raises.
    """
    mime = (content_type or "").split(";")[0].strip().lower()
    name = (filename or "").lower()

    try:
        if mime == "text/html" or name.endswith((".html", ".htm")):
            return ExtractedText(text=html_to_text(data.decode("utf-8", errors="replace")), success=True)

        if mime == "application/json" or name.endswith(".json"):
            raw = data.decode("utf-8", errors="replace")
            try:
                return ExtractedText(text=json.dumps(json.loads(raw), indent=2, ensure_ascii=False), success=True)
            except ValueError:
                return ExtractedText(text=raw, success=True)

        if mime.startswith("text/") or name.endswith(".csv"):
            return ExtractedText(text=data.decode("utf-8", errors="replace").strip(), success=True)

        if mime == "application/pdf" or name.endswith(".pdf"):
            return _unsupported("PDF extraction is not supported")
        if mime == _DOCX or name.endswith(".docx"):
            return _unsupported("DOCX extraction is not supported")
        if mime == "application/msword" or name.endswith(".doc"):
            return _unsupported("DOC extraction is not supported")
        if mime.startswith("image/"):
            return _unsupported("Image OCR is not supported")

        # Unknown type: accept only if it is clean UTF-8.
        text = data.decode("utf-8", errors="replace")
        if text and "\ufffd" not in text:
            return ExtractedText(text=text.strip(), success=True)
        return _unsupported(f"Unsupported content type: {content_type}")
    except Exception as exc:  # noqa: BLE001
        logger.warning("Text extraction failed for %s (%s): %s", filename, content_type, exc)
        return _unsupported(str(exc) or "Unknown error extracting text")
