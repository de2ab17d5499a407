"""Unit tests for message normalization and filename sanitization."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from inbox_rag.ingestion.normalize import (
    attachment_storage_path,
    email_index_text,
    normalize_message,
    parse_message_date,
    sanitize_filename,
)
from inbox_rag.models import RecipientType
from inbox_rag.sources.models import RawMessage

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_minimal_message_gets_defaults() -> None:
    raw = RawMessage.model_validate({"id": "m1"})
    email = normalize_message(raw, "grant-1", now=NOW)

    assert email.subject == "(No subject)"
    assert email.from_name == "Unknown"
    assert email.from_email == "unknown@example.com"
    assert email.snippet == ""
    assert email.body is None
    assert email.date == NOW
    assert email.recipients == []
    assert email.source_id == "grant-1"


def test_sender_name_falls_back_to_address() -> None:
    raw = RawMessage.model_validate({"id": "m1", "from": [{"email": "dana@example.org"}]})
    email = normalize_message(raw, "g", now=NOW)
    assert email.from_name == "dana@example.org"
    assert email.from_email == "dana@example.org"


def test_full_message() -> None:
    raw = RawMessage.model_validate(
        {
            "id": "m2",
            "subject": "Launch plan",
            "from": [{"name": "Dana", "email": "dana@example.org"}],
            "to": [{"name": "Lee", "email": "lee@example.org"}],
            "cc": [{"email": None}],
            "bcc": None,
            "snippet": "Here is the plan",
            "body": "<p>Here is the plan</p>",
            "date": 1700000000,
            "attachments": None,
        }
    )
    email = normalize_message(raw, "g", now=NOW)

    assert email.subject == "Launch plan"
    assert email.from_name == "Dana"
    assert email.date == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert [(r.type, r.email) for r in email.recipients] == [
        (RecipientType.TO, "lee@example.org"),
        (RecipientType.CC, "unknown@example.com"),
    ]
    assert email.recipients[1].name is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (1700000000, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
        ("2024-03-15T10:00:00Z", datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)),
        ("2024-03-15T12:00:00+02:00", datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)),
        ("not a date", NOW),
        (None, NOW),
    ],
)
def test_parse_message_date(value, expected: datetime) -> None:
    assert parse_message_date(value, NOW) == expected


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("report.pdf", "report.pdf"),
        ("Q3 report (final).pdf", "Q3_report_(final).pdf"),
        ("résumé.docx", "r_sum.docx"),
        ('a<b>c:"d|e?.txt', "a_b_c_d_e.txt"),
        (".bashrc", ".bashrc"),
        ("___.txt", "file.txt"),
        ("no_extension", "no_extension"),
        ("我的文件.pdf", "file.pdf"),
        ("archive.tar.gz", "archive.tar.gz"),
        ("report.p/../../évil", "report.p_.._.._vil"),
        ("photo.JPÉG", "photo.JP_G"),
        ("notes.t xt", "notes.t_xt"),
        ("..", "file"),
    ],
)
def test_sanitize_filename(name: str, expected: str) -> None:
    assert sanitize_filename(name) == expected


def test_sanitize_filename_caps_base_length() -> None:
    result = sanitize_filename("a" * 500 + ".txt")
    assert result == "a" * 200 + ".txt"


def test_storage_path_uses_sanitized_name() -> None:
    assert attachment_storage_path("g", "m", "a", "my file.pdf") == "g/m/a/my_file.pdf"


def test_email_index_text_strips_html() -> None:
    raw = RawMessage.model_validate(
        {"id": "m", "subject": "Hi", "body": "<div>Hello <b>world</b><script>x()</script></div>"}
    )
    email = normalize_message(raw, "g", now=NOW)
    assert email_index_text(email) == "Hi\n\nHello world"


def test_email_index_text_without_body() -> None:
    email = normalize_message(RawMessage.model_validate({"id": "m", "subject": "Hi"}), "g", now=NOW)
    assert email_index_text(email) == "Hi\n\n"


def test_storage_path_never_gains_segments() -> None:
    path = attachment_storage_path("g", "m", "a", "report.p/../../évil")
    assert path == "g/m/a/report.p_.._.._vil"
    assert path.split("/")[:3] == ["g", "m", "a"]
    assert len(path.split("/")) == 4
    assert path.isascii()
