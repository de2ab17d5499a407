"""Raw provider payload models.

Every field the provider may omit or send as ``null`` is optional here;
defaults for storage are applied later by
:func:`inbox_rag.ingestion.normalize.normalize_message`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RawParticipant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    email: str | None = None


class RawAttachment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    filename: str | None = None
    content_type: str | None = None
    size: int | None = None
    is_inline: bool | None = None
    content_id: str | None = None


class RawMessage(BaseModel):
    """One message as returned by the provider's list endpoint.

    Attributes
    ----------
    date:
        Epoch seconds (int/float) or an ISO-8601 string; anything else is
        treated as missing downstream.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    subject: str | None = None
    from_: list[RawParticipant] = Field(default_factory=list, alias="from")
    to: list[RawParticipant] = Field(default_factory=list)
    cc: list[RawParticipant] = Field(default_factory=list)
    bcc: list[RawParticipant] = Field(default_factory=list)
    snippet: str | None = None
    body: str | None = None
    date: int | float | str | None = None
    attachments: list[RawAttachment] = Field(default_factory=list)

    @field_validator("from_", "to", "cc", "bcc", "attachments", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value
