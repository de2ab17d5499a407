"""Nylas v3 REST client."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from inbox_rag.exceptions import SourceFetchError
from inbox_rag.sources.base import SourceProvider
from inbox_rag.sources.models import RawMessage

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Best message from a Nylas error payload, else a status line."""
    default = f"Nylas API error: {response.status_code} {response.reason_phrase}"
    try:
        payload = response.json()
    except ValueError:
        return default
    if not isinstance(payload, dict):
        return default
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if payload.get("message"):
        return str(payload["message"])
    return default


class NylasSourceProvider(SourceProvider):
    """Fetch messages and attachments from the Nylas v3 API.

    Parameters
    ----------
    api_key:
        Nylas application API key, sent as a bearer token.
    base_url:
        API root, e.g. ``https://api.us.nylas.com/v3``.
    timeout:
        Per-request timeout in seconds.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a
        ``MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.us.nylas.com/v3",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: dict[str, str]) -> httpx.Response:
        try:
            response = await self._get_client().get(path, params=params)
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"Nylas request failed: {exc}") from exc
        if response.is_error:
            raise SourceFetchError(_error_message(response), status_code=response.status_code)
        return response

    async def fetch_messages(self, source_id: str, limit: int) -> list[RawMessage]:
        logger.info("Fetching up to %d messages for grant %s", limit, source_id)
        response = await self._get(f"/grants/{source_id}/messages", {"limit": str(limit)})
        payload = response.json()
        items = (payload.get("data") if isinstance(payload, dict) else None) or []

        messages: list[RawMessage] = []
        for item in items:
            try:
                messages.append(RawMessage.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping malformed message payload: %s", exc)
        return messages

    async def fetch_attachment_bytes(self, source_id: str, message_id: str, attachment_id: str) -> bytes:
        response = await self._get(
            f"/grants/{source_id}/attachments/{attachment_id}/download",
            {"message_id": message_id},
        )
        return response.content
