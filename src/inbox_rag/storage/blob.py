"""Blob storage for raw attachment bytes."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from inbox_rag.exceptions import BlobUploadError

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Write-only object store keyed on a slash-separated path."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Store *data* at *path*, overwriting any existing object.

        Raises
        ------
        BlobUploadError
            On any rejected upload; ``status_code`` is set when the store
            answered with an HTTP error.
        """
        ...

    async def close(self) -> None:
        """Release network resources. Optional."""


class SupabaseBlobStore(BlobStore):
    """Supabase Storage REST API.

    Parameters
    ----------
    url:
        Project URL, e.g. ``https://xyz.supabase.co``.
    key:
        Service-role key, sent as a bearer token.
    bucket:
        Target bucket name.
    """

    def __init__(
        self,
        url: str,
        key: str,
        *,
        bucket: str = "email-attachments",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.key = key
        self.bucket = bucket
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.url,
                headers={"Authorization": f"Bearer {self.key}", "apikey": self.key},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        endpoint = f"/storage/v1/object/{self.bucket}/{quote(path)}"
        try:
            response = await self._get_client().post(
                endpoint,
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "true"},
            )
        except httpx.HTTPError as exc:
            raise BlobUploadError(f"Upload request failed: {exc}") from exc
        if response.is_error:
            raise BlobUploadError(
                f"Upload failed: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )


async def upload_with_retry(
    store: BlobStore,
    path: str,
    data: bytes,
    content_type: str,
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Upload, retrying only server-side (5xx) failures.

    Waits ``base_delay * 2 ** n`` seconds before retry *n*. Non-transient
    errors, and the last transient one, propagate.
    """

    def log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            "Upload of %s failed with %s, retrying in %.1fs (attempt %d/%d)",
            path,
            getattr(exc, "status_code", None),
            retry_state.next_action.sleep,
            retry_state.attempt_number,
            attempts,
        )

    async for attempt in AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay),
        retry=retry_if_exception(_is_transient),
        before_sleep=log_retry,
        sleep=sleep,
    ):
        with attempt:
            await store.upload(path, data, content_type)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, BlobUploadError) and exc.is_transient
