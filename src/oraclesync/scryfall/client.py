"""
Async client for the Scryfall bulk data API.

Two calls only: the bulk data metadata (small JSON) and a streaming GET of
the file it points to. The body is never read into memory; it is handed to
the decoder chunk by chunk through an AsyncChunkReader.

Scryfall asks API clients to send a descriptive User-Agent and an Accept
header on every request.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from oraclesync.config import get_settings
from oraclesync.scryfall.schemas import BulkDataInfo
from oraclesync.sync.decoder import AsyncChunkReader

logger = logging.getLogger(__name__)

_MAX_ERROR_BODY = 1200


class ScryfallAPIError(Exception):
    """Raised when Scryfall answers with a non-2xx status."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(f"Scryfall returned {status_code} for {url}: {body}")


class ScryfallClient:
    """
    Thin async wrapper over httpx for Scryfall's bulk-data endpoints.

    Use as an async context manager, or call aclose() when done.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        bulk_data_type: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API root. Defaults to settings.scryfall_base_url.
            bulk_data_type: Bulk file type, e.g. "oracle-cards".
            user_agent: User-Agent header value.
            timeout: Per-request timeout in seconds (applies to each read
                     of the stream, not to the whole download).
            transport: Optional httpx transport (httpx.MockTransport in tests).
        """
        settings = get_settings()
        self.base_url = (base_url or settings.scryfall_base_url).rstrip("/")
        self.bulk_data_type = bulk_data_type or settings.scryfall_bulk_type
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "User-Agent": user_agent or settings.scryfall_user_agent,
                "Accept": "application/json",
            },
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "ScryfallClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_bulk_data_info(self) -> BulkDataInfo:
        """Fetch metadata for the configured bulk data type."""
        response = await self._client.get(f"/bulk-data/{self.bulk_data_type}")
        if not response.is_success:
            raise ScryfallAPIError(
                response.status_code,
                str(response.request.url),
                response.text[:_MAX_ERROR_BODY],
            )
        return BulkDataInfo.model_validate(response.json())

    @asynccontextmanager
    async def open_bulk_stream(self, download_uri: str) -> AsyncIterator[AsyncChunkReader]:
        """
        Stream the bulk data file at `download_uri`.

        Yields an AsyncChunkReader over the response body; the response is
        closed when the block exits, whether or not it was fully read.
        """
        logger.info("Downloading bulk data from %s", download_uri)
        async with self._client.stream("GET", download_uri) as response:
            if not response.is_success:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise ScryfallAPIError(
                    response.status_code, download_uri, body[:_MAX_ERROR_BODY]
                )
            yield AsyncChunkReader(response.aiter_bytes())
