"""Tests for the Scryfall bulk data client.

Requests are served by httpx.MockTransport; no network access.
"""
import json

import httpx
import pytest

from oraclesync.scryfall.client import ScryfallAPIError, ScryfallClient
from oraclesync.sync.decoder import iter_source_records

BULK_INFO_RESPONSE = {
    "object": "bulk_data",
    "id": "27bf3214-1271-490b-bdfe-c0be6c23d02e",
    "type": "oracle_cards",
    "updated_at": "2025-06-01T09:05:12.345+00:00",
    "uri": "https://api.scryfall.com/bulk-data/27bf3214-1271-490b-bdfe-c0be6c23d02e",
    "name": "Oracle Cards",
    "description": "A JSON file containing one Scryfall card object for each Oracle ID",
    "size": 162534128,
    "download_uri": "https://data.scryfall.io/oracle-cards/oracle-cards-20250601090512.json",
    "content_type": "application/json",
    "content_encoding": "gzip",
}

DOWNLOAD_URI = BULK_INFO_RESPONSE["download_uri"]


def _client(handler, **kwargs) -> ScryfallClient:
    return ScryfallClient(
        base_url="https://api.scryfall.com",
        bulk_data_type="oracle-cards",
        user_agent="OracleSyncTests/1.0",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestGetBulkDataInfo:
    @pytest.mark.asyncio
    async def test_parses_metadata(self):
        def handler(request):
            return httpx.Response(200, json=BULK_INFO_RESPONSE)

        async with _client(handler) as client:
            info = await client.get_bulk_data_info()

        assert info.id == BULK_INFO_RESPONSE["id"]
        assert info.size == 162534128
        assert info.download_uri == DOWNLOAD_URI
        assert info.updated_at.year == 2025

    @pytest.mark.asyncio
    async def test_requests_configured_type_with_headers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=BULK_INFO_RESPONSE)

        async with _client(handler) as client:
            await client.get_bulk_data_info()

        assert seen[0].url == "https://api.scryfall.com/bulk-data/oracle-cards"
        assert seen[0].headers["User-Agent"] == "OracleSyncTests/1.0"
        assert seen[0].headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        def handler(request):
            return httpx.Response(404, json={"object": "error", "details": "No bulk data"})

        async with _client(handler) as client:
            with pytest.raises(ScryfallAPIError) as info:
                await client.get_bulk_data_info()

        assert info.value.status_code == 404
        assert "No bulk data" in str(info.value)

    @pytest.mark.asyncio
    async def test_error_body_truncated(self):
        def handler(request):
            return httpx.Response(500, text="x" * 5000)

        async with _client(handler) as client:
            with pytest.raises(ScryfallAPIError) as info:
                await client.get_bulk_data_info()

        assert len(info.value.body) == 1200

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get_bulk_data_info()


class TestOpenBulkStream:
    @pytest.mark.asyncio
    async def test_streams_body_to_decoder(self, make_card):
        cards = [make_card(name=f"Card {i}") for i in range(25)]
        body = json.dumps(cards).encode()

        def handler(request):
            assert str(request.url) == DOWNLOAD_URI
            return httpx.Response(200, content=body)

        async with _client(handler) as client:
            async with client.open_bulk_stream(DOWNLOAD_URI) as stream:
                names = [c["name"] async for c in iter_source_records(stream)]

        assert names == [f"Card {i}" for i in range(25)]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        async with _client(handler) as client:
            with pytest.raises(ScryfallAPIError) as info:
                async with client.open_bulk_stream(DOWNLOAD_URI):
                    pass

        assert info.value.status_code == 503
        assert info.value.url == DOWNLOAD_URI
