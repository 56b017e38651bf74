"""Shared test fixtures."""
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Generator, List, Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from oraclesync.models.card import Card, CardFace, RelatedCard  # noqa: F401
from oraclesync.models.sync import SyncError, SyncRun  # noqa: F401
from oraclesync.scryfall.schemas import BulkDataInfo
from oraclesync.sync.decoder import AsyncChunkReader

BULK_INFO = BulkDataInfo(
    id="27bf3214-1271-490b-bdfe-c0be6c23d02e",
    type="oracle-cards",
    updated_at=datetime(2025, 6, 1, 9, 5, tzinfo=timezone.utc),
    download_uri="https://data.scryfall.io/oracle-cards/oracle-cards-20250601090500.json",
    size=162_000_000,
    content_type="application/json",
)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


def build_card_json(name: str = "Llanowar Elves", oracle_id: Optional[str] = None, **overrides) -> dict:
    """One oracle-cards element, shaped like Scryfall's bulk data."""
    card = {
        "object": "card",
        "id": str(uuid.uuid4()),
        "oracle_id": oracle_id or str(uuid.uuid4()),
        "name": name,
        "lang": "en",
        "released_at": "2019-07-12",
        "uri": "https://api.scryfall.com/cards/abc",
        "scryfall_uri": "https://scryfall.com/card/m20/180/llanowar-elves",
        "layout": "normal",
        "highres_image": True,
        "image_status": "highres_scan",
        "image_uris": {
            "small": "https://cards.scryfall.io/small/front/a/b/ab.jpg",
            "normal": "https://cards.scryfall.io/normal/front/a/b/ab.jpg",
        },
        "mana_cost": "{G}",
        "cmc": 1.0,
        "type_line": "Creature \u2014 Elf Druid",
        "oracle_text": "{T}: Add {G}.",
        "power": "1",
        "toughness": "1",
        "colors": ["G"],
        "color_identity": ["G"],
        "keywords": [],
        "produced_mana": ["G"],
        "legalities": {"standard": "not_legal", "commander": "legal"},
        "games": ["paper", "mtgo", "arena"],
        "reserved": False,
        "finishes": ["nonfoil", "foil"],
        "set": "m20",
        "set_name": "Core Set 2020",
        "set_type": "core",
        "collector_number": "180",
        "digital": False,
        "rarity": "common",
        "artist": "Chris Rahn",
        "border_color": "black",
        "frame": "2015",
        "edhrec_rank": 12,
        "prices": {"usd": "0.25", "usd_foil": "1.10", "eur": None, "tix": "0.03"},
        "related_uris": {"gatherer": "https://gatherer.wizards.com/x"},
    }
    card.update(overrides)
    return card


@pytest.fixture(name="make_card")
def make_card_fixture():
    return build_card_json


def chunk_bytes(data: bytes, chunk_size: int) -> List[bytes]:
    return [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]


async def iter_chunks(chunks: List[bytes]):
    for chunk in chunks:
        yield chunk


def make_mock_client(
    records: Optional[List[Any]] = None,
    *,
    body: Optional[bytes] = None,
    chunks=None,
    info: BulkDataInfo = BULK_INFO,
    chunk_size: int = 700,
):
    """
    Stand-in for ScryfallClient.

    The dataset is `records` encoded as a JSON array, or `body` verbatim, split
    into chunk_size pieces. `chunks` (an async iterator factory) overrides both.
    """
    if body is None:
        body = json.dumps(records or []).encode("utf-8")

    @asynccontextmanager
    async def open_bulk_stream(download_uri):
        source = chunks() if chunks is not None else iter_chunks(chunk_bytes(body, chunk_size))
        yield AsyncChunkReader(source)

    client = AsyncMock()
    client.get_bulk_data_info = AsyncMock(return_value=info)
    client.open_bulk_stream = open_bulk_stream
    return client


@pytest.fixture(name="mock_client_factory")
def mock_client_factory_fixture():
    return make_mock_client
