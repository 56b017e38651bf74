"""Card data models: cards plus their faces and related parts."""
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel

from oraclesync.models.sync import utcnow


def _json_column() -> Any:
    return Field(default=None, sa_column=Column(JSON))


class Card(SQLModel, table=True):
    """
    One row per oracle card from the Scryfall bulk data.

    `id` is our own identity, assigned on first insert and never changed.
    `oracle_id` is Scryfall's stable key for the card and is what the sync
    pipeline diffs on.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    oracle_id: Optional[uuid.UUID] = Field(default=None, unique=True, index=True)
    scryfall_id: uuid.UUID = Field(index=True)

    # Gameplay
    name: str = Field(max_length=300, index=True)
    lang: str = Field(default="en", max_length=10)
    layout: str = Field(default="", max_length=50)
    mana_cost: Optional[str] = Field(default=None, max_length=100)
    cmc: float = Field(default=0.0, index=True)
    type_line: str = Field(default="", max_length=200)
    oracle_text: Optional[str] = Field(default=None, max_length=2000)
    power: Optional[str] = Field(default=None, max_length=10)
    toughness: Optional[str] = Field(default=None, max_length=10)
    loyalty: Optional[str] = Field(default=None, max_length=10)
    defense: Optional[str] = Field(default=None, max_length=10)
    colors: Optional[List[str]] = _json_column()
    color_identity: Optional[List[str]] = _json_column()
    color_indicator: Optional[List[str]] = _json_column()
    produced_mana: Optional[List[str]] = _json_column()
    keywords: Optional[List[str]] = _json_column()
    reserved: bool = False
    game_changer: Optional[bool] = None
    edhrec_rank: Optional[int] = None
    penny_rank: Optional[int] = None

    # Print
    artist: Optional[str] = Field(default=None, max_length=200)
    booster: bool = False
    border_color: str = Field(default="", max_length=20)
    collector_number: str = Field(default="", max_length=20)
    digital: bool = False
    finishes: Optional[List[str]] = _json_column()
    flavor_text: Optional[str] = Field(default=None, max_length=1000)
    frame: str = Field(default="", max_length=20)
    full_art: bool = False
    games: Optional[List[str]] = _json_column()
    highres_image: bool = False
    image_status: str = Field(default="", max_length=20)
    oversized: bool = False
    promo: bool = False
    rarity: str = Field(default="", max_length=20, index=True)
    released_at: Optional[date] = None
    reprint: bool = False
    set_code: str = Field(default="", max_length=10, index=True)
    set_name: str = Field(default="", max_length=200)
    set_type: str = Field(default="", max_length=50)
    watermark: Optional[str] = Field(default=None, max_length=50)

    # Links
    uri: str = Field(default="", max_length=500)
    scryfall_uri: str = Field(default="", max_length=500)
    rulings_uri: str = Field(default="", max_length=500)
    prints_search_uri: str = Field(default="", max_length=500)

    # Nested objects, stored as JSON
    image_uris: Optional[Dict[str, Optional[str]]] = _json_column()
    prices: Optional[Dict[str, Optional[str]]] = _json_column()
    legalities: Optional[Dict[str, str]] = _json_column()
    purchase_uris: Optional[Dict[str, str]] = _json_column()
    related_uris: Optional[Dict[str, str]] = _json_column()

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    faces: List["CardFace"] = Relationship(
        back_populates="card",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "CardFace.face_index",
        },
    )
    related_cards: List["RelatedCard"] = Relationship(
        back_populates="card",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class CardFace(SQLModel, table=True):
    """
    One face of a multi-faced card (transform, modal DFC, split, flip...).
    Rows are replaced wholesale whenever the parent card is re-synced.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    card_id: uuid.UUID = Field(foreign_key="card.id", index=True, ondelete="CASCADE")
    face_index: int

    name: str = Field(default="", max_length=300)
    mana_cost: str = Field(default="", max_length=100)
    type_line: Optional[str] = Field(default=None, max_length=200)
    oracle_text: Optional[str] = Field(default=None, max_length=2000)
    colors: Optional[List[str]] = _json_column()
    power: Optional[str] = Field(default=None, max_length=10)
    toughness: Optional[str] = Field(default=None, max_length=10)
    loyalty: Optional[str] = Field(default=None, max_length=10)
    defense: Optional[str] = Field(default=None, max_length=10)
    flavor_text: Optional[str] = Field(default=None, max_length=1000)
    artist: Optional[str] = Field(default=None, max_length=200)
    layout: Optional[str] = Field(default=None, max_length=50)
    cmc: Optional[float] = None
    oracle_id: Optional[uuid.UUID] = None
    image_uris: Optional[Dict[str, Optional[str]]] = _json_column()

    card: Optional[Card] = Relationship(back_populates="faces")


class RelatedCard(SQLModel, table=True):
    """An entry of Scryfall's all_parts list (tokens, meld pieces, combo pieces)."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    card_id: uuid.UUID = Field(foreign_key="card.id", index=True, ondelete="CASCADE")

    related_scryfall_id: uuid.UUID
    component: str = Field(default="", max_length=30)  # token, meld_part, meld_result, combo_piece
    name: str = Field(default="", max_length=300)
    type_line: str = Field(default="", max_length=200)
    uri: str = Field(default="", max_length=500)

    card: Optional[Card] = Relationship(back_populates="related_cards")
