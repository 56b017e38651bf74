"""
Pydantic models for the Scryfall payloads we consume.

Only the fields we persist are declared; everything else in a Scryfall card
object is ignored. Validation failures here are what turn a malformed bulk
data element into a per-record sync error.
"""
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BulkDataInfo(BaseModel):
    """Metadata for one Scryfall bulk data file (GET /bulk-data/{type})."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    updated_at: datetime
    download_uri: str
    size: int = 0
    content_type: Optional[str] = None


class ImageUris(BaseModel):
    model_config = ConfigDict(extra="ignore")

    small: Optional[str] = None
    normal: Optional[str] = None
    large: Optional[str] = None
    png: Optional[str] = None
    art_crop: Optional[str] = None
    border_crop: Optional[str] = None


class Prices(BaseModel):
    model_config = ConfigDict(extra="ignore")

    usd: Optional[str] = None
    usd_foil: Optional[str] = None
    usd_etched: Optional[str] = None
    eur: Optional[str] = None
    eur_foil: Optional[str] = None
    eur_etched: Optional[str] = None
    tix: Optional[str] = None


class ScryfallCardFace(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    mana_cost: Optional[str] = None
    type_line: Optional[str] = None
    oracle_text: Optional[str] = None
    colors: Optional[List[str]] = None
    power: Optional[str] = None
    toughness: Optional[str] = None
    loyalty: Optional[str] = None
    defense: Optional[str] = None
    flavor_text: Optional[str] = None
    artist: Optional[str] = None
    layout: Optional[str] = None
    cmc: Optional[float] = None
    oracle_id: Optional[uuid.UUID] = None
    image_uris: Optional[ImageUris] = None


class ScryfallRelatedCard(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: uuid.UUID
    component: Optional[str] = None
    name: Optional[str] = None
    type_line: Optional[str] = None
    uri: Optional[str] = None


class ScryfallCard(BaseModel):
    """A single element of the oracle-cards bulk data array."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: uuid.UUID
    oracle_id: Optional[uuid.UUID] = None
    name: str

    lang: Optional[str] = None
    layout: Optional[str] = None
    mana_cost: Optional[str] = None
    cmc: float = 0.0
    type_line: Optional[str] = None
    oracle_text: Optional[str] = None
    power: Optional[str] = None
    toughness: Optional[str] = None
    loyalty: Optional[str] = None
    defense: Optional[str] = None
    colors: Optional[List[str]] = None
    color_identity: Optional[List[str]] = None
    color_indicator: Optional[List[str]] = None
    produced_mana: Optional[List[str]] = None
    keywords: Optional[List[str]] = None
    reserved: bool = False
    game_changer: Optional[bool] = None
    edhrec_rank: Optional[int] = None
    penny_rank: Optional[int] = None

    artist: Optional[str] = None
    booster: bool = False
    border_color: Optional[str] = None
    collector_number: Optional[str] = None
    digital: bool = False
    finishes: Optional[List[str]] = None
    flavor_text: Optional[str] = None
    frame: Optional[str] = None
    full_art: bool = False
    games: Optional[List[str]] = None
    highres_image: bool = False
    image_status: Optional[str] = None
    oversized: bool = False
    promo: bool = False
    rarity: Optional[str] = None
    released_at: Optional[date] = None
    reprint: bool = False
    set_code: Optional[str] = Field(default=None, alias="set")
    set_name: Optional[str] = None
    set_type: Optional[str] = None
    watermark: Optional[str] = None

    uri: Optional[str] = None
    scryfall_uri: Optional[str] = None
    rulings_uri: Optional[str] = None
    prints_search_uri: Optional[str] = None

    image_uris: Optional[ImageUris] = None
    prices: Optional[Prices] = None
    legalities: Optional[Dict[str, str]] = None
    purchase_uris: Optional[Dict[str, str]] = None
    related_uris: Optional[Dict[str, str]] = None

    card_faces: Optional[List[ScryfallCardFace]] = None
    all_parts: Optional[List[ScryfallRelatedCard]] = None
