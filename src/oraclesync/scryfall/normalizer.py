"""
Scryfall card normalizer.

Converts one decoded bulk-data element into plain field dicts that map
directly onto the Card / CardFace / RelatedCard SQLModel columns. No DB
access here: the batch writer owns persistence.

Everything returns plain dicts (wrapped in a CardPayload) so queued records
hold no ORM state between flushes and are easy to test.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from oraclesync.scryfall.schemas import ScryfallCard


@dataclass
class CardPayload:
    """Everything the batch writer needs to insert or refresh one card."""

    external_key: Optional[uuid.UUID]
    name: str
    card_fields: Dict[str, Any]
    faces: List[Dict[str, Any]] = field(default_factory=list)
    related_cards: List[Dict[str, Any]] = field(default_factory=list)


def parse_card(raw: Any) -> ScryfallCard:
    """Validate one decoded element. Raises pydantic.ValidationError if malformed."""
    return ScryfallCard.model_validate(raw)


def normalize_card(card: ScryfallCard) -> Dict[str, Any]:
    """
    Map a validated Scryfall card onto Card column values.

    Excludes our own `id` and the bookkeeping timestamps; nullable Scryfall
    strings that are NOT NULL on our side collapse to "".
    """
    return {
        "oracle_id": card.oracle_id,
        "scryfall_id": card.id,
        "name": card.name,
        "lang": card.lang or "en",
        "layout": card.layout or "",
        "mana_cost": card.mana_cost,
        "cmc": card.cmc,
        "type_line": card.type_line or "",
        "oracle_text": card.oracle_text,
        "power": card.power,
        "toughness": card.toughness,
        "loyalty": card.loyalty,
        "defense": card.defense,
        "colors": card.colors or [],
        "color_identity": card.color_identity or [],
        "color_indicator": card.color_indicator,
        "produced_mana": card.produced_mana,
        "keywords": card.keywords or [],
        "reserved": card.reserved,
        "game_changer": card.game_changer,
        "edhrec_rank": card.edhrec_rank,
        "penny_rank": card.penny_rank,
        "artist": card.artist,
        "booster": card.booster,
        "border_color": card.border_color or "",
        "collector_number": card.collector_number or "",
        "digital": card.digital,
        "finishes": card.finishes or [],
        "flavor_text": card.flavor_text,
        "frame": card.frame or "",
        "full_art": card.full_art,
        "games": card.games or [],
        "highres_image": card.highres_image,
        "image_status": card.image_status or "",
        "oversized": card.oversized,
        "promo": card.promo,
        "rarity": card.rarity or "",
        "released_at": card.released_at,
        "reprint": card.reprint,
        "set_code": card.set_code or "",
        "set_name": card.set_name or "",
        "set_type": card.set_type or "",
        "watermark": card.watermark,
        "uri": card.uri or "",
        "scryfall_uri": card.scryfall_uri or "",
        "rulings_uri": card.rulings_uri or "",
        "prints_search_uri": card.prints_search_uri or "",
        "image_uris": card.image_uris.model_dump() if card.image_uris else None,
        "prices": card.prices.model_dump() if card.prices else {},
        "legalities": dict(card.legalities) if card.legalities else {},
        "purchase_uris": dict(card.purchase_uris) if card.purchase_uris else None,
        "related_uris": dict(card.related_uris) if card.related_uris else {},
    }


def normalize_faces(card: ScryfallCard) -> List[Dict[str, Any]]:
    """CardFace column dicts, ordered by their position in card_faces."""
    faces = []
    for index, face in enumerate(card.card_faces or []):
        faces.append(
            {
                "face_index": index,
                "name": face.name or "",
                "mana_cost": face.mana_cost or "",
                "type_line": face.type_line,
                "oracle_text": face.oracle_text,
                "colors": face.colors,
                "power": face.power,
                "toughness": face.toughness,
                "loyalty": face.loyalty,
                "defense": face.defense,
                "flavor_text": face.flavor_text,
                "artist": face.artist,
                "layout": face.layout,
                "cmc": face.cmc,
                "oracle_id": face.oracle_id,
                "image_uris": face.image_uris.model_dump() if face.image_uris else None,
            }
        )
    return faces


def normalize_related_cards(card: ScryfallCard) -> List[Dict[str, Any]]:
    """RelatedCard column dicts from all_parts."""
    return [
        {
            "related_scryfall_id": part.id,
            "component": part.component or "",
            "name": part.name or "",
            "type_line": part.type_line or "",
            "uri": part.uri or "",
        }
        for part in (card.all_parts or [])
    ]


def build_card_payload(raw: Any) -> CardPayload:
    """Validate and normalize one raw bulk-data element."""
    card = parse_card(raw)
    return CardPayload(
        external_key=card.oracle_id,
        name=card.name,
        card_fields=normalize_card(card),
        faces=normalize_faces(card),
        related_cards=normalize_related_cards(card),
    )


def describe_raw_record(raw: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Best-effort (oracle_id, name) for an element that failed validation.

    Used only for error reporting, so nothing here may raise.
    """
    if not isinstance(raw, dict):
        return None, None
    oracle_id = raw.get("oracle_id")
    name = raw.get("name")
    return (
        str(oracle_id)[:64] if oracle_id is not None else None,
        str(name)[:300] if name is not None else None,
    )
