"""Read access to imported decks and their cards."""
from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.db.models.deck import Card, Deck
from app.utils.exceptions import ImportSessionNotFoundError


class DeckNotFoundError(ImportSessionNotFoundError):
    """Raised when a deck id does not exist."""


class DeckService:
    """Query decks created by package imports."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_deck(self, deck_id: int) -> Deck:
        deck = self.db.get(Deck, deck_id)
        if deck is None:
            raise DeckNotFoundError(f"Deck {deck_id} not found", {"deck_id": deck_id})
        return deck

    def get_deck_details(self, deck_id: int) -> Dict[str, Any]:
        deck = self.get_deck(deck_id)
        card_count = self.db.scalar(
            select(func.count()).select_from(Card).where(Card.deck_id == deck_id)
        ) or 0

        anki_metadata = None
        if deck.anki_metadata:
            metadata = deck.anki_metadata
            anki_metadata = {
                "version": metadata.get("anki_version", "unknown"),
                "original_filename": metadata.get("original_filename"),
                "file_checksum": deck.file_checksum,
                "import_date": deck.import_date,
                "source_decks": metadata.get("decks", []),
            }

        return {
            "id": deck.id,
            "name": deck.name,
            "description": deck.description,
            "card_count": card_count,
            "import_status": deck.import_status,
            "import_id": deck.anki_import_id,
            "anki_metadata": anki_metadata,
            "created_at": deck.created_at,
        }

    def list_cards(self, deck_id: int, include_provenance: bool = False) -> List[Dict[str, Any]]:
        """Cards of a deck; provenance is only included on request."""
        self.get_deck(deck_id)
        cards = self.db.scalars(select(Card).where(Card.deck_id == deck_id).order_by(Card.id))

        items: List[Dict[str, Any]] = []
        for card in cards:
            item: Dict[str, Any] = {
                "id": card.id,
                "front": card.front,
                "back": card.back,
                "difficulty": card.difficulty_level,
                "difficulty_score": card.difficulty_score,
                "topic": card.topic_category,
            }
            if include_provenance:
                item["provenance"] = (
                    {
                        "note_id": card.anki_note_id,
                        "model": card.anki_model,
                        "original_fields": card.anki_fields,
                        "tags": card.anki_tags,
                        "media_files": card.media_files,
                    }
                    if card.anki_note_id
                    else None
                )
            items.append(item)
        return items
