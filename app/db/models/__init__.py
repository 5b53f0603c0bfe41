"""Database models package."""
from app.db.models.deck_import import DeckImport, ImportStatus
from app.db.models.deck import Card, Deck

__all__ = [
    "Card",
    "Deck",
    "DeckImport",
    "ImportStatus",
]
