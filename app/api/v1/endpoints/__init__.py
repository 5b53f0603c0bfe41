"""API endpoint modules for v1."""

from app.api.v1.endpoints import deck_imports, decks

__all__ = [
    "deck_imports",
    "decks",
]
