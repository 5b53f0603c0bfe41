"""Service layer package."""

from app.services.deck_import import DeckImportService, ImportOutcome
from app.services.decks import DeckService
from app.services.import_tracker import DuplicateCheck, ImportTracker

__all__ = [
    "DeckImportService",
    "DeckService",
    "DuplicateCheck",
    "ImportOutcome",
    "ImportTracker",
]
