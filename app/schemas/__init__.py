"""Pydantic schemas package."""

from app.schemas.deck_import import (
    CardProvenanceRead,
    DeckCardRead,
    DeckImportDetail,
    DeckImportRead,
    DeckImportResponse,
    DeckImportStatistics,
    DeckRead,
    ImportErrorResponse,
    ImportStats,
)

__all__ = [
    "CardProvenanceRead",
    "DeckCardRead",
    "DeckImportDetail",
    "DeckImportRead",
    "DeckImportResponse",
    "DeckImportStatistics",
    "DeckRead",
    "ImportErrorResponse",
    "ImportStats",
]
