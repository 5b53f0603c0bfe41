"""Deck import request and response schemas."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ImportLogEntry(BaseModel):
    """Single entry of an import session's error/warning log."""

    timestamp: str
    kind: str = Field(..., description="'warning' or the failure kind")
    message: str
    details: Any = None


class ImportStats(BaseModel):
    """Counters reported for an upload."""

    cards_imported: int = Field(..., description="Cards persisted")
    cards_skipped: int = Field(..., description="Cards dropped or failed to persist")
    processing_time: float = Field(..., description="Wall time in seconds")
    warnings: List[str] = Field(default_factory=list)


class DeckImportResponse(BaseModel):
    """Response for a completed upload or validation."""

    success: bool = True
    import_id: int
    deck_id: Optional[int] = None
    validate_only: bool = False
    import_stats: ImportStats


class DeckImportRead(BaseModel):
    """Row of the import history listing."""

    id: int
    filename: str
    file_size: int
    cards_imported: int
    cards_failed: int
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ImportDetailStats(BaseModel):
    cards_imported: int
    cards_skipped: int
    errors: List[ImportLogEntry] = Field(default_factory=list)
    warnings: List[ImportLogEntry] = Field(default_factory=list)


class DeckImportDetail(BaseModel):
    """Detailed view of one import session."""

    id: int
    filename: str
    status: str
    deck_id: Optional[int] = None
    deck_name: Optional[str] = None
    processing_time: Optional[float] = None
    created_at: datetime
    import_stats: ImportDetailStats


class DeckImportStatistics(BaseModel):
    """Aggregate figures over all import sessions."""

    total_imports: int
    successful_imports: int
    failed_imports: int
    processing_imports: int
    total_cards_imported: int
    total_cards_failed: int
    average_duration: float
    total_file_size: int
    success_rate: float


class SourceDeck(BaseModel):
    id: str
    name: str
    description: str = ""


class AnkiMetadataRead(BaseModel):
    version: str
    original_filename: Optional[str] = None
    file_checksum: Optional[str] = None
    import_date: Optional[datetime] = None
    source_decks: List[SourceDeck] = Field(default_factory=list)


class DeckRead(BaseModel):
    """Deck with the metadata of the package it came from."""

    id: int
    name: str
    description: Optional[str] = None
    card_count: int
    import_status: Optional[str] = None
    import_id: Optional[int] = None
    anki_metadata: Optional[AnkiMetadataRead] = None
    created_at: datetime


class CardProvenanceRead(BaseModel):
    note_id: str
    model: Optional[str] = None
    original_fields: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    media_files: List[str] = Field(default_factory=list)


class DeckCardRead(BaseModel):
    """Card listing item; ``provenance`` is present only when requested."""

    id: int
    front: str
    back: str
    difficulty: str
    difficulty_score: float
    topic: Optional[str] = None
    provenance: Optional[CardProvenanceRead] = None


class ImportErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
