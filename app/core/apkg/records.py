"""Typed records flowing between the validator, parser and converter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from app.utils.exceptions import DeckImportException, PartialCardFailure


@dataclass
class ValidationResult:
    """Outcome of the cheap structural checks on an upload."""

    errors: List[DeckImportException] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def error_messages(self) -> List[str]:
        return [error.message for error in self.errors]

    def first_error(self) -> Optional[DeckImportException]:
        return self.errors[0] if self.errors else None


@dataclass(frozen=True)
class ForeignDeck:
    """A deck declared in the collection's per-deck configuration."""

    id: str
    name: str
    description: str = ""


@dataclass
class DeckInfo:
    """Collection-level metadata read from the single ``col`` row."""

    original_filename: str
    version: str = "unknown"
    created_at: Optional[int] = None
    modified_at: Optional[int] = None
    config: Dict[str, Any] = field(default_factory=dict)
    decks: List[ForeignDeck] = field(default_factory=list)


@dataclass(frozen=True)
class NoteRecord:
    id: int
    model_id: int
    modified_at: int
    tags: Tuple[str, ...]
    fields: Tuple[str, ...]
    sort_field: str
    checksum: Optional[int] = None


@dataclass(frozen=True)
class SchedulingStats:
    type: int = 0
    queue: int = 0
    due: int = 0
    interval: int = 0
    ease_factor: int = 0
    review_count: int = 0
    lapse_count: int = 0


@dataclass(frozen=True)
class CardRecord:
    """A foreign card joined to its note, with derived plain-text sides."""

    id: int
    note_id: int
    source_deck_id: int
    ordinal: int
    scheduling: SchedulingStats
    front: str
    back: str
    note: Optional[NoteRecord] = None


@dataclass(frozen=True)
class MediaRecord:
    key: str
    filename: str
    exists_in_archive: bool
    size: Optional[int] = None


@dataclass
class ParseResult:
    """Everything extracted from one package, plus recoverable problems."""

    success: bool = False
    deck_info: Optional[DeckInfo] = None
    notes: List[NoteRecord] = field(default_factory=list)
    cards: List[CardRecord] = field(default_factory=list)
    media: List[MediaRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CardProvenance:
    note_id: str
    model_id: str
    tags: Tuple[str, ...]
    raw_fields: Tuple[str, ...]
    media_filenames: Tuple[str, ...]


@dataclass(frozen=True)
class ConvertedCard:
    """A card in the internal schema, ready to persist."""

    front: str
    back: str
    difficulty: str
    difficulty_score: float
    topic: str
    provenance: CardProvenance


@dataclass
class DeckDraft:
    name: str
    description: str
    checksum: str
    anki_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionSeed:
    """Initial counters for the import session derived from conversion."""

    filename: str
    file_size: int
    cards_imported: int = 0
    cards_failed: int = 0


@dataclass
class ConversionResult:
    deck: DeckDraft
    cards: List[ConvertedCard]
    failures: List[PartialCardFailure]
    session_seed: SessionSeed
