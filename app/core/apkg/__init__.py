"""Anki package validation, parsing and conversion."""

from .converter import convert_to_internal_format
from .parser import ApkgParser, scratch_database, strip_markup
from .records import (
    CardRecord,
    ConversionResult,
    ConvertedCard,
    MediaRecord,
    NoteRecord,
    ParseResult,
    ValidationResult,
)
from .validator import COLLECTION_ENTRY, ApkgValidator

__all__ = [
    "COLLECTION_ENTRY",
    "ApkgParser",
    "ApkgValidator",
    "CardRecord",
    "ConversionResult",
    "ConvertedCard",
    "MediaRecord",
    "NoteRecord",
    "ParseResult",
    "ValidationResult",
    "convert_to_internal_format",
    "scratch_database",
    "strip_markup",
]
