"""Deck import exception taxonomy and HTTP mapping helpers."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from loguru import logger


class ImportErrorKind(str, Enum):
    """Machine-readable kind for every import failure."""

    FORMAT_ERROR = "format_error"
    SIZE_ERROR = "size_error"
    CORRUPT_ARCHIVE = "corrupt_archive"
    MISSING_REQUIRED_FILE = "missing_required_file"
    NOT_A_DATABASE = "not_a_database"
    EMPTY_DECK = "empty_deck"
    PARTIAL_CARD_FAILURE = "partial_card_failure"
    DUPLICATE_IMPORT = "duplicate_import"
    PROCESSING_ERROR = "processing_error"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"


class DeckImportException(Exception):
    """Base exception for the deck import pipeline."""

    kind: ImportErrorKind = ImportErrorKind.PROCESSING_ERROR
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "details": self.details}


class FormatError(DeckImportException):
    """Upload does not carry the expected archive extension."""

    kind = ImportErrorKind.FORMAT_ERROR
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class SizeError(DeckImportException):
    """Upload is smaller or larger than the accepted bounds."""

    kind = ImportErrorKind.SIZE_ERROR
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE


class CorruptArchiveError(DeckImportException):
    """Upload is not a readable ZIP container."""

    kind = ImportErrorKind.CORRUPT_ARCHIVE
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class MissingRequiredFileError(DeckImportException):
    """Archive lacks an entry the format requires."""

    kind = ImportErrorKind.MISSING_REQUIRED_FILE
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotADatabaseError(DeckImportException):
    """Collection entry does not start with the SQLite header."""

    kind = ImportErrorKind.NOT_A_DATABASE
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class EmptyDeckError(DeckImportException):
    """No usable cards remained after conversion."""

    kind = ImportErrorKind.EMPTY_DECK
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PartialCardFailure(DeckImportException):
    """A single card was dropped; recorded, never raised to callers."""

    kind = ImportErrorKind.PARTIAL_CARD_FAILURE
    status_code = status.HTTP_207_MULTI_STATUS


class DuplicateImportError(DeckImportException):
    """Identical package content was already imported."""

    kind = ImportErrorKind.DUPLICATE_IMPORT
    status_code = status.HTTP_409_CONFLICT


class ProcessingError(DeckImportException):
    """Unexpected failure while parsing or persisting an import."""

    kind = ImportErrorKind.PROCESSING_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ImportStateError(DeckImportException):
    """Requested transition is not allowed from the session's current state."""

    kind = ImportErrorKind.INVALID_TRANSITION
    status_code = status.HTTP_409_CONFLICT


class ImportSessionNotFoundError(DeckImportException):
    """No import session (or deck) exists with the requested id."""

    kind = ImportErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


def handle_deck_import_error(error: DeckImportException) -> HTTPException:
    """Translate a pipeline error into an HTTP response."""
    if error.status_code >= 500:
        logger.error(f"Deck import error ({error.kind.value}): {error.message}")
    else:
        logger.warning(f"Deck import rejected ({error.kind.value}): {error.message}")
    return HTTPException(
        status_code=error.status_code,
        detail={
            "success": False,
            "error": error.kind.value,
            "message": error.message,
            "details": error.details,
        },
    )
