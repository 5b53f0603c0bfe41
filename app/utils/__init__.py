"""Utility helpers package."""

from app.utils.exceptions import DeckImportException, ImportErrorKind, handle_deck_import_error

__all__ = ["DeckImportException", "ImportErrorKind", "handle_deck_import_error"]
