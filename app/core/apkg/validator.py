"""Structural validation of uploaded ``.apkg`` packages.

Only the ZIP central directory and the first bytes of the collection entry are
read; nothing is extracted to disk. Extension and size are both checked before
short-circuiting so a tiny upload with the wrong name reports both problems.
"""
from __future__ import annotations

import io
import json
import zipfile
from typing import Any, Dict, List, Optional

from loguru import logger

from app.config import settings
from app.core.apkg.records import ValidationResult
from app.utils.exceptions import (
    CorruptArchiveError,
    FormatError,
    MissingRequiredFileError,
    NotADatabaseError,
    SizeError,
)

COLLECTION_ENTRY = "collection.anki2"
MEDIA_INDEX_ENTRY = "media"
SQLITE_MAGIC = b"SQLite format 3\x00"
SMALL_COLLECTION_BYTES = 1000


def open_archive(raw_bytes: bytes) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(raw_bytes))


def media_entry_names(archive: zipfile.ZipFile) -> List[str]:
    """Top-level entries whose names are purely numeric (packaged media)."""
    return [
        info.filename
        for info in archive.infolist()
        if info.filename.isdigit() and not info.is_dir()
    ]


class ApkgValidator:
    """Cheap checks that decide whether a package is worth parsing."""

    def __init__(
        self,
        *,
        extension: Optional[str] = None,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
        media_warning_threshold: Optional[int] = None,
    ) -> None:
        self.extension = (extension or settings.DECK_IMPORT_EXTENSION).lower()
        self.min_size = settings.DECK_IMPORT_MIN_BYTES if min_size is None else min_size
        self.max_size = settings.DECK_IMPORT_MAX_BYTES if max_size is None else max_size
        self.media_warning_threshold = (
            settings.DECK_IMPORT_MEDIA_WARNING_THRESHOLD
            if media_warning_threshold is None
            else media_warning_threshold
        )

    def validate(self, raw_bytes: bytes, filename: str) -> ValidationResult:
        """Run every check, stopping at the first group that produces errors."""
        result = ValidationResult()

        self._validate_basic_properties(raw_bytes, filename, result)
        if not result.valid:
            return result

        archive = self._validate_zip_format(raw_bytes, result)
        if archive is None:
            return result

        with archive:
            self._validate_package_content(archive, result)

        if result.warnings:
            logger.debug(f"Validation of {filename} produced warnings: {result.warnings}")
        return result

    def quick_validate(self, raw_bytes: bytes, filename: str) -> ValidationResult:
        """Validate name, size and ZIP container only."""
        result = ValidationResult()
        self._validate_basic_properties(raw_bytes, filename, result)
        if result.valid:
            archive = self._validate_zip_format(raw_bytes, result)
            if archive is not None:
                archive.close()
        return result

    def summary(self, result: ValidationResult) -> Dict[str, Any]:
        """User-facing digest of a validation result."""
        if not result.valid:
            return {
                "is_valid": False,
                "can_import": False,
                "message": "File validation failed.",
                "details": result.error_messages,
            }

        details: List[str] = []
        if result.metadata.get("estimated_cards"):
            details.append(f"Estimated {result.metadata['estimated_cards']} cards")
        if result.metadata.get("has_media"):
            details.append(f"Contains {result.metadata['media_file_count']} media files")
        if result.warnings:
            details.append(f"{len(result.warnings)} warnings")
        return {
            "is_valid": True,
            "can_import": True,
            "message": "File is valid and ready for import.",
            "details": details,
        }

    def _validate_basic_properties(
        self, raw_bytes: bytes, filename: str, result: ValidationResult
    ) -> None:
        size = len(raw_bytes)
        result.metadata["file_size"] = size

        if not (filename or "").lower().endswith(self.extension):
            result.errors.append(
                FormatError(
                    f"File must have {self.extension} extension. "
                    "Please export your deck from Anki as a package file.",
                    {"filename": filename, "expected_extension": self.extension},
                )
            )

        if size < self.min_size:
            result.errors.append(
                SizeError(
                    "File is too small to be a valid Anki package.",
                    {"size": size, "min_size": self.min_size},
                )
            )
        elif size > self.max_size:
            result.errors.append(
                SizeError(
                    f"File is too large. Maximum size is {self.max_size // (1024 * 1024)}MB.",
                    {"size": size, "max_size": self.max_size},
                )
            )

    def _validate_zip_format(
        self, raw_bytes: bytes, result: ValidationResult
    ) -> Optional[zipfile.ZipFile]:
        try:
            archive = open_archive(raw_bytes)
        except (zipfile.BadZipFile, OSError) as exc:
            result.errors.append(
                CorruptArchiveError(
                    "Invalid file format. Please upload a valid .apkg file exported from Anki.",
                    {"reason": str(exc)},
                )
            )
            return None

        entries = archive.infolist()
        result.metadata["entry_count"] = len(entries)
        if not entries:
            archive.close()
            result.errors.append(CorruptArchiveError("Archive is empty or corrupted."))
            return None

        unreadable = [info.filename for info in entries if not self._entry_readable(archive, info)]
        if len(unreadable) == len(entries):
            archive.close()
            result.errors.append(
                CorruptArchiveError(
                    "Archive appears to be completely corrupted.",
                    {"unreadable_entries": unreadable},
                )
            )
            return None
        if unreadable:
            result.warnings.append(f"{len(unreadable)} corrupted entries found in archive.")
            result.metadata["unreadable_entries"] = unreadable

        return archive

    @staticmethod
    def _entry_readable(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> bool:
        if not info.filename:
            return False
        try:
            # Opening parses the local header and checks it against the directory.
            with archive.open(info) as handle:
                handle.read(1)
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError, EOFError):
            return False
        return True

    def _validate_package_content(
        self, archive: zipfile.ZipFile, result: ValidationResult
    ) -> None:
        names = set(archive.namelist())

        if COLLECTION_ENTRY not in names:
            result.errors.append(
                MissingRequiredFileError(
                    f"Missing required Anki files: {COLLECTION_ENTRY}. "
                    "Please ensure you exported a complete deck from Anki.",
                    {"entry": COLLECTION_ENTRY},
                )
            )
            return

        self._validate_collection_database(archive, result)
        if not result.valid:
            return

        self._inspect_media(archive, names, result)

    def _validate_collection_database(
        self, archive: zipfile.ZipFile, result: ValidationResult
    ) -> None:
        info = archive.getinfo(COLLECTION_ENTRY)
        try:
            with archive.open(info) as handle:
                header = handle.read(len(SQLITE_MAGIC))
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError, EOFError) as exc:
            result.errors.append(
                CorruptArchiveError(
                    f"Could not read {COLLECTION_ENTRY}.",
                    {"entry": COLLECTION_ENTRY, "reason": str(exc)},
                )
            )
            return

        if header != SQLITE_MAGIC:
            result.errors.append(
                NotADatabaseError(
                    "Collection database is not a valid SQLite file.",
                    {"entry": COLLECTION_ENTRY},
                )
            )
            return

        collection_size = info.file_size
        result.metadata["collection_size"] = collection_size
        result.metadata["estimated_cards"] = collection_size // 1000
        if collection_size < SMALL_COLLECTION_BYTES:
            result.warnings.append("Collection database is very small. Deck may be empty.")

    def _inspect_media(
        self, archive: zipfile.ZipFile, names: set, result: ValidationResult
    ) -> None:
        media_count = len(media_entry_names(archive))
        if MEDIA_INDEX_ENTRY in names:
            try:
                index = json.loads(archive.read(MEDIA_INDEX_ENTRY) or b"{}")
                if isinstance(index, dict):
                    media_count = max(media_count, len(index))
            except (ValueError, zipfile.BadZipFile, OSError):
                result.warnings.append("Media index could not be read; media will be skipped.")

        result.metadata["has_media"] = media_count > 0
        result.metadata["media_file_count"] = media_count
        if media_count > self.media_warning_threshold:
            result.warnings.append(
                f"Large number of media files ({media_count}). Import may take longer."
            )
