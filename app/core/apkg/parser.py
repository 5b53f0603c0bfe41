"""Parser for Anki ``.apkg`` packages.

The collection database is copied into a private scratch file so SQLAlchemy can
query it; ``scratch_database`` owns that file and removes it on every exit path.
"""
from __future__ import annotations

import hashlib
import html
import json
import os
import re
import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Union

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import NullPool

from app.config import settings
from app.core.apkg.records import (
    CardRecord,
    DeckInfo,
    ForeignDeck,
    MediaRecord,
    NoteRecord,
    ParseResult,
    SchedulingStats,
)
from app.core.apkg.validator import (
    COLLECTION_ENTRY,
    MEDIA_INDEX_ENTRY,
    media_entry_names,
    open_archive,
)

FIELD_SEPARATOR = "\x1f"

_LINE_BREAK_RE = re.compile(r"<br\s*/?>|</p\s*>|</div\s*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")


def strip_markup(value: Optional[str]) -> str:
    """Reduce an HTML field to plain text, keeping line breaks."""
    if not value:
        return ""
    value = _LINE_BREAK_RE.sub("\n", value)
    value = _TAG_RE.sub("", value)
    value = html.unescape(value).replace("\xa0", " ")
    return value.strip()


@contextmanager
def scratch_database(
    source: BinaryIO, directory: Optional[Union[str, Path]] = None
) -> Iterator[Engine]:
    """Materialise ``source`` as a temporary SQLite file and yield an engine on it."""
    fd, path = tempfile.mkstemp(prefix="apkg_", suffix=".db", dir=directory)
    engine: Optional[Engine] = None
    try:
        with os.fdopen(fd, "wb") as handle:
            shutil.copyfileobj(source, handle)
        engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
        yield engine
    finally:
        if engine is not None:
            engine.dispose()
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        logger.debug(f"Released scratch database {path}")


class ApkgParser:
    """Extract notes, cards, media and deck metadata from a package."""

    def __init__(self, scratch_dir: Optional[Union[str, Path]] = None) -> None:
        self.scratch_dir = scratch_dir if scratch_dir is not None else settings.DECK_IMPORT_SCRATCH_DIR

    def parse(self, raw_bytes: bytes, filename: str) -> ParseResult:
        """Parse a package; failures are reported on the result, never raised."""
        result = ParseResult()

        try:
            with open_archive(raw_bytes) as archive:
                if COLLECTION_ENTRY not in archive.namelist():
                    result.errors.append("No collection database found in package")
                    return result

                with archive.open(COLLECTION_ENTRY) as source, scratch_database(
                    source, self.scratch_dir
                ) as engine:
                    with engine.connect() as connection:
                        result.deck_info = self._parse_deck_info(connection, filename, result)
                        result.notes = self._parse_notes(connection, result)
                        result.cards = self._parse_cards(connection, result.notes, result)

                result.media = self._parse_media(archive, result)

            if not result.notes:
                result.errors.append("No readable notes found in collection")
                return result

            result.metadata = self._generate_metadata(raw_bytes, result, filename)
            result.success = True
        except Exception as exc:
            logger.error(f"Parsing {filename} failed: {exc}")
            result.errors.append(f"Parsing failed: {exc}")
            result.success = False

        return result

    def _parse_deck_info(
        self, connection: Connection, filename: str, result: ParseResult
    ) -> DeckInfo:
        row = connection.execute(text("SELECT * FROM col LIMIT 1")).mappings().first()
        if row is None:
            raise ValueError("No collection data found")

        config = self._decode_json_blob(row.get("conf"), "collection config", result)
        decks = self._decode_json_blob(row.get("decks"), "deck map", result)

        deck_info = DeckInfo(
            original_filename=filename,
            version=str(row.get("ver")) if row.get("ver") is not None else "unknown",
            created_at=row.get("crt"),
            modified_at=row.get("mod"),
            config=config,
        )
        for deck_id, deck_data in decks.items():
            if not isinstance(deck_data, dict):
                result.warnings.append(f"Ignoring malformed deck entry {deck_id}")
                continue
            deck_info.decks.append(
                ForeignDeck(
                    id=str(deck_id),
                    name=str(deck_data.get("name") or "Unknown Deck"),
                    description=str(deck_data.get("desc") or ""),
                )
            )
        return deck_info

    @staticmethod
    def _decode_json_blob(raw: Any, label: str, result: ParseResult) -> Dict[str, Any]:
        if raw in (None, ""):
            return {}
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as exc:
            result.warnings.append(f"Could not decode {label}: {exc}")
            return {}
        if not isinstance(decoded, dict):
            result.warnings.append(f"Unexpected {label} structure; using defaults")
            return {}
        return decoded

    def _parse_notes(self, connection: Connection, result: ParseResult) -> List[NoteRecord]:
        rows = connection.execute(
            text("SELECT id, mid, mod, tags, flds, sfld, csum FROM notes ORDER BY id")
        ).mappings()

        notes: List[NoteRecord] = []
        for row in rows:
            try:
                tags = row["tags"] or ""
                notes.append(
                    NoteRecord(
                        id=int(row["id"]),
                        model_id=int(row["mid"]),
                        modified_at=int(row["mod"] or 0),
                        tags=tuple(dict.fromkeys(tags.split())),
                        fields=tuple(row["flds"].split(FIELD_SEPARATOR)) if row["flds"] else (),
                        sort_field="" if row["sfld"] is None else str(row["sfld"]),
                        checksum=int(row["csum"]) if row["csum"] is not None else None,
                    )
                )
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning(f"Skipping malformed note {row.get('id')}: {exc}")
                result.warnings.append(f"Skipped malformed note {row.get('id')}: {exc}")
        return notes

    def _parse_cards(
        self, connection: Connection, notes: List[NoteRecord], result: ParseResult
    ) -> List[CardRecord]:
        rows = connection.execute(
            text(
                "SELECT id, nid, did, ord, type, queue, due, ivl, factor, reps, lapses "
                "FROM cards ORDER BY id"
            )
        ).mappings()
        note_map = {note.id: note for note in notes}

        cards: List[CardRecord] = []
        for row in rows:
            try:
                note = note_map.get(int(row["nid"]))
                if note is None:
                    result.warnings.append(
                        f"Card {row['id']} references missing note {row['nid']}"
                    )
                front, back = self._derive_sides(note)
                cards.append(
                    CardRecord(
                        id=int(row["id"]),
                        note_id=int(row["nid"]),
                        source_deck_id=int(row["did"]),
                        ordinal=int(row["ord"] or 0),
                        scheduling=SchedulingStats(
                            type=int(row["type"] or 0),
                            queue=int(row["queue"] or 0),
                            due=int(row["due"] or 0),
                            interval=int(row["ivl"] or 0),
                            ease_factor=int(row["factor"] or 0),
                            review_count=int(row["reps"] or 0),
                            lapse_count=int(row["lapses"] or 0),
                        ),
                        front=front,
                        back=back,
                        note=note,
                    )
                )
            except (TypeError, ValueError) as exc:
                logger.warning(f"Skipping malformed card {row.get('id')}: {exc}")
                result.warnings.append(f"Skipped malformed card {row.get('id')}: {exc}")
        return cards

    @staticmethod
    def _derive_sides(note: Optional[NoteRecord]) -> tuple[str, str]:
        if note is None or not note.fields:
            return "", ""
        if len(note.fields) >= 2:
            return strip_markup(note.fields[0]), strip_markup(note.fields[1])
        return strip_markup(note.fields[0]), strip_markup(note.sort_field)

    def _parse_media(self, archive: zipfile.ZipFile, result: ParseResult) -> List[MediaRecord]:
        media: List[MediaRecord] = []
        try:
            names = set(archive.namelist())
            if MEDIA_INDEX_ENTRY in names:
                index = self._decode_json_blob(
                    archive.read(MEDIA_INDEX_ENTRY).decode("utf-8"), "media index", result
                )
                for key, media_name in index.items():
                    media.append(
                        MediaRecord(
                            key=str(key),
                            filename=str(media_name),
                            exists_in_archive=str(key) in names,
                        )
                    )

            known = {record.key for record in media}
            for entry_name in media_entry_names(archive):
                if entry_name not in known:
                    media.append(
                        MediaRecord(
                            key=entry_name,
                            filename=f"media_{entry_name}",
                            exists_in_archive=True,
                            size=archive.getinfo(entry_name).file_size,
                        )
                    )
        except (zipfile.BadZipFile, OSError, UnicodeDecodeError) as exc:
            result.warnings.append(f"Media could not be read: {exc}")
        return media

    @staticmethod
    def _generate_metadata(raw_bytes: bytes, result: ParseResult, filename: str) -> Dict[str, Any]:
        deck_info = result.deck_info
        metadata: Dict[str, Any] = {
            "original_filename": filename,
            "file_size": len(raw_bytes),
            "file_checksum": hashlib.sha256(raw_bytes).hexdigest(),
            "parsed_at": datetime.now(timezone.utc).isoformat(),
            "card_count": len(result.cards),
            "note_count": len(result.notes),
            "media_file_count": len(result.media),
            "has_media": bool(result.media),
            "deck_count": len(deck_info.decks) if deck_info else 1,
            "anki_version": deck_info.version if deck_info else "unknown",
        }

        if result.cards:
            average_interval = sum(card.scheduling.interval for card in result.cards) / len(result.cards)
            metadata["average_interval"] = average_interval
            if average_interval < 1:
                metadata["estimated_difficulty"] = "beginner"
            elif average_interval < 30:
                metadata["estimated_difficulty"] = "intermediate"
            else:
                metadata["estimated_difficulty"] = "advanced"

        return metadata
