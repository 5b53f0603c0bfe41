"""Deck import orchestration.

Runs validator -> parser -> converter -> duplicate check -> persistence for one
upload, recording every step on an import session.

Cards are committed in chunks of ``batch_size``. Each chunk commit is visible to
other readers, but the owning deck keeps ``import_status='processing'`` until
the last chunk lands, and fatal failures delete the deck (cascading to its
cards), so no partial deck survives a failed import.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.apkg import ApkgParser, ApkgValidator, convert_to_internal_format
from app.core.apkg.records import ConvertedCard
from app.db.models.deck import Card, Deck
from app.db.models.deck_import import ImportStatus
from app.services.import_tracker import ImportTracker
from app.utils.exceptions import (
    DeckImportException,
    DuplicateImportError,
    EmptyDeckError,
    ProcessingError,
)


@dataclass
class ImportOutcome:
    """Summary returned to callers after a successful import or validation."""

    import_id: int
    deck_id: Optional[int]
    cards_imported: int
    cards_skipped: int
    processing_time: float
    warnings: List[str] = field(default_factory=list)
    validate_only: bool = False


class DeckImportService:
    """Import Anki packages into decks and cards."""

    def __init__(
        self,
        db: Session,
        tracker: Optional[ImportTracker] = None,
        validator: Optional[ApkgValidator] = None,
        parser: Optional[ApkgParser] = None,
        batch_size: Optional[int] = None,
    ):
        self.db = db
        self.tracker = tracker or ImportTracker(db)
        self.validator = validator or ApkgValidator()
        self.parser = parser or ApkgParser()
        self.batch_size = batch_size or settings.DECK_IMPORT_BATCH_SIZE

    def import_deck(
        self,
        raw_bytes: bytes,
        filename: str,
        deck_name: Optional[str] = None,
        validate_only: bool = False,
    ) -> ImportOutcome:
        """Import one package.

        Raises the taxonomy error that ended the import; the session has
        already been failed when that happens.
        """
        started = datetime.now(timezone.utc)
        logger.info(f"Processing deck upload {filename} (validate only: {validate_only})")
        session = self.tracker.create_session(filename, len(raw_bytes))
        import_id = session.id

        validation = self.validator.validate(raw_bytes, filename)
        if not validation.valid:
            error = validation.first_error()
            self.tracker.fail_import(
                import_id, "File validation failed", validation.error_messages, kind=error.kind
            )
            error.details.setdefault("import_id", import_id)
            error.details.setdefault("errors", validation.error_messages)
            raise error

        self.tracker.start_processing(import_id)

        if validate_only:
            self.tracker.complete_import(import_id, 0, 0, warnings=validation.warnings)
            return ImportOutcome(
                import_id=import_id,
                deck_id=None,
                cards_imported=0,
                cards_skipped=0,
                processing_time=self._elapsed(started),
                warnings=list(validation.warnings),
                validate_only=True,
            )

        deck: Optional[Deck] = None
        try:
            parse_result = self.parser.parse(raw_bytes, filename)
            if not parse_result.success:
                raise ProcessingError(
                    "Parsing failed", {"import_id": import_id, "errors": parse_result.errors}
                )

            converted = convert_to_internal_format(parse_result, deck_name)
            warnings = [*validation.warnings, *parse_result.warnings]
            if converted.failures:
                self.tracker.add_warnings(import_id, [failure.message for failure in converted.failures])

            if not converted.cards:
                raise EmptyDeckError(
                    "No usable cards found in package",
                    {"import_id": import_id, "cards_failed": len(converted.failures)},
                )

            duplicates = self.tracker.check_for_duplicates(filename, converted.deck.checksum)
            if duplicates.has_duplicate_checksum:
                raise DuplicateImportError(
                    "Duplicate deck detected",
                    {
                        "import_id": import_id,
                        "deck_id": duplicates.duplicate_deck.id,
                        "errors": ["This deck has already been imported based on file content"],
                    },
                )
            if duplicates.has_duplicate_filename:
                warnings.append(
                    f"A file named {filename} was imported before (session {duplicates.duplicate_import.id})"
                )

            deck = self._create_deck(converted.deck, import_id)
            imported, failed = self._persist_cards(deck, converted.cards, import_id, len(converted.failures))

            deck.import_status = ImportStatus.COMPLETED
            self.db.commit()
            self.tracker.complete_import(import_id, imported, failed, warnings=warnings)
        except DeckImportException as exc:
            self._abort(import_id, deck, exc)
            raise
        except Exception as exc:
            logger.exception(f"Unexpected error importing {filename}")
            error = ProcessingError(str(exc) or exc.__class__.__name__, {"import_id": import_id})
            self._abort(import_id, deck, error)
            raise error from exc

        return ImportOutcome(
            import_id=import_id,
            deck_id=deck.id,
            cards_imported=imported,
            cards_skipped=failed,
            processing_time=self._elapsed(started),
            warnings=warnings,
        )

    def _create_deck(self, draft, import_id: int) -> Deck:
        deck = Deck(
            name=draft.name,
            description=draft.description,
            anki_metadata=draft.anki_metadata,
            import_status=ImportStatus.PROCESSING,
            file_checksum=draft.checksum,
            anki_import_id=import_id,
            import_date=datetime.now(timezone.utc),
        )
        self.db.add(deck)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # A concurrent import of the same bytes won the unique checksum race.
            self.db.rollback()
            raise DuplicateImportError(
                "Duplicate deck detected",
                {"import_id": import_id, "errors": ["Another import of this file finished first"]},
            ) from exc
        return deck

    def _persist_cards(
        self, deck: Deck, cards: List[ConvertedCard], import_id: int, already_failed: int
    ) -> tuple[int, int]:
        imported = 0
        failed = already_failed
        imported_at = datetime.now(timezone.utc)

        for start in range(0, len(cards), self.batch_size):
            chunk_warnings: List[str] = []
            for card in cards[start:start + self.batch_size]:
                try:
                    with self.db.begin_nested():
                        self.db.add(self._card_row(deck, card, imported_at))
                        self.db.flush()
                    imported += 1
                except SQLAlchemyError as exc:
                    logger.warning(f"Failed to import card from note {card.provenance.note_id}: {exc}")
                    chunk_warnings.append(f"Failed to import card: {exc}")
                    failed += 1
            self.db.commit()
            if chunk_warnings:
                self.tracker.add_warnings(import_id, chunk_warnings)
            self.tracker.update_progress(import_id, imported, failed)

        return imported, failed

    @staticmethod
    def _card_row(deck: Deck, card: ConvertedCard, imported_at: datetime) -> Card:
        provenance = card.provenance
        return Card(
            deck_id=deck.id,
            front=card.front,
            back=card.back,
            difficulty_level=card.difficulty,
            difficulty_score=card.difficulty_score,
            topic_category=card.topic,
            tags=" ".join(provenance.tags),
            anki_note_id=provenance.note_id,
            anki_model=provenance.model_id,
            anki_fields=list(provenance.raw_fields),
            anki_tags=list(provenance.tags),
            media_files=list(provenance.media_filenames),
            import_date=imported_at,
        )

    def _abort(self, import_id: int, deck: Optional[Deck], error: DeckImportException) -> None:
        self.db.rollback()
        if deck is not None and deck.id is not None:
            try:
                self.db.delete(deck)
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.error(f"Could not remove partial deck {deck.id}: {exc}")
        errors: Any = error.details.get("errors") or [error.message]
        self.tracker.fail_import(import_id, error.message, errors, kind=error.kind)

    @staticmethod
    def _elapsed(started: datetime) -> float:
        return (datetime.now(timezone.utc) - started).total_seconds()
