"""Import session tracking: state machine, counters, log and duplicate checks."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.deck import Deck
from app.db.models.deck_import import DeckImport, ImportStatus
from app.utils.exceptions import (
    ImportErrorKind,
    ImportSessionNotFoundError,
    ImportStateError,
)

WARNING_KIND = "warning"


@dataclass
class DuplicateCheck:
    """Result of looking for earlier imports of the same package."""

    has_duplicate_filename: bool = False
    has_duplicate_checksum: bool = False
    duplicate_import: Optional[DeckImport] = None
    duplicate_deck: Optional[Deck] = None


def _log_entry(kind: str, message: str, details: Any = None) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "kind": kind,
        "message": message,
        "details": details if details is not None else [],
    }


def _elapsed_seconds(started: datetime) -> float:
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - started).total_seconds()


class ImportTracker:
    """Persist the lifecycle of import sessions.

    ``pending`` -> ``processing`` -> ``completed`` | ``error``. Terminal states
    reject every further transition with :class:`ImportStateError`.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_session(self, filename: str, file_size: int) -> DeckImport:
        session = DeckImport(
            filename=filename,
            file_size=file_size,
            status=ImportStatus.PENDING,
            cards_imported=0,
            cards_failed=0,
            error_log=[],
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"Created import session {session.id} for {filename} ({file_size} bytes)")
        return session

    def get_session(self, import_id: int) -> DeckImport:
        session = self.db.get(DeckImport, import_id)
        if session is None:
            raise ImportSessionNotFoundError(
                f"Import session {import_id} not found", {"import_id": import_id}
            )
        return session

    def start_processing(self, import_id: int) -> DeckImport:
        session = self._require_status(import_id, (ImportStatus.PENDING, ImportStatus.PROCESSING), "start")
        session.status = ImportStatus.PROCESSING
        self.db.commit()
        logger.info(f"Import session {import_id} is processing")
        return session

    def update_progress(self, import_id: int, cards_imported: int, cards_failed: int = 0) -> DeckImport:
        """Overwrite counters with cumulative totals."""
        session = self._require_status(import_id, (ImportStatus.PROCESSING,), "update progress of")
        session.cards_imported = cards_imported
        session.cards_failed = cards_failed
        self.db.commit()
        logger.debug(f"Import session {import_id} progress: {cards_imported} imported, {cards_failed} failed")
        return session

    def add_warning(self, import_id: int, message: str) -> None:
        """Append a warning; never raises."""
        self.add_warnings(import_id, [message])

    def add_warnings(self, import_id: int, messages: Iterable[str]) -> None:
        """Append several warnings in a single write; never raises."""
        entries = [_log_entry(WARNING_KIND, message) for message in messages]
        if not entries:
            return
        try:
            session = self.get_session(import_id)
            session.error_log = [*(session.error_log or []), *entries]
            self.db.commit()
        except (SQLAlchemyError, ImportSessionNotFoundError) as exc:
            self.db.rollback()
            logger.error(f"Failed to add warning to import session {import_id}: {exc}")

    def complete_import(
        self,
        import_id: int,
        cards_imported: int = 0,
        cards_failed: int = 0,
        warnings: Iterable[str] = (),
    ) -> DeckImport:
        session = self._require_status(import_id, (ImportStatus.PROCESSING,), "complete")
        session.status = ImportStatus.COMPLETED
        session.cards_imported = cards_imported
        session.cards_failed = cards_failed
        session.import_duration = _elapsed_seconds(session.created_at)
        session.error_log = [
            *(session.error_log or []),
            *(_log_entry(WARNING_KIND, warning) for warning in warnings),
        ]
        self.db.commit()
        logger.info(
            f"Import session {import_id} completed: {cards_imported} imported, "
            f"{cards_failed} failed in {session.import_duration:.3f}s"
        )
        return session

    def fail_import(
        self,
        import_id: int,
        message: str,
        details: Any = None,
        kind: ImportErrorKind = ImportErrorKind.PROCESSING_ERROR,
    ) -> DeckImport:
        session = self._require_status(
            import_id, (ImportStatus.PENDING, ImportStatus.PROCESSING), "fail"
        )
        session.status = ImportStatus.ERROR
        session.import_duration = _elapsed_seconds(session.created_at)
        # Most recent failure first
        session.error_log = [_log_entry(kind.value, message, details), *(session.error_log or [])]
        self.db.commit()
        logger.error(f"Import session {import_id} failed ({kind.value}): {message}")
        return session

    def check_for_duplicates(self, filename: str, checksum: str) -> DuplicateCheck:
        """Filename matches are advisory; checksum matches block the import."""
        duplicate_import = self.db.scalars(
            select(DeckImport)
            .where(DeckImport.filename == filename, DeckImport.status == ImportStatus.COMPLETED)
            .order_by(DeckImport.created_at.desc())
        ).first()
        duplicate_deck = None
        if checksum:
            duplicate_deck = self.db.scalars(
                select(Deck).where(Deck.file_checksum == checksum)
            ).first()

        result = DuplicateCheck(
            has_duplicate_filename=duplicate_import is not None,
            has_duplicate_checksum=duplicate_deck is not None,
            duplicate_import=duplicate_import,
            duplicate_deck=duplicate_deck,
        )
        if result.has_duplicate_filename:
            logger.info(f"{filename} was imported before as session {duplicate_import.id}")
        return result

    def get_import_history(self, status: Optional[str] = None, limit: Optional[int] = None) -> List[DeckImport]:
        query = select(DeckImport).order_by(DeckImport.created_at.desc(), DeckImport.id.desc())
        if status:
            query = query.where(DeckImport.status == status)
        if limit:
            query = query.limit(limit)
        return list(self.db.scalars(query))

    def get_import_details(self, import_id: int) -> Dict[str, Any]:
        session = self.get_session(import_id)
        deck = self.db.scalars(select(Deck).where(Deck.anki_import_id == import_id)).first()
        log = session.error_log or []
        return {
            "id": session.id,
            "filename": session.filename,
            "status": session.status,
            "deck_id": deck.id if deck else None,
            "deck_name": deck.name if deck else None,
            "processing_time": session.import_duration,
            "created_at": session.created_at,
            "import_stats": {
                "cards_imported": session.cards_imported,
                "cards_skipped": session.cards_failed,
                "errors": [entry for entry in log if entry.get("kind") != WARNING_KIND],
                "warnings": [entry for entry in log if entry.get("kind") == WARNING_KIND],
            },
        }

    def cleanup_old_sessions(self, days_old: int = 30) -> int:
        """Delete terminal sessions created more than ``days_old`` days ago."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        stale_ids = self.db.scalars(
            select(DeckImport.id).where(
                DeckImport.created_at < cutoff, DeckImport.status.in_(ImportStatus.TERMINAL)
            )
        ).all()
        if not stale_ids:
            return 0

        # Decks outlive their import session; drop the link before the row goes.
        self.db.execute(
            update(Deck).where(Deck.anki_import_id.in_(stale_ids)).values(anki_import_id=None)
        )
        deleted = (
            self.db.query(DeckImport)
            .filter(DeckImport.id.in_(stale_ids))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def get_import_statistics(self) -> Dict[str, Any]:
        row = self.db.execute(
            select(
                func.count(DeckImport.id),
                func.count(case((DeckImport.status == ImportStatus.COMPLETED, 1))),
                func.count(case((DeckImport.status == ImportStatus.ERROR, 1))),
                func.count(case((DeckImport.status == ImportStatus.PROCESSING, 1))),
                func.coalesce(func.sum(DeckImport.cards_imported), 0),
                func.coalesce(func.sum(DeckImport.cards_failed), 0),
                func.avg(DeckImport.import_duration),
                func.coalesce(func.sum(DeckImport.file_size), 0),
            )
        ).one()
        total, successful, failed, processing, imported, skipped, avg_duration, total_size = row
        return {
            "total_imports": total,
            "successful_imports": successful,
            "failed_imports": failed,
            "processing_imports": processing,
            "total_cards_imported": int(imported),
            "total_cards_failed": int(skipped),
            "average_duration": float(avg_duration or 0.0),
            "total_file_size": int(total_size),
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
        }

    def _require_status(self, import_id: int, allowed: Iterable[str], action: str) -> DeckImport:
        session = self.get_session(import_id)
        allowed = tuple(allowed)
        if session.status not in allowed:
            raise ImportStateError(
                f"Cannot {action} import session {import_id} in status {session.status!r}",
                {"import_id": import_id, "status": session.status, "allowed": list(allowed)},
            )
        return session
