"""Import session tracking model."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportStatus:
    """Lifecycle states of an import session."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    ALL = (PENDING, PROCESSING, COMPLETED, ERROR)
    TERMINAL = (COMPLETED, ERROR)


class DeckImport(Base):
    """One uploaded package and the progress of turning it into a deck."""

    __tablename__ = "deck_imports"

    id = Column(Integer, primary_key=True)
    filename = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ImportStatus.PENDING)
    cards_imported = Column(Integer, nullable=False, default=0)
    cards_failed = Column(Integer, nullable=False, default=0)
    import_duration = Column(Float, nullable=True)  # seconds
    error_log = Column(JSON, nullable=False, default=list)

    # Python-side timestamps keep sub-second precision for durations on SQLite
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    decks = relationship("Deck", back_populates="anki_import", passive_deletes=True)

    __table_args__ = (Index("ix_deck_imports_status_created_at", "status", "created_at"),)

    @property
    def is_terminal(self) -> bool:
        return self.status in ImportStatus.TERMINAL

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<DeckImport id={self.id!r} filename={self.filename!r} status={self.status!r}>"
