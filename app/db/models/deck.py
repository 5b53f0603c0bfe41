"""Deck and card models populated by package imports."""
from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.db.models.deck_import import utcnow
from app.db.types import StringList


class Deck(Base):
    """A study deck; imported decks carry the foreign package metadata."""

    __tablename__ = "decks"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Anki-specific fields
    anki_metadata = Column(JSON, nullable=True)
    import_status = Column(String(20), nullable=True, index=True)
    file_checksum = Column(String(64), nullable=True, unique=True, index=True)
    anki_import_id = Column(
        Integer, ForeignKey("deck_imports.id", ondelete="SET NULL"), nullable=True, index=True
    )
    import_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    anki_import = relationship("DeckImport", back_populates="decks")
    cards = relationship("Card", back_populates="deck", cascade="all, delete-orphan")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Deck id={self.id!r} name={self.name!r} import_status={self.import_status!r}>"


class Card(Base):
    """A question/answer pair belonging to a deck."""

    __tablename__ = "cards"

    id = Column(Integer, primary_key=True)
    deck_id = Column(Integer, ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True)
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False)
    difficulty_level = Column(String(20), nullable=False, default="beginner")
    difficulty_score = Column(Float, nullable=False, default=1.0)
    topic_category = Column(String(50), nullable=True)
    tags = Column(Text, nullable=True)  # space separated, as in the source package

    # Provenance from the source package
    anki_note_id = Column(String(50), nullable=True, index=True)
    anki_model = Column(String(100), nullable=True, index=True)
    anki_fields = Column(StringList, nullable=True)
    anki_tags = Column(StringList, nullable=True)
    media_files = Column(StringList, nullable=True)
    import_date = Column(DateTime(timezone=True), nullable=True)

    deck = relationship("Deck", back_populates="cards")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Card id={self.id!r} deck_id={self.deck_id!r} front={self.front[:20]!r}>"
