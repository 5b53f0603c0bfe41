"""Shared API dependencies."""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.deck_import import DeckImportService
from app.services.decks import DeckService
from app.services.import_tracker import ImportTracker


def get_db() -> Session:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_import_tracker(db: Session = Depends(get_db)) -> ImportTracker:
    """Request-scoped tracker bound to the request's session."""

    return ImportTracker(db)


def get_deck_import_service(
    db: Session = Depends(get_db),
    tracker: ImportTracker = Depends(get_import_tracker),
) -> DeckImportService:
    """Assemble the import pipeline with request-scoped dependencies."""

    return DeckImportService(db, tracker=tracker)


def get_deck_service(db: Session = Depends(get_db)) -> DeckService:
    return DeckService(db)
