"""Celery tasks for deck import maintenance."""
from __future__ import annotations

from loguru import logger

from app.celery_app import celery_app
from app.config import settings
from app.db.session import SessionLocal
from app.services.import_tracker import ImportTracker


@celery_app.task(name="app.tasks.deck_imports.cleanup_old_import_sessions")
def cleanup_old_import_sessions(retention_days: int | None = None) -> dict[str, int]:
    """Remove finished import sessions older than the retention period."""

    days = retention_days if retention_days is not None else settings.DECK_IMPORT_RETENTION_DAYS
    db = SessionLocal()
    try:
        deleted = ImportTracker(db).cleanup_old_sessions(days_old=days)
        logger.info(f"Removed {deleted} import sessions older than {days} days")
        return {"deleted": deleted, "retention_days": days}
    except Exception as exc:  # pragma: no cover
        db.rollback()
        logger.error(f"Failed to cleanup old import sessions: {exc}")
        raise
    finally:
        db.close()
