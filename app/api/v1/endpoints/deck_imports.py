"""Anki package upload and import history endpoints."""
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from app.api.deps import get_deck_import_service, get_import_tracker
from app.db.models.deck_import import ImportStatus
from app.schemas.deck_import import (
    DeckImportDetail,
    DeckImportRead,
    DeckImportResponse,
    DeckImportStatistics,
    ImportStats,
)
from app.services.deck_import import DeckImportService
from app.services.import_tracker import ImportTracker
from app.utils.exceptions import DeckImportException, handle_deck_import_error


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/deck-imports", tags=["deck-imports"])


@router.post("", response_model=DeckImportResponse)
async def upload_deck(
    *,
    service: DeckImportService = Depends(get_deck_import_service),
    file: UploadFile = File(..., description="Anki .apkg package"),
    deck_name: Optional[str] = Form(None, description="Override deck name"),
    validate_only: bool = Form(False, description="Only validate the package"),
) -> DeckImportResponse:
    """Import an Anki package as a new deck.

    The upload is validated, parsed and converted; cards are stored in
    batches while the import session records progress. Every failure kind maps
    to its own status code (413 size, 409 duplicate, 422 format problems).
    """

    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded",
        )

    content = await file.read()
    logger.info(f"Processing deck upload {file.filename} ({len(content)} bytes)")

    try:
        # The import does blocking archive and database work.
        outcome = await run_in_threadpool(
            service.import_deck,
            content,
            file.filename,
            deck_name=deck_name or None,
            validate_only=validate_only,
        )
    except DeckImportException as exc:
        raise handle_deck_import_error(exc) from exc

    return DeckImportResponse(
        import_id=outcome.import_id,
        deck_id=outcome.deck_id,
        validate_only=outcome.validate_only,
        import_stats=ImportStats(
            cards_imported=outcome.cards_imported,
            cards_skipped=outcome.cards_skipped,
            processing_time=outcome.processing_time,
            warnings=outcome.warnings,
        ),
    )


@router.get("", response_model=List[DeckImportRead])
def list_imports(
    status_filter: Optional[str] = Query(
        default=None, alias="status", pattern="^(" + "|".join(ImportStatus.ALL) + ")$"
    ),
    limit: int = Query(default=50, ge=1, le=500),
    tracker: ImportTracker = Depends(get_import_tracker),
) -> List[DeckImportRead]:
    """Return the import history, most recent first."""

    sessions = tracker.get_import_history(status=status_filter, limit=limit)
    return [DeckImportRead.model_validate(session) for session in sessions]


@router.get("/statistics", response_model=DeckImportStatistics)
def import_statistics(
    tracker: ImportTracker = Depends(get_import_tracker),
) -> DeckImportStatistics:
    """Aggregate counters across all imports."""

    return DeckImportStatistics(**tracker.get_import_statistics())


@router.get("/{import_id}", response_model=DeckImportDetail)
def get_import(
    import_id: int,
    tracker: ImportTracker = Depends(get_import_tracker),
) -> DeckImportDetail:
    """Detailed status, counters and log of one import."""

    try:
        details = tracker.get_import_details(import_id)
    except DeckImportException as exc:
        raise handle_deck_import_error(exc) from exc
    return DeckImportDetail(**details)
