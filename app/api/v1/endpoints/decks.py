"""Deck browsing endpoints for imported decks."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_deck_service
from app.schemas.deck_import import DeckCardRead, DeckRead
from app.services.decks import DeckNotFoundError, DeckService
from app.utils.exceptions import handle_deck_import_error

router = APIRouter(prefix="/decks", tags=["decks"])


@router.get("/{deck_id}", response_model=DeckRead)
def get_deck(deck_id: int, service: DeckService = Depends(get_deck_service)) -> DeckRead:
    """Retrieve a deck with its import metadata."""

    try:
        details = service.get_deck_details(deck_id)
    except DeckNotFoundError as exc:
        raise handle_deck_import_error(exc) from exc
    return DeckRead(**details)


@router.get("/{deck_id}/cards", response_model=List[DeckCardRead], response_model_exclude_none=True)
def list_deck_cards(
    deck_id: int,
    include_provenance: bool = Query(default=False, description="Include source package data"),
    service: DeckService = Depends(get_deck_service),
) -> List[DeckCardRead]:
    """List the cards of a deck."""

    try:
        cards = service.list_cards(deck_id, include_provenance=include_provenance)
    except DeckNotFoundError as exc:
        raise handle_deck_import_error(exc) from exc
    return [DeckCardRead(**card) for card in cards]
