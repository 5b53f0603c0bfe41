"""API router for version 1."""
from fastapi import APIRouter

from app.api.v1.endpoints import deck_imports, decks


api_router = APIRouter()
api_router.include_router(deck_imports.router)
api_router.include_router(decks.router)
