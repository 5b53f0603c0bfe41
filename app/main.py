"""FastAPI application factory."""
from __future__ import annotations

from typing import Dict, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1 import api_router
from app.config import settings
from app.utils.exceptions import DeckImportException, handle_deck_import_error


tags_metadata: List[dict[str, str]] = [
    {"name": "deck-imports", "description": "Upload Anki packages and inspect import sessions."},
    {"name": "decks", "description": "Browse imported decks and their cards."},
    {"name": "health", "description": "Liveness check."},
]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Import pipeline for foreign flashcard decks.",
        version="0.1.0",
        openapi_tags=tags_metadata,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "message": "Validation failed"},
        )

    @app.exception_handler(DeckImportException)
    async def deck_import_exception_handler(
        request: Request, exc: DeckImportException
    ) -> JSONResponse:
        http_exc = handle_deck_import_error(exc)
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    @app.get("/health", tags=["health"])
    async def health() -> Dict[str, str]:
        return {"status": "healthy", "service": settings.PROJECT_NAME}

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
