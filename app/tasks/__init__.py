"""Celery tasks package."""

from app.tasks import deck_imports

__all__ = ["deck_imports"]
