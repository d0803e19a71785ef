"""Core package for the HocTap user API."""

from __future__ import annotations

from typing import Any

from .database import Database, DatabaseConnectionError, SchemaError, StorageError
from .repository import ConflictError, NotFoundError, QueryError, UserRepository


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the API + dashboard application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "ConflictError",
    "Database",
    "DatabaseConnectionError",
    "NotFoundError",
    "QueryError",
    "SchemaError",
    "StorageError",
    "UserRepository",
    "create_app",
]
