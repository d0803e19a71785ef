"""Application factory wiring the database, repository and HTTP routes together."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import anyio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import API_VERSION, register_api_routes
from .config import Settings, load_settings
from .database import Database, StorageError
from .repository import UserRepository
from .web import register_ui_routes

logger = logging.getLogger("hoctap.service")

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]


def seed_users(repository: UserRepository) -> bool:
    """Insert the sample users, logging instead of raising on failure."""

    logger.info("Seeding initial users...")
    try:
        repository.seed_defaults()
    except (StorageError, ValueError) as exc:
        logger.warning("Failed to seed users: %s", exc)
        return False
    logger.info("Initial users seeded successfully")
    return True


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    seed: Optional[bool] = None,
) -> FastAPI:
    """Create the ASGI application.

    The database is initialised when the application starts and shut down when
    it stops, so the same factory works under uvicorn and ``TestClient``.
    """

    if settings is None:
        settings = load_settings()
    if database is None:
        database = Database.from_settings(settings)
    if seed is None:
        seed = settings.seed_on_startup

    repository = UserRepository(database)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("Initializing database connection...")
        await anyio.to_thread.run_sync(database.initialize)
        if seed:
            await anyio.to_thread.run_sync(seed_users, repository)
        try:
            yield
        finally:
            logger.info("Shutting down server...")
            database.shutdown()

    app = FastAPI(
        title="HocTap API",
        description="CRUD API for users with a static dashboard",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.repository = repository

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    @app.middleware("http")
    async def log_request(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s %s %.2fms", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    register_api_routes(app, repository, database)
    register_ui_routes(app)

    return app


__all__ = ["create_app", "seed_users"]
