"""Connection provider and schema for the relational user store."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine, text
from sqlalchemy.dialects import mysql
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings

logger = logging.getLogger("hoctap.database")


class StorageError(Exception):
    """Base class for every failure raised by the data access layer."""


class DatabaseConnectionError(StorageError):
    """Raised when the database cannot be reached or rejects the handshake."""


class SchemaError(StorageError):
    """Raised when the ``users`` table cannot be created after connecting."""


# Microsecond precision keeps consecutive updates strictly ordered.
_Timestamp = DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("created_at", _Timestamp, nullable=False),
    Column("updated_at", _Timestamp, nullable=False),
    mysql_engine="InnoDB",
    mysql_charset="utf8mb4",
    mysql_collate="utf8mb4_unicode_ci",
    sqlite_autoincrement=True,
)


def build_database_url(settings: Settings) -> URL:
    """Return the SQLAlchemy URL described by ``settings``."""

    if settings.database_url:
        return make_url(settings.database_url)
    return URL.create(
        "mysql+pymysql",
        username=settings.db_user,
        password=settings.db_password or None,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        query={"charset": "utf8mb4"},
    )


def _is_memory_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


class Database:
    """Owns the pooled engine shared by every repository call."""

    def __init__(
        self,
        url: str | URL,
        *,
        max_open_connections: int = 25,
        max_idle_connections: int = 10,
        pool_timeout: float = 30.0,
    ) -> None:
        if max_open_connections < 1:
            raise ValueError("max_open_connections must be at least 1")
        if not 1 <= max_idle_connections <= max_open_connections:
            raise ValueError("max_idle_connections must be between 1 and max_open_connections")

        parsed = make_url(url)
        if _is_memory_sqlite(parsed):
            raise ValueError("In-memory SQLite databases cannot be shared by a connection pool")

        self._url = parsed
        self._max_open = max_open_connections
        self._max_idle = max_idle_connections
        self._pool_timeout = pool_timeout
        self._engine: Optional[Engine] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            build_database_url(settings),
            max_open_connections=settings.db_max_open_conns,
            max_idle_connections=settings.db_max_idle_conns,
        )

    @property
    def url(self) -> URL:
        return self._url

    @property
    def max_open_connections(self) -> int:
        return self._max_open

    @property
    def max_idle_connections(self) -> int:
        return self._max_idle

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database has not been initialised. Call initialize() first.")
        return self._engine

    def describe(self) -> str:
        """Return the connection URL with the password masked."""

        return self._url.render_as_string(hide_password=True)

    def initialize(self) -> None:
        """Connect, verify the connection and create the schema if needed."""

        if self._engine is not None:
            return

        engine = create_engine(
            self._url,
            pool_size=self._max_idle,
            max_overflow=self._max_open - self._max_idle,
            pool_timeout=self._pool_timeout,
            pool_pre_ping=True,
            connect_args=self._connect_args(),
        )

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            engine.dispose()
            raise DatabaseConnectionError(f"Failed to connect to {self.describe()}: {exc}") from exc

        logger.info("Connected to database %s", self.describe())

        try:
            metadata.create_all(engine, checkfirst=True)
        except SQLAlchemyError as exc:
            engine.dispose()
            raise SchemaError(f"Failed to create users table: {exc}") from exc

        logger.info("Database tables created/verified successfully")
        self._engine = engine

    def ping(self) -> None:
        """Run a round trip against the database, raising on failure."""

        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(str(exc)) from exc

    def shutdown(self) -> None:
        """Release every pooled connection. Safe to call more than once."""

        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("Database connection closed")

    def _connect_args(self) -> Dict[str, Any]:
        if self._url.get_backend_name() == "sqlite":
            # Pooled SQLite connections are handed between worker threads.
            return {"check_same_thread": False}
        return {}


__all__ = [
    "Database",
    "DatabaseConnectionError",
    "SchemaError",
    "StorageError",
    "build_database_url",
    "metadata",
    "users_table",
]
