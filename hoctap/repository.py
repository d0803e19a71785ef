"""Data access layer for the ``users`` table."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.engine import Connection, Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .database import Database, StorageError, users_table
from .models import User


class NotFoundError(StorageError):
    """Raised when no user exists for the requested id."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User with ID {user_id} not found")
        self.user_id = user_id


class ConflictError(StorageError):
    """Raised when an email address is already used by another user."""

    def __init__(self, email: str) -> None:
        super().__init__(f"User with email '{email}' already exists")
        self.email = email


class QueryError(StorageError):
    """Wraps unexpected failures reported by the database driver."""


DEFAULT_USERS: Sequence[Tuple[str, str]] = (
    ("John Doe", "john@example.com"),
    ("Jane Smith", "jane@example.com"),
    ("Alice Johnson", "alice@example.com"),
)

_RESOLUTION = timedelta(microseconds=1)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _to_storage(value: datetime) -> datetime:
    # Columns hold naive UTC values on every backend.
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_storage(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _require_text(field: str, value: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{field} must not be empty")
    return cleaned


class UserRepository:
    """CRUD operations over the shared database handle.

    Emails are checked for uniqueness before every write, and the storage
    level UNIQUE constraint is reported the same way when two writers race.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_users(self) -> List[User]:
        query = select(users_table).order_by(users_table.c.created_at.desc(), users_table.c.id.desc())
        try:
            with self._database.engine.connect() as conn:
                rows = conn.execute(query).fetchall()
        except SQLAlchemyError as exc:
            raise QueryError(f"Failed to query users: {exc}") from exc
        return [self._row_to_user(row) for row in rows]

    def get_user(self, user_id: int) -> User:
        query = select(users_table).where(users_table.c.id == user_id)
        try:
            with self._database.engine.connect() as conn:
                row = conn.execute(query).first()
        except SQLAlchemyError as exc:
            raise QueryError(f"Failed to get user: {exc}") from exc
        if row is None:
            raise NotFoundError(user_id)
        return self._row_to_user(row)

    def count_users(self) -> int:
        query = select(func.count()).select_from(users_table)
        try:
            with self._database.engine.connect() as conn:
                count = conn.execute(query).scalar_one()
        except SQLAlchemyError as exc:
            raise QueryError(f"Failed to count users: {exc}") from exc
        return int(count)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str) -> User:
        """Insert a new user and return it as stored."""

        name = _require_text("Name", name)
        email = _require_text("Email", email)
        now = _to_storage(_current_timestamp())

        try:
            with self._database.engine.begin() as conn:
                if self._email_in_use(conn, email):
                    raise ConflictError(email)
                result = conn.execute(
                    insert(users_table).values(name=name, email=email, created_at=now, updated_at=now)
                )
                user_id = int(result.inserted_primary_key[0])
        except IntegrityError as exc:
            raise ConflictError(email) from exc
        except SQLAlchemyError as exc:
            raise QueryError(f"Failed to create user: {exc}") from exc

        return self.get_user(user_id)

    def update_user(self, user_id: int, name: str, email: str) -> User:
        """Replace the name and email of an existing user."""

        current = self.get_user(user_id)
        name = _require_text("Name", name)
        email = _require_text("Email", email)

        updated_at = max(_current_timestamp(), current.updated_at + _RESOLUTION)

        try:
            with self._database.engine.begin() as conn:
                if self._email_in_use(conn, email, exclude_id=user_id):
                    raise ConflictError(email)
                conn.execute(
                    update(users_table)
                    .where(users_table.c.id == user_id)
                    .values(name=name, email=email, updated_at=_to_storage(updated_at))
                )
        except IntegrityError as exc:
            raise ConflictError(email) from exc
        except SQLAlchemyError as exc:
            raise QueryError(f"Failed to update user: {exc}") from exc

        return self.get_user(user_id)

    def delete_user(self, user_id: int) -> None:
        self.get_user(user_id)

        try:
            with self._database.engine.begin() as conn:
                result = conn.execute(delete(users_table).where(users_table.c.id == user_id))
                deleted = result.rowcount
        except SQLAlchemyError as exc:
            raise QueryError(f"Failed to delete user: {exc}") from exc

        if deleted == 0:
            raise NotFoundError(user_id)

    def seed_defaults(self) -> None:
        """Create the sample users when the table is empty.

        The first failure stops seeding and is raised to the caller.
        """

        if self.count_users() > 0:
            return
        for name, email in DEFAULT_USERS:
            self.create_user(name, email)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _email_in_use(self, conn: Connection, email: str, *, exclude_id: Optional[int] = None) -> bool:
        query = select(func.count()).select_from(users_table).where(users_table.c.email == email)
        if exclude_id is not None:
            query = query.where(users_table.c.id != exclude_id)
        return conn.execute(query).scalar_one() > 0

    def _row_to_user(self, row: Row) -> User:
        return User(
            id=int(row.id),
            name=str(row.name),
            email=str(row.email),
            created_at=_from_storage(row.created_at),
            updated_at=_from_storage(row.updated_at),
        )


__all__ = [
    "ConflictError",
    "DEFAULT_USERS",
    "NotFoundError",
    "QueryError",
    "UserRepository",
]
