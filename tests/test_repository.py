from __future__ import annotations

from datetime import timezone
from pathlib import Path

import pytest
from sqlalchemy import text

from hoctap.database import Database
from hoctap.repository import (
    DEFAULT_USERS,
    ConflictError,
    NotFoundError,
    QueryError,
    UserRepository,
)


@pytest.fixture()
def database(tmp_path: Path):
    db = Database(f"sqlite:///{tmp_path / 'hoctap.sqlite3'}")
    db.initialize()
    yield db
    db.shutdown()


@pytest.fixture()
def repository(database: Database) -> UserRepository:
    return UserRepository(database)


def test_create_user_returns_stored_row(repository: UserRepository) -> None:
    user = repository.create_user("Ann", "ann@x.com")

    assert user.id > 0
    assert user.name == "Ann"
    assert user.email == "ann@x.com"
    assert user.created_at == user.updated_at
    assert user.created_at.tzinfo == timezone.utc


def test_create_user_strips_whitespace(repository: UserRepository) -> None:
    user = repository.create_user("  Ann  ", " ann@x.com ")

    assert user.name == "Ann"
    assert user.email == "ann@x.com"


@pytest.mark.parametrize("name,email", [("", "a@x.com"), ("Ann", ""), ("   ", "a@x.com")])
def test_create_user_requires_name_and_email(repository: UserRepository, name: str, email: str) -> None:
    with pytest.raises(ValueError):
        repository.create_user(name, email)
    assert repository.count_users() == 0


def test_duplicate_email_is_a_conflict(repository: UserRepository) -> None:
    repository.create_user("Ann", "ann@x.com")

    with pytest.raises(ConflictError) as excinfo:
        repository.create_user("Bob", "ann@x.com")

    assert excinfo.value.email == "ann@x.com"
    assert repository.count_users() == 1


def test_unique_constraint_violation_is_reported_as_conflict(
    repository: UserRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    repository.create_user("Ann", "ann@x.com")
    # Simulate a concurrent writer whose email check ran before the first insert committed.
    monkeypatch.setattr(repository, "_email_in_use", lambda *args, **kwargs: False)

    with pytest.raises(ConflictError):
        repository.create_user("Bob", "ann@x.com")
    assert repository.count_users() == 1


def test_unique_constraint_violation_on_update_is_reported_as_conflict(
    repository: UserRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    ann = repository.create_user("Ann", "ann@x.com")
    repository.create_user("Bob", "bob@x.com")
    monkeypatch.setattr(repository, "_email_in_use", lambda *args, **kwargs: False)

    with pytest.raises(ConflictError) as excinfo:
        repository.update_user(ann.id, "Ann", "bob@x.com")

    assert excinfo.value.email == "bob@x.com"
    assert repository.get_user(ann.id) == ann


def test_get_user_matches_create_result(repository: UserRepository) -> None:
    created = repository.create_user("Ann", "ann@x.com")

    assert repository.get_user(created.id) == created


def test_get_missing_user_raises_not_found(repository: UserRepository) -> None:
    with pytest.raises(NotFoundError) as excinfo:
        repository.get_user(42)
    assert excinfo.value.user_id == 42


def test_update_missing_user_raises_not_found_regardless_of_payload(repository: UserRepository) -> None:
    with pytest.raises(NotFoundError):
        repository.update_user(99, "Valid", "valid@x.com")
    with pytest.raises(NotFoundError):
        repository.update_user(99, "", "")


def test_update_name_only_keeps_email_and_advances_timestamp(repository: UserRepository) -> None:
    created = repository.create_user("Ann", "ann@x.com")

    updated = repository.update_user(created.id, "Ann K.", "ann@x.com")

    assert updated.name == "Ann K."
    assert updated.email == "ann@x.com"
    assert updated.created_at == created.created_at
    assert updated.updated_at > created.updated_at
    assert repository.get_user(created.id) == updated


def test_consecutive_updates_strictly_increase_updated_at(repository: UserRepository) -> None:
    user = repository.create_user("Ann", "ann@x.com")
    previous = user.updated_at
    for index in range(5):
        user = repository.update_user(user.id, f"Ann {index}", "ann@x.com")
        assert user.updated_at > previous
        previous = user.updated_at


def test_update_to_email_of_other_user_is_a_conflict(repository: UserRepository) -> None:
    ann = repository.create_user("Ann", "ann@x.com")
    repository.create_user("Bob", "bob@x.com")

    with pytest.raises(ConflictError):
        repository.update_user(ann.id, "Ann", "bob@x.com")

    assert repository.get_user(ann.id).email == "ann@x.com"


def test_update_requires_name_and_email(repository: UserRepository) -> None:
    ann = repository.create_user("Ann", "ann@x.com")

    with pytest.raises(ValueError):
        repository.update_user(ann.id, "Ann", " ")


def test_delete_then_get_raises_not_found(repository: UserRepository) -> None:
    user = repository.create_user("Ann", "ann@x.com")

    repository.delete_user(user.id)

    with pytest.raises(NotFoundError):
        repository.get_user(user.id)
    with pytest.raises(NotFoundError):
        repository.delete_user(user.id)


def test_count_matches_listing_and_listing_is_newest_first(repository: UserRepository) -> None:
    first = repository.create_user("Ann", "ann@x.com")
    second = repository.create_user("Bob", "bob@x.com")
    third = repository.create_user("Cid", "cid@x.com")

    users = repository.list_users()

    assert repository.count_users() == len(users) == 3
    assert [user.id for user in users] == [third.id, second.id, first.id]


def test_list_users_empty_table(repository: UserRepository) -> None:
    assert repository.list_users() == []
    assert repository.count_users() == 0


def test_seed_defaults_is_idempotent(repository: UserRepository) -> None:
    repository.seed_defaults()
    repository.seed_defaults()

    users = repository.list_users()
    assert repository.count_users() == 3
    assert sorted(user.email for user in users) == sorted(email for _, email in DEFAULT_USERS)


def test_seed_defaults_skips_non_empty_table(repository: UserRepository) -> None:
    repository.create_user("Ann", "ann@x.com")

    repository.seed_defaults()

    assert repository.count_users() == 1


def test_seed_defaults_stops_at_first_failure(
    repository: UserRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = repository.create_user
    calls = []

    def flaky_create(name: str, email: str):
        calls.append(email)
        if len(calls) == 2:
            raise QueryError("disk full")
        return original(name, email)

    monkeypatch.setattr(repository, "create_user", flaky_create)

    with pytest.raises(QueryError):
        repository.seed_defaults()

    assert len(calls) == 2
    assert repository.count_users() == 1


def test_storage_failures_are_wrapped_in_query_error(database: Database, repository: UserRepository) -> None:
    with database.engine.begin() as conn:
        conn.execute(text("DROP TABLE users"))

    with pytest.raises(QueryError):
        repository.list_users()
    with pytest.raises(QueryError):
        repository.count_users()
    with pytest.raises(QueryError):
        repository.get_user(1)
    with pytest.raises(QueryError):
        repository.create_user("Ann", "ann@x.com")


def test_repository_requires_initialised_database(tmp_path: Path) -> None:
    repository = UserRepository(Database(f"sqlite:///{tmp_path / 'unused.sqlite3'}"))

    with pytest.raises(RuntimeError):
        repository.list_users()


def test_user_lifecycle_scenario(repository: UserRepository) -> None:
    ann = repository.create_user("Ann", "ann@x.com")
    assert ann.id == 1

    with pytest.raises(ConflictError):
        repository.create_user("Bob", "ann@x.com")

    updated = repository.update_user(1, "Ann K.", "ann2@x.com")
    assert updated.email == "ann2@x.com"
    assert updated.updated_at > ann.updated_at

    repository.delete_user(1)

    with pytest.raises(NotFoundError):
        repository.get_user(1)
