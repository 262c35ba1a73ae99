"""Unit tests for auth/store.py UserStore -- identity and optimistic concurrency.

Covers:
- insert() populates id/created_at/version and the hash round-trips
- Duplicate email raises DuplicateKeyError("email")
- update() advances version; a stale copy gets EditConflictError and writes nothing
- update() of a row that does not exist is an edit conflict
"""

import pytest

from auth.models import User
from auth.store import UserStore
from core.errors import DuplicateKeyError, EditConflictError, NotFoundError


def _user(email: str = "store@example.com") -> User:
    user = User(name="Store User", email=email)
    user.password.set("pa55word!", cost=4)
    return user


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


def test_insert_populates_identity(users: UserStore) -> None:
    user = _user()
    users.insert(user)
    assert user.id >= 1
    assert user.version == 1
    assert user.created_at.endswith("+00:00")

    loaded = users.get_by_email("store@example.com")
    assert loaded.id == user.id
    assert loaded.activated is False
    assert loaded.password.matches("pa55word!")
    assert loaded.password.plaintext is None


def test_get_by_email_miss(users: UserStore) -> None:
    with pytest.raises(NotFoundError):
        users.get_by_email("ghost@example.com")


def test_get_by_id(users: UserStore) -> None:
    user = _user()
    users.insert(user)
    assert users.get_by_id(user.id).email == user.email
    with pytest.raises(NotFoundError):
        users.get_by_id(user.id + 100)
    with pytest.raises(NotFoundError):
        users.get_by_id(2**63)


def test_duplicate_email(users: UserStore) -> None:
    users.insert(_user())
    with pytest.raises(DuplicateKeyError) as info:
        users.insert(_user())
    assert info.value.field == "email"


def test_update_advances_version(users: UserStore) -> None:
    user = _user()
    users.insert(user)
    user.activated = True
    users.update(user)
    assert user.version == 2
    loaded = users.get_by_email(user.email)
    assert loaded.activated is True
    assert loaded.version == 2


def test_stale_update_conflicts(users: UserStore) -> None:
    users.insert(_user())
    first = users.get_by_email("store@example.com")
    second = users.get_by_email("store@example.com")

    first.name = "First Writer"
    users.update(first)

    second.name = "Second Writer"
    with pytest.raises(EditConflictError):
        users.update(second)

    loaded = users.get_by_email("store@example.com")
    assert loaded.name == "First Writer"
    assert loaded.version == 2


def test_update_to_taken_email(users: UserStore) -> None:
    users.insert(_user("a@example.com"))
    b = _user("b@example.com")
    users.insert(b)
    b.email = "a@example.com"
    with pytest.raises(DuplicateKeyError):
        users.update(b)


def test_update_missing_row_conflicts(users: UserStore) -> None:
    ghost = _user("ghost@example.com")
    ghost.id = 999
    ghost.version = 1
    with pytest.raises(EditConflictError):
        users.update(ghost)
