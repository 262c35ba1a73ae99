"""
auth/store.py -- SQLAlchemy Core persistence for users, tokens, and permissions.

Pattern: Repository + Data Mapper (same as movies/store.py).
UserStore, TokenStore and PermissionStore are the repositories; _row_to_user
is the mapper. Route and dependency code never touches SQL directly.

All three stores share one Engine and one schema: resolving a token joins
tokens to users, so both tables must live in the same database.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Only token digests reach the tokens table; plaintexts never do.

Indexes (the three lookup paths the auth core depends on):
  users.email                        UNIQUE   principal by identity
  tokens (digest, scope)             INDEX    token resolution
  users_permissions (user_id, permission_id) PRIMARY KEY   grant lookup

Concurrency:
  UserStore.update() is a compare-and-swap on version (core.db). Grants use
  INSERT ... ON CONFLICT DO NOTHING so re-granting a held permission is a
  no-op even when two requests race.

Layer rule: no imports from api/ or movies/.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    literal,
    select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine

from auth.credentials import Password
from auth.models import Token, User
from auth.permissions import CATALOG, Permissions
from core.db import compare_and_swap, iso, storage, utcnow, valid_row_id
from core.errors import NotFoundError

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("created_at", String(32), nullable=False),
    Column("name", Text, nullable=False),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("activated", Integer, nullable=False, server_default="0"),
    Column("version", Integer, nullable=False, server_default="1"),
)

_tokens = Table(
    "tokens",
    metadata,
    Column("digest", String(64), primary_key=True),  # SHA-256 hex of the plaintext
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expiry", String(32), nullable=False),  # fixed-width UTC ISO 8601
    Column("scope", String(30), nullable=False),
    Index("ix_tokens_digest_scope", "digest", "scope"),
    Index("ix_tokens_user_scope", "user_id", "scope"),
)

_permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(100), nullable=False, unique=True),
)

_users_permissions = Table(
    "users_permissions",
    metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    PrimaryKeyConstraint("user_id", "permission_id"),
)

# Dialects with a native "insert, ignore duplicates" statement.
_INSERT_IGNORING_DUPLICATES = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


def init_schema(engine: Engine) -> None:
    """Create the auth tables if missing. Idempotent."""
    if engine.dialect.name not in _INSERT_IGNORING_DUPLICATES:
        raise ValueError(f"unsupported database dialect: {engine.dialect.name}")
    metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(engine)
        store.insert(user)                 # sets id, created_at, version=1
        user = store.get_by_email("a@b.c")
        user.activated = True
        store.update(user)                 # EditConflictError if someone else wrote first
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        init_schema(engine)

    def insert(self, user: User) -> None:
        """Insert a new user. DuplicateKeyError(field="email") if the email is taken."""
        created_at = iso(utcnow())
        with storage(self.engine, duplicate_field="email") as conn:
            result = conn.execute(
                _users.insert().values(
                    created_at=created_at,
                    name=user.name,
                    email=user.email,
                    password_hash=_hash_text(user.password),
                    activated=1 if user.activated else 0,
                    version=1,
                )
            )
            user.id = result.inserted_primary_key[0]
        user.created_at = created_at
        user.version = 1

    def get_by_email(self, email: str) -> User:
        with storage(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        if row is None:
            raise NotFoundError()
        return _row_to_user(row)

    def get_by_id(self, user_id: int) -> User:
        if not valid_row_id(user_id):
            raise NotFoundError()
        with storage(self.engine) as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        if row is None:
            raise NotFoundError()
        return _row_to_user(row)

    def update(self, user: User) -> None:
        """Write user back if it is still at the version it was read with.

        On success user.version is advanced in place. EditConflictError if the
        stored version moved (or the row is gone); DuplicateKeyError if the new
        email belongs to another user.
        """
        with storage(self.engine, duplicate_field="email") as conn:
            user.version = compare_and_swap(
                conn,
                _users,
                user.id,
                user.version,
                {
                    "name": user.name,
                    "email": user.email,
                    "password_hash": _hash_text(user.password),
                    "activated": 1 if user.activated else 0,
                },
            )

    def get_for_token(self, scope: str, digest: str, now: str) -> User:
        """Return the owner of a token matching digest and scope that expires after now."""
        stmt = (
            select(_users)
            .select_from(_users.join(_tokens, _tokens.c.user_id == _users.c.id))
            .where((_tokens.c.digest == digest) & (_tokens.c.scope == scope) & (_tokens.c.expiry > now))
        )
        with storage(self.engine) as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            raise NotFoundError()
        return _row_to_user(row)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenStore:
    """Insert and bulk-delete token records. There is no token update."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        init_schema(engine)

    def insert(self, token: Token) -> None:
        with storage(self.engine) as conn:
            conn.execute(
                _tokens.insert().values(
                    digest=token.digest,
                    user_id=token.user_id,
                    expiry=iso(token.expiry),
                    scope=token.scope,
                )
            )

    def delete_all_for_user(self, scope: str, user_id: int) -> int:
        """Delete every token for (user, scope). Returns the number removed; zero is fine."""
        with storage(self.engine) as conn:
            result = conn.execute(
                _tokens.delete().where((_tokens.c.scope == scope) & (_tokens.c.user_id == user_id))
            )
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete tokens whose expiry has passed. Returns the number removed."""
        with storage(self.engine) as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.expiry <= iso(utcnow())))
        return result.rowcount


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionStore:
    """Grants between users and capability codes from the permissions catalog."""

    def __init__(self, engine: Engine, catalog: tuple[str, ...] = CATALOG) -> None:
        self.engine = engine
        init_schema(engine)
        self.ensure_catalog(*catalog)

    def _insert_ignoring_duplicates(self, table: Table):
        return _INSERT_IGNORING_DUPLICATES[self.engine.dialect.name](table)

    def ensure_catalog(self, *codes: str) -> None:
        """Seed capability codes. Safe to call on every startup."""
        if not codes:
            return
        with storage(self.engine) as conn:
            conn.execute(
                self._insert_ignoring_duplicates(_permissions).on_conflict_do_nothing(),
                [{"code": code} for code in codes],
            )

    def get_all_for_user(self, user_id: int) -> Permissions:
        stmt = (
            select(_permissions.c.code)
            .select_from(_permissions.join(_users_permissions, _users_permissions.c.permission_id == _permissions.c.id))
            .where(_users_permissions.c.user_id == user_id)
        )
        with storage(self.engine) as conn:
            rows = conn.execute(stmt).fetchall()
        return Permissions(row.code for row in rows)

    def add_for_user(self, user_id: int, *codes: str) -> None:
        """Grant every catalog code in codes. Unknown codes and held grants are no-ops."""
        if not codes:
            return
        source = select(literal(user_id).label("user_id"), _permissions.c.id.label("permission_id")).where(
            _permissions.c.code.in_(codes)
        )
        stmt = (
            self._insert_ignoring_duplicates(_users_permissions)
            .from_select(["user_id", "permission_id"], source)
            .on_conflict_do_nothing()
        )
        with storage(self.engine) as conn:
            conn.execute(stmt)


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _hash_text(password: Password) -> str | None:
    return password.hash.decode("ascii") if password.hash is not None else None


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        created_at=row.created_at,
        name=row.name,
        email=row.email,
        password=Password(row.password_hash.encode("ascii")),
        activated=bool(row.activated),
        version=row.version,
    )
