"""
auth/credentials.py -- Password credential handling (bcrypt).

Security design decisions:
  bcrypt directly, no passlib wrapper. passlib's wrap-bug detection builds a
  password longer than 72 bytes, which bcrypt 4.x rejects. The 72-byte limit
  is enforced up front by validate_password_plaintext().

  Password keeps the plaintext only on the in-memory value that set it, so
  validate_user() can check length rules in the same request. It is never
  written by the stores and is excluded from repr() so it cannot leak into
  logs or tracebacks.

  Verification always goes through bcrypt.checkpw (constant-time compare of
  the derived hash). A plain mismatch is False; a malformed stored hash is a
  HashingFailure -- that is data corruption, not a wrong password.

  authenticate_user() runs bcrypt whether or not the email exists, against
  a dummy hash for unknown accounts, so response time does not reveal which
  emails are registered.

Layer rule: no imports from api/ or movies/. core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt

from core.errors import HashingFailure, MissingCredentialError, NotFoundError
from core.validator import EMAIL_RX, Validator, matches

if TYPE_CHECKING:
    from auth.models import User
    from auth.ports import UserRepository

logger = logging.getLogger("marquee.auth")

DEFAULT_COST = 12

MAX_NAME_BYTES = 500
MIN_PASSWORD_BYTES = 8
MAX_PASSWORD_BYTES = 72


class Password:
    """A bcrypt hash plus, transiently, the plaintext that produced it."""

    __slots__ = ("hash", "plaintext")

    def __init__(self, hash: bytes | None = None) -> None:
        self.hash = hash
        self.plaintext: str | None = None

    def __repr__(self) -> str:
        return f"Password(hash={'set' if self.hash else 'unset'})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Password):
            return NotImplemented
        if self.hash is None or other.hash is None:
            return self.hash is other.hash
        return hmac.compare_digest(self.hash, other.hash)

    def set(self, plaintext: str, cost: int = DEFAULT_COST) -> None:
        try:
            hashed = bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=cost))
        except (ValueError, TypeError, MemoryError) as exc:
            raise HashingFailure("unable to hash password") from exc
        self.hash = hashed
        self.plaintext = plaintext

    def matches(self, candidate: str) -> bool:
        if self.hash is None:
            raise MissingCredentialError("password hash was never set")
        try:
            return bcrypt.checkpw(candidate.encode("utf-8"), self.hash)
        except ValueError as exc:
            raise HashingFailure("stored password hash is malformed") from exc


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively; store and look up the lower-cased form."""
    return email.strip().lower()


def validate_email(v: Validator, email: str) -> None:
    v.check(email != "", "email", "must be provided")
    v.check(matches(email, EMAIL_RX), "email", "must be a valid email address")


def validate_password_plaintext(v: Validator, plaintext: str) -> None:
    size = len(plaintext.encode("utf-8"))
    v.check(plaintext != "", "password", "must be provided")
    v.check(size >= MIN_PASSWORD_BYTES, "password", f"must be at least {MIN_PASSWORD_BYTES} bytes long")
    v.check(size <= MAX_PASSWORD_BYTES, "password", f"must not be more than {MAX_PASSWORD_BYTES} bytes long")


def validate_profile(v: Validator, user: User) -> None:
    """Name and email rules only; usable before a password has been hashed."""
    v.check(user.name != "", "name", "must be provided")
    v.check(len(user.name.encode("utf-8")) <= MAX_NAME_BYTES, "name", f"must not be more than {MAX_NAME_BYTES} bytes long")
    validate_email(v, user.email)


def validate_user(v: Validator, user: User) -> None:
    validate_profile(v, user)
    if user.password.plaintext is not None:
        validate_password_plaintext(v, user.password.plaintext)
    # Only reachable through a logic error upstream (a user built without
    # Password.set). Must never be reported as a validation problem.
    if user.password.hash is None:
        raise MissingCredentialError("missing password hash for user")


# ---------------------------------------------------------------------------
# Authentication (constant-time)
# ---------------------------------------------------------------------------


@lru_cache(maxsize=4)
def _dummy_hash(cost: int) -> bytes:
    return bcrypt.hashpw(b"marquee_timing_dummy", bcrypt.gensalt(rounds=cost))


def authenticate_user(users: UserRepository, email: str, password: str, cost: int = DEFAULT_COST) -> User | None:
    """Return the user whose email and password match, or None.

    Unknown email and wrong password cost the same bcrypt work and return
    the same None, so callers cannot distinguish them.
    """
    try:
        user = users.get_by_email(normalize_email(email))
    except NotFoundError:
        bcrypt.checkpw(password.encode("utf-8"), _dummy_hash(cost))
        return None
    if not user.password.matches(password):
        return None
    return user
