"""
core/errors.py -- The closed set of failure conditions raised by Marquee.

The request layer maps these to status codes; nothing below api/ knows about
HTTP. Infrastructure failures (HashingFailure, StorageFault) carry no detail
meant for the caller -- the original exception is chained for the logs.

Duplicate-key detection uses the structured code the DB driver reports, via
the _DUPLICATE_KEY_CODES decision table. Driver error messages are never
parsed.

Layer rule: no imports from api/, auth/, or movies/.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError


class MarqueeError(Exception):
    """Base class for every named failure condition."""


class NotFoundError(MarqueeError):
    """Lookup miss: user, token, or versioned record."""

    def __init__(self, message: str = "record not found") -> None:
        super().__init__(message)


class EditConflictError(MarqueeError):
    """The stored version no longer matches the version the caller read."""

    def __init__(self, message: str = "unable to update the record due to an edit conflict") -> None:
        super().__init__(message)


class DuplicateKeyError(MarqueeError):
    """A unique-identity field collided on insert or update.

    field names the offending attribute so the request layer can report a
    field-level validation error instead of a generic fault.
    """

    def __init__(self, field: str | None = None) -> None:
        self.field = field
        super().__init__(f"duplicate value for {field}" if field else "duplicate key")


class ValidationFailure(MarqueeError):
    """One or more caller-supplied values broke a domain rule.

    errors maps field name -> message. Built by core.validator.Validator,
    which accumulates every failing field rather than stopping at the first.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class HashingFailure(MarqueeError):
    """The password hash primitive failed, or a stored hash is malformed."""


class StorageFault(MarqueeError):
    """Any backend error that is not a duplicate key, timeouts included."""


class MissingCredentialError(RuntimeError):
    """A user reached validation without a password hash.

    This is a programming error (upstream code forgot to call Password.set),
    not a user error. It deliberately does not inherit from MarqueeError so
    no error mapper turns it into a polite response.
    """


# ---------------------------------------------------------------------------
# Integrity error classification
# ---------------------------------------------------------------------------

# Backend-reported codes that mean "unique constraint violated".
#   SQLite  -> sqlite3.IntegrityError.sqlite_errorname (Python 3.11+)
#   Postgres -> SQLSTATE 23505 (psycopg .sqlstate / psycopg2 .pgcode)
_DUPLICATE_KEY_CODES: frozenset[str] = frozenset(
    {
        "SQLITE_CONSTRAINT_UNIQUE",
        "SQLITE_CONSTRAINT_PRIMARYKEY",
        "23505",
    }
)


def integrity_error_code(exc: IntegrityError) -> str | None:
    """Return the structured constraint code reported by the DB driver, if any."""
    orig = exc.orig
    for attr in ("sqlite_errorname", "sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def classify_integrity_error(exc: IntegrityError, field: str | None = None) -> MarqueeError:
    """Translate a driver IntegrityError into DuplicateKeyError or StorageFault."""
    if integrity_error_code(exc) in _DUPLICATE_KEY_CODES:
        return DuplicateKeyError(field)
    return StorageFault("integrity constraint violated")
