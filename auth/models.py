"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Stores and route handlers do the work; these own shape.
Password is the one exception with behaviour, and it lives in
auth/credentials.py.

Layer rule: no imports from api/ or movies/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from auth.credentials import Password

SCOPE_ACTIVATION = "activation"
SCOPE_AUTHENTICATION = "authentication"
SCOPE_PASSWORD_RESET = "password-reset"

SCOPES: frozenset[str] = frozenset({SCOPE_ACTIVATION, SCOPE_AUTHENTICATION, SCOPE_PASSWORD_RESET})


@dataclass
class User:
    """A registered principal.

    version is the optimistic-concurrency counter: the value read with the
    record is what UserStore.update() compares against at write time.
    id, created_at and version are None until the store has inserted the row.
    """

    name: str
    email: str
    password: Password = field(default_factory=Password)
    activated: bool = False
    id: int | None = None
    created_at: str | None = None
    version: int | None = None


@dataclass
class Token:
    """A scoped bearer token.

    plaintext is populated only on the value returned by TokenAuthority.issue()
    and is shown to the recipient exactly once. digest (SHA-256 hex of the
    plaintext) is the only form ever persisted or looked up.
    """

    digest: str
    user_id: int
    expiry: datetime
    scope: str
    plaintext: str | None = field(default=None, repr=False)
