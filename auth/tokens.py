"""
auth/tokens.py -- Scoped opaque bearer tokens (activation, authentication,
password reset).

Security design decisions:
  Plaintext: 16 bytes from secrets.token_bytes (128 bits of entropy),
       base32-encoded without padding -> 26 characters that survive being
       pasted from an email. Returned to the caller once, at issue time.

  Digest: SHA-256 of the plaintext, stored as hex. Tokens are high-entropy,
       so a fast hash is enough (bcrypt's slowness protects low-entropy
       passwords, not random tokens) and the digest can be looked up
       directly through the (digest, scope) index.

  Resolution: resolve() only ever sees a digest of what was presented and
       asks the user repository for the user joined on digest AND scope AND
       expiry > now. Unknown, wrong-scope, and expired tokens all come back
       as the same NotFoundError so callers cannot probe which case applied.

  Lifecycle: issued -> (consumed via revoke_all | expired). Tokens are never
       updated; revoke_all() deletes every token for a (user, scope) pair and
       is idempotent.

The plaintext is never persisted and never passed to a logger.

Layer rule: no imports from api/ or movies/.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.models import SCOPES, Token, User
from auth.ports import TokenRepository, UserRepository
from core.db import iso, utcnow
from core.validator import Validator

logger = logging.getLogger("marquee.auth")

TOKEN_BYTES = 16
TOKEN_PLAINTEXT_LENGTH = 26


def digest_token(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def generate_token(user_id: int, ttl: timedelta, scope: str, now: datetime | None = None) -> Token:
    """Build a fresh token carrying its plaintext. Does not persist anything."""
    if scope not in SCOPES:
        raise ValueError(f"unknown token scope: {scope!r}")
    now = now or utcnow()
    plaintext = base64.b32encode(secrets.token_bytes(TOKEN_BYTES)).decode("ascii").rstrip("=")
    return Token(
        digest=digest_token(plaintext),
        user_id=user_id,
        expiry=now + ttl,
        scope=scope,
        plaintext=plaintext,
    )


def validate_token_plaintext(v: Validator, plaintext: str) -> None:
    v.check(plaintext != "", "token", "must be provided")
    v.check(len(plaintext) == TOKEN_PLAINTEXT_LENGTH, "token", f"must be {TOKEN_PLAINTEXT_LENGTH} bytes long")


class TokenAuthority:
    """Issue, resolve, and revoke tokens against pluggable repositories.

    Usage:
        authority = TokenAuthority(token_store, user_store)
        token = authority.issue(user.id, timedelta(days=3), SCOPE_ACTIVATION)
        user = authority.resolve(SCOPE_ACTIVATION, token.plaintext)
        authority.revoke_all(SCOPE_ACTIVATION, user.id)

    clock defaults to utcnow; tests inject a fixed clock to exercise expiry.
    """

    def __init__(
        self,
        tokens: TokenRepository,
        users: UserRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.tokens = tokens
        self.users = users
        self.clock = clock

    def issue(self, user_id: int, ttl: timedelta, scope: str) -> Token:
        token = generate_token(user_id, ttl, scope, now=self.clock())
        self.tokens.insert(token)
        logger.info("issued %s token for user %d (expires %s)", scope, user_id, iso(token.expiry))
        return token

    def resolve(self, scope: str, plaintext: str) -> User:
        """Return the owner of a live token in scope. NotFoundError otherwise."""
        return self.users.get_for_token(scope, digest_token(plaintext), iso(self.clock()))

    def revoke_all(self, scope: str, user_id: int) -> None:
        deleted = self.tokens.delete_all_for_user(scope, user_id)
        logger.info("revoked %d %s token(s) for user %d", deleted, scope, user_id)
