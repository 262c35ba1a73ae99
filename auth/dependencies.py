"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and
authorization.

Requests authenticate with an opaque token in the Authorization header:

    Authorization: Bearer <26-char authentication token>

The chain, each step depending on the previous one so FastAPI resolves the
token at most once per request:

  current_user()               -> User | None  (None = anonymous, no header)
  require_authenticated_user() -> User, else 401
  require_activated_user()     -> User, else 403 inactive_account
  require_permission(code)     -> User, else 403 not_permitted

A header that is present but malformed, unknown, expired, or scoped for
something other than authentication is always the same 401
invalid_authentication_token -- the caller cannot tell which.

Layer rule: no imports from movies/. auth/dependencies.py may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.models import SCOPE_AUTHENTICATION, User
from auth.ports import PermissionRepository
from auth.tokens import TokenAuthority, validate_token_plaintext
from core.errors import NotFoundError
from core.validator import Validator


def _invalid_token() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "invalid_authentication_token", "message": "Invalid or missing authentication token."},
        headers={"WWW-Authenticate": "Bearer"},
    )


def current_user(request: Request) -> User | None:
    """Resolve the bearer token to a user. No Authorization header -> anonymous (None)."""
    header = request.headers.get("Authorization", "")
    if not header:
        return None

    scheme, _, plaintext = header.partition(" ")
    if scheme != "Bearer" or not plaintext:
        raise _invalid_token()

    v = Validator()
    validate_token_plaintext(v, plaintext)
    if not v.valid():
        raise _invalid_token()

    authority: TokenAuthority = request.app.state.token_authority
    try:
        return authority.resolve(SCOPE_AUTHENTICATION, plaintext)
    except NotFoundError:
        raise _invalid_token() from None


def require_authenticated_user(user: User | None = Depends(current_user)) -> User:
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "authentication_required", "message": "You must be authenticated to access this resource."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_activated_user(user: User = Depends(require_authenticated_user)) -> User:
    if not user.activated:
        raise HTTPException(
            status_code=403,
            detail={"code": "inactive_account", "message": "Your user account must be activated to access this resource."},
        )
    return user


def require_permission(code: str) -> Callable[..., User]:
    """Build a dependency that admits activated users holding the given permission code.

    Use as a FastAPI dependency:
        @router.post("/movies", dependencies=[Depends(require_permission("movies:write"))])
    """

    def dependency(request: Request, user: User = Depends(require_activated_user)) -> User:
        permissions: PermissionRepository = request.app.state.permissions
        if not permissions.get_all_for_user(user.id).includes(code):
            raise HTTPException(
                status_code=403,
                detail={"code": "not_permitted", "message": "Your user account doesn't have the necessary permissions."},
            )
        return user

    dependency.__name__ = f"require_permission_{code.replace(':', '_')}"
    return dependency
