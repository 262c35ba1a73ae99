"""
api/routes/v1/users.py -- Registration, activation, and password reset.

Routes:
  POST /api/v1/users             -- register; mails an activation token in the background
  PUT  /api/v1/users/activated   -- consume an activation token
  PUT  /api/v1/users/password    -- consume a password-reset token and set a new password

All three are public: the token in the body is the credential.

Token consumption order is fixed: resolve -> update (compare-and-swap on the
user's version) -> revoke_all for that scope. If the update loses a race the
request fails with 409 and the token stays usable for a retry; once the
update lands, every token of that scope is deleted so it cannot be replayed.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Request

from api.models import ActivateRequest, MessageResponse, PasswordResetRequest, RegisterRequest, UserEnvelope, UserResponse
from auth.credentials import (
    normalize_email,
    validate_password_plaintext,
    validate_profile,
    validate_user,
)
from auth.models import SCOPE_ACTIVATION, SCOPE_PASSWORD_RESET, User
from auth.ports import PermissionRepository, UserRepository
from auth.tokens import TokenAuthority, validate_token_plaintext
from core.config import Settings
from core.errors import DuplicateKeyError, NotFoundError, ValidationFailure
from core.mailer import WELCOME_TEMPLATE, Mailer
from core.tasks import TaskTracker
from core.validator import Validator

logger = logging.getLogger("marquee.api")

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /users -- register
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserEnvelope, status_code=201)
def register_user(request: Request, body: RegisterRequest) -> UserEnvelope:
    """Create an inactive user, grant default permissions, and mail an activation token.

    The welcome email is handed to the background task tracker after the
    user row is committed. A mail failure is logged by the tracker and never
    affects the 201 response or the stored user.
    """
    settings: Settings = request.app.state.settings
    users: UserRepository = request.app.state.users
    permissions: PermissionRepository = request.app.state.permissions
    authority: TokenAuthority = request.app.state.token_authority

    user = User(name=body.name.strip(), email=normalize_email(body.email), activated=False)

    v = Validator()
    validate_password_plaintext(v, body.password)
    if not v.valid():
        # Never hash an out-of-range password; report every field anyway.
        validate_profile(v, user)
        v.raise_if_invalid()

    user.password.set(body.password, cost=settings.bcrypt_cost)
    validate_user(v, user)
    v.raise_if_invalid()

    try:
        users.insert(user)
    except DuplicateKeyError:
        raise ValidationFailure({"email": "a user with this email address already exists"}) from None

    permissions.add_for_user(user.id, *settings.default_permissions)

    token = authority.issue(user.id, timedelta(seconds=settings.activation_token_ttl_seconds), SCOPE_ACTIVATION)

    mailer: Mailer = request.app.state.mailer
    tasks: TaskTracker = request.app.state.tasks
    tasks.submit(
        mailer.send,
        user.email,
        WELCOME_TEMPLATE,
        {"activation_token": token.plaintext, "user_id": user.id},
    )

    logger.info("registered user %d", user.id)
    return UserEnvelope(user=UserResponse.from_user(user))


# ---------------------------------------------------------------------------
# PUT /users/activated -- activate with a token
# ---------------------------------------------------------------------------


@router.put("/users/activated", response_model=UserEnvelope)
def activate_user(request: Request, body: ActivateRequest) -> UserEnvelope:
    users: UserRepository = request.app.state.users
    authority: TokenAuthority = request.app.state.token_authority

    v = Validator()
    validate_token_plaintext(v, body.token)
    v.raise_if_invalid()

    try:
        user = authority.resolve(SCOPE_ACTIVATION, body.token)
    except NotFoundError:
        raise ValidationFailure({"token": "invalid or expired activation token"}) from None

    user.activated = True
    users.update(user)
    authority.revoke_all(SCOPE_ACTIVATION, user.id)

    return UserEnvelope(user=UserResponse.from_user(user))


# ---------------------------------------------------------------------------
# PUT /users/password -- reset password with a token
# ---------------------------------------------------------------------------


@router.put("/users/password", response_model=MessageResponse)
def reset_password(request: Request, body: PasswordResetRequest) -> MessageResponse:
    settings: Settings = request.app.state.settings
    users: UserRepository = request.app.state.users
    authority: TokenAuthority = request.app.state.token_authority

    v = Validator()
    validate_password_plaintext(v, body.password)
    validate_token_plaintext(v, body.token)
    v.raise_if_invalid()

    try:
        user = authority.resolve(SCOPE_PASSWORD_RESET, body.token)
    except NotFoundError:
        raise ValidationFailure({"token": "invalid or expired password reset token"}) from None

    user.password.set(body.password, cost=settings.bcrypt_cost)
    validate_user(v, user)
    v.raise_if_invalid()

    users.update(user)
    authority.revoke_all(SCOPE_PASSWORD_RESET, user.id)

    return MessageResponse(message="your password was successfully reset")
