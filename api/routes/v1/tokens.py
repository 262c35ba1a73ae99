"""
api/routes/v1/tokens.py -- Token issuance endpoints.

Routes:
  POST /api/v1/tokens/authentication   -- email + password -> bearer token (201)
  POST /api/v1/tokens/activation       -- re-send an activation token (202)
  POST /api/v1/tokens/password-reset   -- send a password-reset token (202)

Security:
  POST /tokens/authentication is rate-limited (LOGIN_RATE_LIMIT) and uses
  authenticate_user(), which equalizes timing between unknown email and wrong
  password. Both return the same 401 invalid_credentials.
  Cache-Control: no-store on the response carrying the plaintext token.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthenticationRequest, AuthenticationTokenEnvelope, EmailRequest, MessageResponse, TokenResponse
from auth.credentials import authenticate_user, normalize_email, validate_email, validate_password_plaintext
from auth.models import SCOPE_ACTIVATION, SCOPE_AUTHENTICATION, SCOPE_PASSWORD_RESET
from auth.ports import UserRepository
from auth.tokens import TokenAuthority
from core.config import Settings, get_settings
from core.errors import NotFoundError, ValidationFailure
from core.mailer import ACTIVATION_TEMPLATE, PASSWORD_RESET_TEMPLATE, Mailer
from core.tasks import TaskTracker
from core.validator import Validator

router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# POST /tokens/authentication
# ---------------------------------------------------------------------------


@limiter.limit(_login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/tokens/authentication", response_model=AuthenticationTokenEnvelope, status_code=201)
def create_authentication_token(request: Request, body: AuthenticationRequest) -> JSONResponse:
    settings: Settings = request.app.state.settings
    users: UserRepository = request.app.state.users
    authority: TokenAuthority = request.app.state.token_authority

    v = Validator()
    validate_email(v, normalize_email(body.email))
    validate_password_plaintext(v, body.password)
    v.raise_if_invalid()

    user = authenticate_user(users, body.email, body.password, cost=settings.bcrypt_cost)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "invalid_credentials", "message": "Invalid authentication credentials."},
        )

    token = authority.issue(user.id, timedelta(seconds=settings.authentication_token_ttl_seconds), SCOPE_AUTHENTICATION)
    resp = JSONResponse(
        status_code=201,
        content=AuthenticationTokenEnvelope(authentication_token=TokenResponse.from_token(token)).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# POST /tokens/activation
# ---------------------------------------------------------------------------


@router.post("/tokens/activation", response_model=MessageResponse, status_code=202)
def create_activation_token(request: Request, body: EmailRequest) -> MessageResponse:
    settings: Settings = request.app.state.settings
    users: UserRepository = request.app.state.users
    authority: TokenAuthority = request.app.state.token_authority

    email = normalize_email(body.email)
    v = Validator()
    validate_email(v, email)
    v.raise_if_invalid()

    try:
        user = users.get_by_email(email)
    except NotFoundError:
        raise ValidationFailure({"email": "no matching email address found"}) from None
    if user.activated:
        raise ValidationFailure({"email": "user has already been activated"})

    token = authority.issue(user.id, timedelta(seconds=settings.activation_token_ttl_seconds), SCOPE_ACTIVATION)
    _send_later(request, user.email, ACTIVATION_TEMPLATE, {"activation_token": token.plaintext})

    return MessageResponse(message="an email will be sent to you containing activation instructions")


# ---------------------------------------------------------------------------
# POST /tokens/password-reset
# ---------------------------------------------------------------------------


@router.post("/tokens/password-reset", response_model=MessageResponse, status_code=202)
def create_password_reset_token(request: Request, body: EmailRequest) -> MessageResponse:
    settings: Settings = request.app.state.settings
    users: UserRepository = request.app.state.users
    authority: TokenAuthority = request.app.state.token_authority

    email = normalize_email(body.email)
    v = Validator()
    validate_email(v, email)
    v.raise_if_invalid()

    try:
        user = users.get_by_email(email)
    except NotFoundError:
        raise ValidationFailure({"email": "no matching email address found"}) from None
    if not user.activated:
        raise ValidationFailure({"email": "user account must be activated"})

    token = authority.issue(
        user.id, timedelta(seconds=settings.password_reset_token_ttl_seconds), SCOPE_PASSWORD_RESET
    )
    _send_later(request, user.email, PASSWORD_RESET_TEMPLATE, {"password_reset_token": token.plaintext})

    return MessageResponse(message="an email will be sent to you containing password reset instructions")


def _send_later(request: Request, recipient: str, template: str, data: dict) -> None:
    mailer: Mailer = request.app.state.mailer
    tasks: TaskTracker = request.app.state.tasks
    tasks.submit(mailer.send, recipient, template, data)
