"""
api/main.py -- FastAPI application entry point for Marquee.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan handles startup (engine, stores, token authority, background task
tracker, token purge task) and shutdown (cancel purge task, drain background
tasks, dispose engine) symmetrically.

Error mapping: every domain error from core.errors has exactly one status
code here, and every error body is the same ErrorResponse envelope.
  ValidationFailure   -> 422 failed_validation (with per-field messages)
  DuplicateKeyError   -> 422 failed_validation (field from the error)
  NotFoundError       -> 404 not_found
  EditConflictError   -> 409 edit_conflict
  other MarqueeError  -> 500 internal_error (logged, detail withheld)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.movies import router as movies_router
from api.routes.v1.tokens import router as tokens_router
from api.routes.v1.users import router as users_router
from auth.store import PermissionStore, TokenStore, UserStore
from auth.tokens import TokenAuthority
from core.config import Settings, get_settings
from core.db import make_engine, ping
from core.errors import (
    DuplicateKeyError,
    EditConflictError,
    MarqueeError,
    NotFoundError,
    ValidationFailure,
)
from core.mailer import LoggingMailer, Mailer
from core.tasks import TaskTracker
from movies.store import MovieStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("marquee.api")

# Tokens whose expiry has passed are never resolvable, so purging them is
# housekeeping only.
_PURGE_INTERVAL_SECONDS = 60 * 60


# ---------------------------------------------------------------------------
# Application state wiring
# ---------------------------------------------------------------------------


def wire_state(app: FastAPI, engine: Engine, settings: Settings, mailer: Mailer, tasks: TaskTracker) -> None:
    """Attach the stores and services route handlers read from app.state.

    Shared by the real lifespan and the test lifespan so both wire the same
    graph; only the engine, mailer, and task tracker differ.
    """
    app.state.settings = settings
    app.state.engine = engine
    app.state.users = UserStore(engine)
    app.state.tokens = TokenStore(engine)
    app.state.permissions = PermissionStore(engine)
    app.state.movies = MovieStore(engine)
    app.state.token_authority = TokenAuthority(app.state.tokens, app.state.users)
    app.state.mailer = mailer
    app.state.tasks = tasks


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired tokens every hour.

    The delete is synchronous SQLAlchemy, so it runs in a worker thread to
    keep the event loop free. CancelledError from task.cancel() during
    shutdown propagates out of asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        try:
            removed = await asyncio.to_thread(app.state.tokens.purge_expired)
        except MarqueeError:
            logger.warning("expired token purge failed; retrying next cycle")
            continue
        if removed:
            logger.info("purged %d expired token(s)", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters: the engine first, then the stores (which create
    their tables), then the task tracker, then the purge task, which
    references app.state.tokens.
    """
    settings = get_settings()
    logger.info("Marquee API starting up")
    engine = make_engine(settings.database_url, settings.db_timeout_seconds)
    tasks = TaskTracker(max_workers=settings.background_workers)
    wire_state(app, engine, settings, LoggingMailer(), tasks)
    logger.info("Stores initialized (%s)", engine.dialect.name)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await app.state.purge_task
    tasks.shutdown(timeout=30)
    engine.dispose()
    logger.info("Marquee API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Marquee API",
    description="Movie catalogue with token-based authentication, permissions, and optimistic concurrency.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Expected-Version"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(tokens_router, prefix="/api/v1", tags=["Tokens"])
app.include_router(movies_router, prefix="/api/v1", tags=["Movies"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, **extra)).model_dump(exclude_none=True),
    )


@app.exception_handler(ValidationFailure)
async def validation_failure_handler(request: Request, exc: ValidationFailure) -> JSONResponse:
    return _error(422, "failed_validation", "One or more fields failed validation.", fields=exc.errors)


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError) -> JSONResponse:
    field = exc.field or "record"
    return _error(422, "failed_validation", "One or more fields failed validation.", fields={field: "already exists"})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, "not_found", "The requested resource could not be found.")


@app.exception_handler(EditConflictError)
async def edit_conflict_handler(request: Request, exc: EditConflictError) -> JSONResponse:
    return _error(409, "edit_conflict", "Unable to update the record due to an edit conflict, please try again.")


@app.exception_handler(MarqueeError)
async def marquee_error_handler(request: Request, exc: MarqueeError) -> JSONResponse:
    """HashingFailure, StorageFault and anything else infrastructural.

    The chained cause goes to the log only; the client gets a generic 500.
    """
    logger.error(
        "%s on %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error(500, "internal_error", "The server encountered a problem and could not process your request.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", detail=str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body or query params have the wrong types."""
    return _error(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers and auth dependencies raise HTTPException with a dict
    detail; use it directly as the error field. Headers such as
    WWW-Authenticate are passed through.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return API liveness, version, and database reachability."""
    database_ok = ping(request.app.state.engine)
    body = HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=VERSION,
        components={"database": "ok" if database_ok else "unavailable"},
    )
    return JSONResponse(status_code=200 if database_ok else 503, content=body.model_dump())
