"""
tests/conftest.py -- Shared test fixtures for Marquee tests.

This module provides:
  - engine: a fresh in-memory SQLite engine per test for store unit tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - app_env: TestClient plus the recording mailer and task tracker behind it

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient because it runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

BCRYPT_COST must be set before any import that calls get_settings() so the
cached Settings instance hashes at the minimum cost and the suite stays fast.
"""

from __future__ import annotations

import asyncio
import os
import threading
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field

# CRITICAL: set before any core/auth import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_COST", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:marquee_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_state
from core.config import get_settings
from core.db import make_engine
from core.tasks import TaskTracker

# ---------------------------------------------------------------------------
# Mail capture
# ---------------------------------------------------------------------------


@dataclass
class RecordingMailer:
    """Mailer that keeps every message in memory for assertions."""

    sent: list[tuple[str, str, dict]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def send(self, recipient: str, template: str, data: dict) -> None:
        with self._lock:
            self.sent.append((recipient, template, dict(data)))

    def last_for(self, recipient: str, template: str) -> dict:
        with self._lock:
            for to, tmpl, data in reversed(self.sent):
                if to == recipient and tmpl == template:
                    return data
        raise AssertionError(f"no {template} mail sent to {recipient}")


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _shared_memory_url(name: str) -> str:
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def engine():
    """Fresh in-memory engine for single-threaded store tests."""
    eng = make_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


def _patch_lifespan(engine, mailer: RecordingMailer, tasks: TaskTracker):
    """Return an async context manager that replaces the real lifespan.

    Uses the same wire_state() as production so routes see the real stores,
    only bound to an isolated in-memory database and a recording mailer.
    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_state(app, engine, get_settings(), mailer, tasks)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.purge_task

    return test_lifespan


@dataclass
class AppEnv:
    client: TestClient
    mailer: RecordingMailer
    tasks: TaskTracker

    def mail(self, recipient: str, template: str) -> dict:
        """Wait for background mail, then return the newest matching message's data."""
        assert self.tasks.drain(timeout=10), "background tasks did not finish"
        return self.mailer.last_for(recipient, template)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def app_env() -> Generator[AppEnv, None, None]:
    """Yield an AppEnv whose client hits real route handlers on an isolated DB."""
    eng = make_engine(_shared_memory_url("marquee_api"))
    # Hold one connection open so the shared in-memory DB outlives pool churn.
    keepalive = eng.connect()
    mailer = RecordingMailer()
    tasks = TaskTracker(max_workers=2)

    app.router.lifespan_context = _patch_lifespan(eng, mailer, tasks)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield AppEnv(client=client, mailer=mailer, tasks=tasks)

    tasks.shutdown(timeout=10)
    keepalive.close()
    eng.dispose()
