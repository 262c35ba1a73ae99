"""
core/db.py -- Engine construction, error boundary, and optimistic concurrency.

Every store in Marquee talks to the database through three helpers here:

  make_engine(db_url, timeout_seconds)
      SQLAlchemy engine with a fixed per-statement timeout. PostgreSQL gets a
      server-side statement_timeout. SQLite has no such setting: its timeout
      connect arg only bounds the wait for a lock, so statement run time is
      bounded separately by a progress handler that interrupts the statement
      once its deadline passes. Either way the driver raises, and storage()
      reports it as StorageFault like any other backend failure.

  storage(engine, duplicate_field=None)
      Context manager yielding a connection. Commits on success. Translates
      IntegrityError through the decision table in core.errors and every other
      SQLAlchemyError into StorageFault. Domain errors raised inside the block
      (NotFoundError, EditConflictError) pass through untouched and the
      connection is rolled back on close.

  compare_and_swap(conn, table, record_id, expected_version, values)
      The single concurrency-control mechanism: a conditional UPDATE that
      only matches when the stored version still equals the version the
      caller read. Zero matched rows -> EditConflictError. No locks, no
      retries; a caller wanting retry-on-conflict re-reads and re-applies.

Layer rule: no imports from api/, auth/, or movies/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Table, create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.errors import EditConflictError, StorageFault, classify_integrity_error

logger = logging.getLogger("marquee.db")

# Largest value a signed 64-bit INTEGER column holds. Ids outside 1..MAX_ROW_ID
# cannot name a row, and the driver refuses to bind them at all.
MAX_ROW_ID = 2**63 - 1

_DEADLINE_KEY = "marquee_statement_deadline"
# SQLite VM instructions between deadline checks.
_PROGRESS_INTERVAL = 1000


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases silently keep their
    own journal mode.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _install_statement_deadline(engine: Engine, timeout_seconds: float) -> None:
    """Interrupt SQLite statements that run longer than timeout_seconds.

    Each pooled connection gets a progress handler that checks a deadline kept
    in its pool record. The deadline is armed just before a statement executes
    and cleared once execute returns, so commit, rollback and the pool reset
    are never interrupted. An interrupted statement raises
    OperationalError("interrupted").
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record) -> None:
        info = connection_record.info
        info[_DEADLINE_KEY] = None

        def _past_deadline() -> int:
            deadline = info.get(_DEADLINE_KEY)
            return 1 if deadline is not None and time.monotonic() > deadline else 0

        dbapi_conn.set_progress_handler(_past_deadline, _PROGRESS_INTERVAL)

    @event.listens_for(engine, "before_cursor_execute")
    def _arm(conn, cursor, statement, parameters, context, executemany) -> None:
        conn.connection.info[_DEADLINE_KEY] = time.monotonic() + timeout_seconds

    @event.listens_for(engine, "after_cursor_execute")
    def _disarm(conn, cursor, statement, parameters, context, executemany) -> None:
        conn.connection.info[_DEADLINE_KEY] = None

    @event.listens_for(engine, "handle_error")
    def _disarm_on_error(exception_context) -> None:
        conn = exception_context.connection
        if conn is not None and not conn.closed and not conn.invalidated:
            conn.connection.info[_DEADLINE_KEY] = None


def make_engine(db_url: str, timeout_seconds: float = 5.0) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # Stores are shared across FastAPI worker threads.
        connect_args["check_same_thread"] = False
        # Busy timeout: how long to wait for another writer's lock.
        connect_args["timeout"] = timeout_seconds
    elif db_url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={int(timeout_seconds * 1000)}"
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
        _install_statement_deadline(engine, timeout_seconds)
    return engine


def valid_row_id(row_id: int) -> bool:
    """True if row_id could be the primary key of a stored row."""
    return 1 <= row_id <= MAX_ROW_ID


@contextmanager
def storage(engine: Engine, duplicate_field: str | None = None) -> Iterator[Connection]:
    try:
        with engine.connect() as conn:
            yield conn
            conn.commit()
    except IntegrityError as exc:
        raise classify_integrity_error(exc, duplicate_field) from exc
    except SQLAlchemyError as exc:
        logger.error("storage operation failed: %s", type(exc).__name__)
        raise StorageFault("storage operation failed") from exc


def compare_and_swap(
    conn: Connection,
    table: Table,
    record_id: int,
    expected_version: int,
    values: dict,
) -> int:
    """Apply values only if the row is still at expected_version. Returns the new version."""
    result = conn.execute(
        table.update()
        .where((table.c.id == record_id) & (table.c.version == expected_version))
        .values(version=table.c.version + 1, **values)
    )
    if result.rowcount == 0:
        raise EditConflictError()
    return expected_version + 1


def ping(engine: Engine) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("database ping failed", exc_info=True)
        return False
    return True


def iso(dt: datetime) -> str:
    """Fixed-width UTC ISO 8601 so stored timestamps compare lexicographically."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
