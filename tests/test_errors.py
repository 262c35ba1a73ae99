"""Unit tests for core/errors.py, the storage() error boundary, and the SQLite
statement deadline in core/db.py.

Duplicate keys are recognised from the driver's structured error code, never
from its message text.
"""

import sqlite3
import time

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table
from sqlalchemy.exc import IntegrityError, OperationalError

from core.db import make_engine, storage
from core.errors import DuplicateKeyError, StorageFault, classify_integrity_error, integrity_error_code


class _DriverError(Exception):
    """Stand-in for a DB-API exception carrying structured attributes."""

    def __init__(self, message: str, **attrs) -> None:
        super().__init__(message)
        for name, value in attrs.items():
            setattr(self, name, value)


def _integrity(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, orig)


@pytest.mark.parametrize(
    "orig",
    [
        _DriverError("whatever", sqlite_errorname="SQLITE_CONSTRAINT_UNIQUE"),
        _DriverError("whatever", sqlite_errorname="SQLITE_CONSTRAINT_PRIMARYKEY"),
        _DriverError("whatever", sqlstate="23505"),
        _DriverError("whatever", pgcode="23505"),
    ],
)
def test_duplicate_codes(orig) -> None:
    err = classify_integrity_error(_integrity(orig), "email")
    assert isinstance(err, DuplicateKeyError)
    assert err.field == "email"


def test_message_text_is_ignored() -> None:
    orig = _DriverError('duplicate key value violates unique constraint "users_email_key"')
    assert integrity_error_code(_integrity(orig)) is None
    assert isinstance(classify_integrity_error(_integrity(orig)), StorageFault)


def test_other_constraints_are_faults() -> None:
    orig = _DriverError("NOT NULL constraint failed", sqlite_errorname="SQLITE_CONSTRAINT_NOTNULL")
    assert isinstance(classify_integrity_error(_integrity(orig)), StorageFault)


class TestStorageBoundary:
    @pytest.fixture
    def things(self, engine) -> Table:
        md = MetaData()
        table = Table(
            "things",
            md,
            Column("id", Integer, primary_key=True),
            Column("name", String(50), nullable=False, unique=True),
        )
        md.create_all(engine)
        return table

    def test_real_sqlite_unique_violation(self, engine, things) -> None:
        with storage(engine) as conn:
            conn.execute(things.insert().values(name="a"))
        with pytest.raises(DuplicateKeyError) as info:
            with storage(engine, duplicate_field="name") as conn:
                conn.execute(things.insert().values(name="a"))
        assert info.value.field == "name"
        assert isinstance(info.value.__cause__, IntegrityError)

    def test_not_null_is_fault(self, engine, things) -> None:
        with pytest.raises(StorageFault):
            with storage(engine) as conn:
                conn.execute(things.insert().values(name=None))

    def test_operational_error_is_fault(self, engine) -> None:
        with pytest.raises(StorageFault) as info:
            with storage(engine) as conn:
                conn.exec_driver_sql("SELECT * FROM no_such_table")
        assert isinstance(info.value.__cause__, OperationalError)

    def test_failed_block_rolls_back(self, engine, things) -> None:
        with pytest.raises(DuplicateKeyError):
            with storage(engine, duplicate_field="name") as conn:
                conn.execute(things.insert().values(name="b"))
                conn.execute(things.insert().values(name="b"))
        with storage(engine) as conn:
            assert conn.execute(things.select()).fetchall() == []


_COUNT_TO_A_BILLION = (
    "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < 1000000000) "
    "SELECT count(*) FROM c"
)


class TestStatementDeadline:
    @pytest.fixture
    def quick_engine(self):
        eng = make_engine("sqlite:///:memory:", timeout_seconds=0.05)
        yield eng
        eng.dispose()

    def test_long_statement_is_interrupted(self, quick_engine) -> None:
        with pytest.raises(StorageFault) as info:
            with storage(quick_engine) as conn:
                conn.exec_driver_sql(_COUNT_TO_A_BILLION).scalar()
        assert isinstance(info.value.__cause__, OperationalError)
        assert "interrupted" in str(info.value.__cause__)

    def test_connection_usable_after_interrupt(self, quick_engine) -> None:
        with pytest.raises(StorageFault):
            with storage(quick_engine) as conn:
                conn.exec_driver_sql(_COUNT_TO_A_BILLION).scalar()
        with storage(quick_engine) as conn:
            assert conn.exec_driver_sql("SELECT 1").scalar() == 1

    def test_idle_time_does_not_count(self, quick_engine) -> None:
        with storage(quick_engine) as conn:
            conn.exec_driver_sql("CREATE TABLE t (x INTEGER)")
            time.sleep(0.1)
            conn.exec_driver_sql("INSERT INTO t VALUES (1)")
            time.sleep(0.1)
        with storage(quick_engine) as conn:
            assert conn.exec_driver_sql("SELECT count(*) FROM t").scalar() == 1


def test_sqlite_reports_errorname() -> None:
    # The classifier relies on this attribute existing on the stdlib driver.
    con = sqlite3.connect(":memory:")
    con.execute("CREATE TABLE t (x INTEGER UNIQUE)")
    con.execute("INSERT INTO t VALUES (1)")
    with pytest.raises(sqlite3.IntegrityError) as info:
        con.execute("INSERT INTO t VALUES (1)")
    assert info.value.sqlite_errorname == "SQLITE_CONSTRAINT_UNIQUE"
    con.close()
