from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError

from zendb.storage import errors
from zendb.storage.errors import (
    get_conflict_detector,
    is_unique_violation,
    register_conflict_detector,
)


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("pg error")
        self.pgcode = pgcode


class _PsycopgError(Exception):
    def __init__(self, sqlstate):
        super().__init__("psycopg error")
        self.sqlstate = sqlstate


def _integrity(orig):
    return IntegrityError("INSERT INTO groups VALUES (?)", {}, orig)


def _capture(engine, sql):
    with engine.begin() as conn:
        conn.execute(text("INSERT INTO groups(id, name) VALUES (1, 'Support')"))
    with pytest.raises(IntegrityError) as exc_info:
        with engine.begin() as conn:
            conn.execute(text(sql))
    return exc_info.value


class TestSqlite:
    def test_duplicate_primary_key_is_conflict(self, engine):
        exc = _capture(engine, "INSERT INTO groups(id, name) VALUES (1, 'Other')")
        assert is_unique_violation(exc, "sqlite") is True

    def test_not_null_is_not_conflict(self, engine):
        exc = _capture(engine, "INSERT INTO groups(id, name) VALUES (2, NULL)")
        assert is_unique_violation(exc, "sqlite") is False

    def test_message_fallback(self):
        orig = Exception("UNIQUE constraint failed: groups.id")
        assert is_unique_violation(_integrity(orig), "sqlite") is True


class TestPostgres:
    def test_unique_violation_code(self):
        assert is_unique_violation(_integrity(_PgError("23505")), "postgresql")

    def test_sqlstate_attribute(self):
        assert is_unique_violation(_integrity(_PsycopgError("23505")), "postgresql")

    def test_foreign_key_violation_is_not_conflict(self):
        assert not is_unique_violation(_integrity(_PgError("23503")), "postgresql")


class TestMysql:
    def test_duplicate_entry(self):
        orig = Exception(1062, "Duplicate entry '1' for key 'PRIMARY'")
        assert is_unique_violation(_integrity(orig), "mysql")

    def test_other_integrity_error(self):
        orig = Exception(1048, "Column 'name' cannot be null")
        assert not is_unique_violation(_integrity(orig), "mysql")


def test_non_integrity_error_is_never_conflict():
    exc = OperationalError("SELECT 1", {}, Exception("database is locked"))
    assert is_unique_violation(exc, "sqlite") is False


def test_unknown_dialect_raises():
    with pytest.raises(ValueError, match="No conflict detector"):
        is_unique_violation(_integrity(Exception("dup")), "oracle")


def test_register_custom_detector():
    register_conflict_detector("duckdb", lambda orig: "Duplicate key" in str(orig))
    try:
        assert is_unique_violation(_integrity(Exception("Duplicate key")), "duckdb")
    finally:
        errors._DETECTORS.pop("duckdb", None)
    assert get_conflict_detector("duckdb") is None
