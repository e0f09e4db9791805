from __future__ import annotations

import pytest
from sqlalchemy import func, select, text

from zendb.db import _connect_args, _normalize_url, create_sync_engine, detect_db_type
from zendb.models.schema import groups


class TestDetectDbType:
    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("postgresql://u:p@localhost/zendb", "postgres"),
            ("postgres://u:p@localhost/zendb", "postgres"),
            ("postgresql+psycopg2://u:p@localhost/zendb", "postgres"),
            ("mysql://u:p@localhost/zendb", "mysql"),
            ("mysql+pymysql://u:p@localhost/zendb", "mysql"),
            ("mariadb+pymysql://u:p@localhost/zendb", "mysql"),
            ("sqlite:///zendb.db", "sqlite"),
            ("sqlite+pysqlite:///:memory:", "sqlite"),
        ],
    )
    def test_known_schemes(self, uri, expected):
        assert detect_db_type(uri) == expected

    def test_empty(self):
        with pytest.raises(ValueError, match="required"):
            detect_db_type("")

    def test_unknown_scheme(self):
        with pytest.raises(ValueError, match="'mongodb'"):
            detect_db_type("mongodb://localhost/zendb")


class TestEngineOptions:
    def test_normalize_url(self):
        assert _normalize_url("postgres://h/db") == "postgresql://h/db"
        assert _normalize_url("mysql://h/db") == "mysql+pymysql://h/db"
        assert _normalize_url("sqlite:///x.db") == "sqlite:///x.db"

    def test_postgres_statement_timeout(self):
        args = _connect_args("postgres", 2.5)
        assert args["options"] == "-c statement_timeout=2500"
        assert args["connect_timeout"] == 2

    def test_mysql_timeouts(self):
        assert _connect_args("mysql", 0.2) == {
            "connect_timeout": 1,
            "read_timeout": 1,
            "write_timeout": 1,
        }

    def test_sqlite_busy_timeout(self):
        assert _connect_args("sqlite", 7.0) == {"timeout": 7.0}


class TestSqliteSavepoints:
    def test_savepoint_rollback_stays_inside_outer_transaction(self, engine):
        with engine.connect() as conn:
            trans = conn.begin()
            conn.execute(text("INSERT INTO groups(id, name) VALUES (1, 'kept')"))
            nested = conn.begin_nested()
            conn.execute(text("INSERT INTO groups(id, name) VALUES (2, 'dropped')"))
            nested.rollback()
            trans.rollback()

        with engine.connect() as conn:
            assert conn.execute(select(func.count()).select_from(groups)).scalar() == 0

    def test_released_savepoint_commits_with_outer(self, tmp_path):
        engine = create_sync_engine(f"sqlite:///{tmp_path / 'sp.db'}")
        groups.create(engine)
        with engine.begin() as conn:
            with conn.begin_nested():
                conn.execute(text("INSERT INTO groups(id, name) VALUES (1, 'kept')"))
        with engine.connect() as conn:
            assert conn.execute(select(groups.c.name)).scalars().all() == ["kept"]
        engine.dispose()
