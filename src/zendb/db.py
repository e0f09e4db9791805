"""Engine construction for the sync target database.

Each backend gets its driver-level timeout wired through ``connect_args`` so no
statement blocks indefinitely. SQLite engines emit their own ``BEGIN`` so that
per-record savepoints nest inside the batch transaction instead of committing
it early.
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from zendb.config import DEFAULT_STATEMENT_TIMEOUT_SECONDS


def detect_db_type(conn_string: str) -> str:
    """
    Detect database type from connection string.

    :param conn_string: Database connection string.
    :return: Database type ('sqlite', 'postgres' or 'mysql').
    :raises ValueError: If database type cannot be determined.
    """
    if not conn_string:
        raise ValueError("Connection string is required")

    conn_lower = conn_string.lower()

    if conn_lower.startswith(("postgresql://", "postgres://", "postgresql+")):
        return "postgres"

    if conn_lower.startswith(("mysql://", "mysql+", "mariadb://", "mariadb+")):
        return "mysql"

    if conn_lower.startswith(("sqlite://", "sqlite+")):
        return "sqlite"

    scheme = conn_string.split("://", 1)[0] if "://" in conn_string else "unknown"
    raise ValueError(
        f"Could not detect database type from connection string. "
        f"Supported: sqlite://, postgresql://, mysql://, or variations with "
        f"explicit drivers. Got scheme: '{scheme}'"
    )


def _normalize_url(conn_string: str) -> str:
    if conn_string.startswith("postgres://"):
        return conn_string.replace("postgres://", "postgresql://", 1)
    if conn_string.startswith("mysql://"):
        return conn_string.replace("mysql://", "mysql+pymysql://", 1)
    return conn_string


def _connect_args(db_type: str, timeout: float) -> Dict[str, Any]:
    if db_type == "sqlite":
        return {"timeout": timeout}
    if db_type == "postgres":
        return {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    if db_type == "mysql":
        seconds = max(1, int(timeout))
        return {
            "connect_timeout": seconds,
            "read_timeout": seconds,
            "write_timeout": seconds,
        }
    return {}


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_sync_engine(
    conn_string: str,
    statement_timeout: float = DEFAULT_STATEMENT_TIMEOUT_SECONDS,
    echo: bool = False,
) -> Engine:
    db_type = detect_db_type(conn_string)
    engine_kwargs: Dict[str, Any] = {
        "echo": echo,
        "connect_args": _connect_args(db_type, statement_timeout),
    }
    if db_type != "sqlite":
        engine_kwargs.update(
            {
                "pool_pre_ping": True,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": statement_timeout,
            }
        )

    engine = create_engine(_normalize_url(conn_string), **engine_kwargs)
    if db_type == "sqlite":
        _enable_sqlite_savepoints(engine)
    return engine
