"""Error taxonomy for sync runs and backend conflict detection.

A uniqueness conflict is not an error: it switches the upsert to its update
path. Each backend reports conflicts differently, so detection goes through a
per-dialect registry instead of inspecting driver codes in the sync logic.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError


class SyncError(Exception):
    """Base class for sync engine failures."""


class TransientWriteFailure(SyncError):
    """A single record could not be written; the batch continues without it."""

    def __init__(self, table: str, key: object, cause: BaseException) -> None:
        super().__init__(f"failed to write {key!r} into {table}: {cause}")
        self.table = table
        self.key = key
        self.cause = cause


class TransactionFailure(SyncError):
    """A batch transaction could not begin or commit; nothing was applied."""


class BatchTimeout(TransactionFailure):
    """A batch exceeded its time budget and was rolled back."""


class ExportFailure(SyncError):
    """An export query failed; no partial result is returned."""


class CheckpointWriteFailure(SyncError):
    """A watermark could not be persisted; the range will be re-processed."""


ConflictDetector = Callable[[BaseException], bool]

SQLITE_UNIQUE_ERRORNAMES = {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"}
POSTGRES_UNIQUE_VIOLATION = "23505"
MYSQL_DUPLICATE_ENTRY = 1062


def _sqlite_conflict(orig: BaseException) -> bool:
    errorname = getattr(orig, "sqlite_errorname", None)
    if errorname:
        return errorname in SQLITE_UNIQUE_ERRORNAMES
    return str(orig).startswith("UNIQUE constraint failed")


def _postgres_conflict(orig: BaseException) -> bool:
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == POSTGRES_UNIQUE_VIOLATION


def _mysql_conflict(orig: BaseException) -> bool:
    args = getattr(orig, "args", ())
    return bool(args) and args[0] == MYSQL_DUPLICATE_ENTRY


_DETECTORS: Dict[str, ConflictDetector] = {
    "sqlite": _sqlite_conflict,
    "postgresql": _postgres_conflict,
    "mysql": _mysql_conflict,
    "mariadb": _mysql_conflict,
}


def register_conflict_detector(dialect: str, detector: ConflictDetector) -> None:
    _DETECTORS[dialect] = detector


def get_conflict_detector(dialect: str) -> Optional[ConflictDetector]:
    return _DETECTORS.get(dialect)


def is_unique_violation(exc: BaseException, dialect: str) -> bool:
    """Return True when ``exc`` is a uniqueness-constraint violation on ``dialect``."""
    if not isinstance(exc, IntegrityError):
        return False
    detector = get_conflict_detector(dialect)
    if detector is None:
        raise ValueError(f"No conflict detector registered for dialect: {dialect}")
    return detector(exc.orig)
