"""Watermark persistence in the target database.

One ``sequence_table`` row per entity type holds the highest identifier known
to be synchronized. Commits are single-statement upserts in their own
transaction, so commits for different entity types never contend on the same
row, and a commit never lowers a stored value.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy import func, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from zendb.models.schema import sequence_table
from zendb.storage.errors import CheckpointWriteFailure
from zendb.utils.logging import sanitize_for_log

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Reads and advances per-entity watermarks."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_all(self) -> Dict[str, int]:
        """Load every stored watermark. Entity types never committed are absent."""
        qry = select(sequence_table.c.sequence_name, sequence_table.c.last_val)
        with self.engine.connect() as conn:
            rows = conn.execute(qry).all()
        return {name: int(last_val) for name, last_val in rows}

    def get(self, name: str) -> int | None:
        qry = select(sequence_table.c.last_val).where(
            sequence_table.c.sequence_name == name
        )
        with self.engine.connect() as conn:
            value = conn.execute(qry).scalar_one_or_none()
        return None if value is None else int(value)

    def _upsert_for_dialect(self, name: str, value: int) -> Any:
        dialect = self.engine.dialect.name
        values = {"sequence_name": name, "last_val": value}
        if dialect in ("mysql", "mariadb"):
            stmt = mysql_insert(sequence_table).values(**values)
            return stmt.on_duplicate_key_update(
                last_val=func.greatest(
                    sequence_table.c.last_val, stmt.inserted.last_val
                )
            )
        if dialect == "sqlite":
            stmt = sqlite_insert(sequence_table).values(**values)
        elif dialect in ("postgres", "postgresql"):
            stmt = pg_insert(sequence_table).values(**values)
        else:
            raise ValueError(f"Unsupported SQL dialect for checkpoints: {dialect}")
        return stmt.on_conflict_do_update(
            index_elements=[sequence_table.c.sequence_name],
            set_={"last_val": stmt.excluded.last_val},
            where=sequence_table.c.last_val < stmt.excluded.last_val,
        )

    def advance(self, name: str, value: int) -> None:
        """Persist ``value`` for ``name`` unless a higher value is already stored.

        Raises:
            CheckpointWriteFailure: If the upsert fails.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(self._upsert_for_dialect(name, value))
        except SQLAlchemyError as exc:
            raise CheckpointWriteFailure(
                f"failed to commit checkpoint {name}={value}: {exc}"
            ) from exc

    def commit(self, name: str, value: int) -> bool:
        """Advance a watermark, logging instead of raising on failure.

        A failed commit leaves the previous watermark in place, so the next
        run re-processes the same range.
        """
        try:
            self.advance(name, value)
        except CheckpointWriteFailure as exc:
            logger.warning(
                "Checkpoint for %s not advanced to %s: %s",
                name,
                value,
                sanitize_for_log(str(exc)),
            )
            return False
        logger.debug("Checkpoint %s advanced to %s", name, value)
        return True
