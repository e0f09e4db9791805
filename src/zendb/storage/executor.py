"""Transactional batch upserts.

Each batch runs in one transaction. Every record is attempted as an insert
inside its own savepoint; a uniqueness conflict rolls the savepoint back and
retries the record as an update keyed on the descriptor's key columns. Any
other write error, or a record that fails its transformation or row mapping,
skips the record and the batch carries on. The batch's
watermark is computed only from records that were actually written, and is
committed only after the batch transaction commits.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    DefaultDict,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from sqlalchemy.engine import Connection, Engine, Transaction
from sqlalchemy.exc import SQLAlchemyError

from zendb.config import DEFAULT_BATCH_TIMEOUT_SECONDS
from zendb.storage.checkpoints import CheckpointStore
from zendb.storage.descriptors import EntityDescriptor
from zendb.storage.errors import (
    BatchTimeout,
    TransactionFailure,
    TransientWriteFailure,
    is_unique_violation,
)
from zendb.utils.logging import sanitize_for_log

if TYPE_CHECKING:
    from zendb.sync.pipeline import TransformationPipeline

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    entity: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    last: Optional[int] = None
    checkpoint_committed: bool = False
    written: List[Any] = field(default_factory=list)
    failures: List[TransientWriteFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def track(self, descriptor: EntityDescriptor[Any], record: Any) -> None:
        self.written.append(record)
        mark = descriptor.watermark_of(record)
        if mark is not None and (self.last is None or mark > self.last):
            self.last = mark


class UpsertExecutor:
    """Writes batches of records for one entity type at a time.

    Batches for the same entity type are serialized within the process;
    batches for different entity types may run concurrently.
    """

    def __init__(
        self,
        engine: Engine,
        checkpoints: CheckpointStore,
        pipeline: Optional["TransformationPipeline"] = None,
        batch_timeout: float = DEFAULT_BATCH_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.checkpoints = checkpoints
        self.pipeline = pipeline
        self.batch_timeout = batch_timeout
        self.clock = clock
        self._entity_locks: DefaultDict[str, threading.Lock] = defaultdict(
            threading.Lock
        )
        self._locks_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._entity_locks[name]

    def import_batch(
        self, descriptor: EntityDescriptor[T], records: Sequence[T]
    ) -> BatchResult:
        """Upsert ``records`` in one transaction, then advance the checkpoint.

        Raises:
            TransactionFailure: If the transaction cannot begin or commit, or
                the batch exceeds its time budget. Nothing from the batch is
                applied and the checkpoint is left untouched.
        """
        result = BatchResult(entity=descriptor.name)
        if not records:
            return result

        with self._lock_for(descriptor.name):
            self._write_batch(descriptor, records, result)
            if descriptor.checkpointed and result.last is not None:
                result.checkpoint_committed = self.checkpoints.commit(
                    descriptor.name, result.last
                )

        if result.failures:
            logger.info(
                "%s batch: %d inserted, %d updated, %d skipped, %d failed",
                descriptor.name,
                result.inserted,
                result.updated,
                result.skipped,
                result.failed,
            )
        return result

    def _write_batch(
        self,
        descriptor: EntityDescriptor[T],
        records: Sequence[T],
        result: BatchResult,
    ) -> None:
        deadline = self.clock() + self.batch_timeout
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as exc:
            raise TransactionFailure(
                f"could not open connection for {descriptor.name}: {exc}"
            ) from exc

        with conn:
            try:
                trans = conn.begin()
            except SQLAlchemyError as exc:
                raise TransactionFailure(
                    f"could not begin transaction for {descriptor.name}: {exc}"
                ) from exc

            try:
                for record in records:
                    if self.clock() > deadline:
                        raise BatchTimeout(
                            f"{descriptor.name} batch exceeded "
                            f"{self.batch_timeout:.0f}s and was rolled back"
                        )
                    self._write_record(conn, descriptor, record, result)
            except BaseException:
                _rollback(trans)
                raise

            try:
                trans.commit()
            except SQLAlchemyError as exc:
                _rollback(trans)
                raise TransactionFailure(
                    f"could not commit {descriptor.name} batch: {exc}"
                ) from exc

    def _write_record(
        self,
        conn: Connection,
        descriptor: EntityDescriptor[T],
        record: T,
        result: BatchResult,
    ) -> None:
        try:
            if self.pipeline is not None:
                self.pipeline.apply(descriptor, record)
            row = descriptor.to_row(record)
            key = descriptor.key_of(row)
            insert_stmt = descriptor.insert_statement(row)
            update_stmt = descriptor.update_statement(row)
        except Exception as exc:
            # A record that cannot be prepared is skipped like a failed write.
            self._record_failure(
                descriptor, descriptor.key_of_record(record), exc, result
            )
            return

        try:
            with conn.begin_nested():
                inserted = conn.execute(insert_stmt).rowcount
        except SQLAlchemyError as exc:
            if not is_unique_violation(exc, conn.dialect.name):
                self._record_failure(descriptor, key, exc, result)
                return
            logger.debug("%s %s exists, updating", descriptor.name, key)
        else:
            if inserted == 0:
                # Conditional insert whose gate did not match.
                logger.debug("%s %s not materialized yet", descriptor.name, key)
                result.skipped += 1
                return
            result.inserted += 1
            result.track(descriptor, record)
            return

        try:
            with conn.begin_nested():
                changed = conn.execute(update_stmt).rowcount
        except SQLAlchemyError as exc:
            self._record_failure(descriptor, key, exc, result)
            return
        if changed == 0:
            result.skipped += 1
            return
        result.updated += 1
        result.track(descriptor, record)

    def _record_failure(
        self,
        descriptor: EntityDescriptor[Any],
        key: Any,
        exc: Exception,
        result: BatchResult,
    ) -> None:
        failure = TransientWriteFailure(descriptor.table.name, key, exc)
        result.failures.append(failure)
        logger.warning(
            "Failed to write %s into %s: %s",
            sanitize_for_log(key),
            descriptor.table.name,
            sanitize_for_log(str(getattr(exc, "orig", None) or exc)),
        )

    def update_record(
        self,
        descriptor: EntityDescriptor[T],
        record: T,
        columns: Optional[Sequence[str]] = None,
    ) -> bool:
        """Update one existing row outside the batch and checkpoint path.

        Returns True when a row was changed. Write errors are logged and
        reported as False.
        """
        cols = tuple(columns) if columns else descriptor.update_columns
        unknown = set(cols) - set(descriptor.update_columns)
        if unknown:
            raise ValueError(
                f"Columns not updatable on {descriptor.name}: {sorted(unknown)}"
            )
        row = descriptor.to_row(record)
        key = descriptor.key_of(row)
        stmt = descriptor.update_statement(row, cols)
        try:
            with self.engine.begin() as conn:
                changed = conn.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to update %s in %s: %s",
                sanitize_for_log(key),
                descriptor.table.name,
                sanitize_for_log(str(getattr(exc, "orig", None) or exc)),
            )
            return False
        if changed == 0:
            logger.debug("%s %s not found, nothing updated", descriptor.name, key)
        return changed > 0


def _rollback(trans: Transaction) -> None:
    if not trans.is_active:
        return
    try:
        trans.rollback()
    except SQLAlchemyError as exc:
        logger.warning("Rollback failed: %s", sanitize_for_log(str(exc)))
