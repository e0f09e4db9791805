"""Entry point tying the sync engine to one target database."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine

from zendb.config import DEFAULT_BATCH_TIMEOUT_SECONDS, SyncSettings
from zendb.db import create_sync_engine
from zendb.storage.checkpoints import CheckpointStore
from zendb.storage.descriptors import (
    GROUP,
    ORGANIZATION,
    TICKET,
    TICKET_AUDIT,
    TICKET_AUDITS,
    TICKET_FIELD,
    TICKET_FIELD_VALUE,
    TICKET_FIELD_VALUES,
    TICKET_METRIC,
    USER,
)
from zendb.storage.executor import BatchResult, UpsertExecutor
from zendb.storage.exporter import IncrementalExporter
from zendb.sync.pipeline import TransformationPipeline
from zendb.sync.synchronizers import (
    AuditSynchronizer,
    EntitySynchronizer,
    TicketSynchronizer,
)

logger = logging.getLogger(__name__)


class SyncProvider:
    """Owns the engine and one synchronizer per entity type."""

    def __init__(
        self,
        engine: Engine,
        batch_timeout: float = DEFAULT_BATCH_TIMEOUT_SECONDS,
        audit_field_id: Optional[str] = None,
    ) -> None:
        self.engine = engine
        self.checkpoints = CheckpointStore(engine)
        self.pipeline = TransformationPipeline()
        self.executor = UpsertExecutor(
            engine, self.checkpoints, self.pipeline, batch_timeout=batch_timeout
        )
        self.exporter = IncrementalExporter(engine)

        field_values = EntitySynchronizer(TICKET_FIELD_VALUE, self.executor)
        synchronizers: List[EntitySynchronizer[Any]] = [
            EntitySynchronizer(GROUP, self.executor),
            EntitySynchronizer(ORGANIZATION, self.executor, self.exporter),
            EntitySynchronizer(USER, self.executor),
            TicketSynchronizer(TICKET, self.executor, self.exporter, field_values),
            EntitySynchronizer(TICKET_FIELD, self.executor),
            field_values,
            EntitySynchronizer(TICKET_METRIC, self.executor),
        ]
        if audit_field_id:
            synchronizers.append(
                AuditSynchronizer(TICKET_AUDIT, self.executor, audit_field_id)
            )
        self.synchronizers: Dict[str, EntitySynchronizer[Any]] = {
            s.name: s for s in synchronizers
        }

    def synchronizer(self, entity: str) -> EntitySynchronizer[Any]:
        sync = self.synchronizers.get(entity)
        if sync is not None:
            return sync
        if entity == TICKET_AUDITS:
            raise RuntimeError(
                "Audit import requires a field of interest. "
                "Set ZENDB_AUDIT_FIELD_ID environment variable."
            )
        raise ValueError(
            f"Unknown entity type: {entity}. "
            f"Supported: {', '.join(sorted(self.synchronizers))}"
        )

    def fetch_state(self) -> Dict[str, int]:
        """Current watermark per entity type, read fresh from the database."""
        return self.checkpoints.get_all()

    def register_transformation(self, entity: str, fn: Callable[[Any], None]) -> None:
        self.pipeline.register(self.synchronizer(entity).descriptor, fn)

    def import_records(self, entity: str, records: Sequence[Any]) -> BatchResult:
        if entity == TICKET_FIELD_VALUES:
            raise ValueError(
                "Custom field values are imported together with their tickets"
            )
        return self.synchronizer(entity).import_records(records)

    def update(
        self, entity: str, record: Any, columns: Optional[Sequence[str]] = None
    ) -> bool:
        return self.synchronizer(entity).update(record, columns)

    def export(self, entity: str, since: Union[int, datetime]) -> List[Any]:
        return self.synchronizer(entity).export(since)

    def execute_raw(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> int:
        """Run a caller-supplied statement in its own transaction.

        The statement is executed as given; callers are responsible for it.
        """
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), dict(params or {}))
            return result.rowcount

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "SyncProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_provider(settings: Optional[SyncSettings] = None) -> SyncProvider:
    settings = settings or SyncSettings.from_env()
    engine = create_sync_engine(
        settings.database_uri,
        statement_timeout=settings.statement_timeout,
        echo=settings.echo,
    )
    logger.info("Opened sync provider on %s backend", engine.dialect.name)
    return SyncProvider(
        engine,
        batch_timeout=settings.batch_timeout,
        audit_field_id=settings.audit_field_id,
    )
