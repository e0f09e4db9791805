"""Entity synchronizers composing the executor, exporter and checkpoints.

A single generic synchronizer handles every entity type through its
descriptor. Tickets additionally write their embedded custom field values,
and audits are flattened into the field-change events worth keeping.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Generic, List, Optional, Sequence, TypeVar, Union

from zendb.models.entities import Audit, AuditEvent, CustomFieldValue, Ticket
from zendb.storage.descriptors import EntityDescriptor
from zendb.storage.errors import TransactionFailure
from zendb.storage.executor import BatchResult, UpsertExecutor
from zendb.storage.exporter import IncrementalExporter
from zendb.utils.datetime import to_epoch
from zendb.utils.logging import log_duration, sanitize_for_log

T = TypeVar("T")

logger = logging.getLogger(__name__)

AUDIT_CHANGE_EVENT = "Change"


def _check_types(records: Sequence[Any], record_type: type, entity: str) -> None:
    for record in records:
        if not isinstance(record, record_type):
            raise TypeError(
                f"{entity} expects {record_type.__name__} records, "
                f"got {type(record).__name__}"
            )


class EntitySynchronizer(Generic[T]):
    def __init__(
        self,
        descriptor: EntityDescriptor[T],
        executor: UpsertExecutor,
        exporter: Optional[IncrementalExporter] = None,
    ) -> None:
        self.descriptor = descriptor
        self.executor = executor
        self.exporter = exporter

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def supports_export(self) -> bool:
        return self.exporter is not None and self.descriptor.export_query is not None

    def import_records(self, records: Sequence[T]) -> BatchResult:
        """Transform, upsert and checkpoint one batch of records."""
        _check_types(records, self.descriptor.record_type, self.name)
        with log_duration(f"{self.name} import", logger):
            return self.executor.import_batch(self.descriptor, records)

    def update(self, record: T, columns: Optional[Sequence[str]] = None) -> bool:
        _check_types([record], self.descriptor.record_type, self.name)
        return self.executor.update_record(self.descriptor, record, columns)

    def export(self, since: Union[int, datetime]) -> List[Any]:
        exporter = self.exporter
        if exporter is None or self.descriptor.export_query is None:
            raise ValueError(f"{self.name} does not support export")
        watermark = to_epoch(since) if isinstance(since, datetime) else int(since)
        with log_duration(f"{self.name} export", logger):
            return exporter.export(self.descriptor, watermark)


class TicketSynchronizer(EntitySynchronizer[Ticket]):
    """Imports tickets and, for every ticket written, its custom field values.

    Field values are written after the ticket batch commits, one transaction
    per ticket, so a field value failure never undoes the ticket write.
    """

    def __init__(
        self,
        descriptor: EntityDescriptor[Ticket],
        executor: UpsertExecutor,
        exporter: Optional[IncrementalExporter],
        field_values: EntitySynchronizer[CustomFieldValue],
    ) -> None:
        super().__init__(descriptor, executor, exporter)
        self.field_values = field_values

    def import_records(self, records: Sequence[Ticket]) -> BatchResult:
        result = super().import_records(records)
        for ticket in result.written:
            self.import_field_values(ticket)
        return result

    def import_field_values(self, ticket: Ticket) -> Optional[BatchResult]:
        values = [
            CustomFieldValue(
                ticket_id=ticket.id,
                field_id=field.id,
                raw_value=field.value,
                transformed_value=field.transformed,
            )
            for field in ticket.custom_fields
        ]
        if not values:
            return None
        try:
            return self.field_values.import_records(values)
        except TransactionFailure as exc:
            logger.warning(
                "Custom field values for ticket %s not written: %s",
                ticket.id,
                sanitize_for_log(str(exc)),
            )
            return None


class AuditSynchronizer(EntitySynchronizer[AuditEvent]):
    """Persists only ``Change`` events on the configured field of interest.

    The audit watermark advances to the highest audit id that produced at
    least one persisted event; audits with no matching event do not move it.
    """

    def __init__(
        self,
        descriptor: EntityDescriptor[AuditEvent],
        executor: UpsertExecutor,
        field_id: str,
    ) -> None:
        super().__init__(descriptor, executor)
        self.field_id = str(field_id)

    def events_for(self, audit: Audit) -> List[AuditEvent]:
        return [
            AuditEvent(
                ticket_id=audit.ticket_id,
                author_id=audit.author_id,
                value=change.value,
                event_type=change.type,
                field_name=str(change.field_name),
                audit_id=audit.id,
            )
            for change in audit.events
            if change.type == AUDIT_CHANGE_EVENT
            and change.field_name is not None
            and str(change.field_name) == self.field_id
        ]

    def import_records(self, records: Sequence[Audit]) -> BatchResult:  # type: ignore[override]
        _check_types(records, Audit, self.name)
        events = [event for audit in records for event in self.events_for(audit)]
        with log_duration(f"{self.name} import", logger):
            return self.executor.import_batch(self.descriptor, events)
