"""Per-entity descriptors driving the generic import, update and export paths.

A descriptor names the target table, the insert column order, the key used by
the conflict-fallback update, the columns that update touches, and how records
map to rows and back. Columns left out of ``update_columns`` are never changed
once a row exists.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from sqlalchemy import ColumnElement, Insert, Select, Table, Update, and_

from zendb.models import schema
from zendb.models.entities import (
    TERMINAL_TICKET_STATUSES,
    AuditEvent,
    CustomFieldValue,
    Group,
    Organization,
    Ticket,
    TicketEnhanced,
    TicketField,
    TicketMetric,
    User,
)
from zendb.storage import statements
from zendb.utils.datetime import from_epoch, to_epoch

T = TypeVar("T")

GROUPS = "groups"
ORGANIZATIONS = "organizations"
USERS = "users"
TICKETS = "tickets"
TICKET_FIELDS = "ticket_fields"
TICKET_FIELD_VALUES = "ticket_metadata"
TICKET_METRICS = "ticket_metrics"
TICKET_AUDITS = "ticket_audit"

Row = Dict[str, Any]


@dataclass(frozen=True)
class ExportQuery:
    """Filters and ordering for incremental export of one entity type."""

    columns: Tuple[str, ...]
    filters: Tuple[ColumnElement[bool], ...] = ()
    order_by: Tuple[ColumnElement[Any], ...] = ()


@dataclass(frozen=True)
class InsertCondition:
    """Gate an insert on a matching row in another table."""

    source: Table
    where: Callable[[Row], ColumnElement[bool]]


@dataclass(frozen=True)
class EntityDescriptor(Generic[T]):
    name: str
    table: Table
    record_type: type
    columns: Tuple[str, ...]
    key_columns: Tuple[str, ...]
    update_columns: Tuple[str, ...]
    to_row: Callable[[T], Row]
    watermark_of: Callable[[T], Optional[int]]
    checkpointed: bool = True
    insert_condition: Optional[InsertCondition] = None
    export_query: Optional[ExportQuery] = None
    from_row: Optional[Callable[[Mapping[str, Any]], Any]] = None

    def insert_statement(self, row: Row) -> Insert:
        if self.insert_condition is not None:
            gate = self.insert_condition
            return statements.build_conditional_insert(
                self.table, self.columns, row, gate.source, gate.where(row)
            )
        return statements.build_insert(self.table, self.columns, row)

    def update_statement(
        self, row: Row, columns: Optional[Sequence[str]] = None
    ) -> Update:
        return statements.build_update(
            self.table, columns or self.update_columns, self.key_columns, row
        )

    def select_statement(self, since: int) -> Select:
        if self.export_query is None:
            raise ValueError(f"{self.name} does not support export")
        query = self.export_query
        return statements.build_select(
            self.table, query.columns, since, query.filters, query.order_by
        )

    def count_statement(self, since: int) -> Select:
        return statements.build_count(self.table, since)

    def key_of(self, row: Row) -> Any:
        values = tuple(row[col] for col in self.key_columns)
        return values[0] if len(values) == 1 else values

    def key_of_record(self, record: Any) -> Any:
        """Key read straight off a record, for reporting before it is mapped."""
        values = tuple(getattr(record, col, None) for col in self.key_columns)
        return values[0] if len(values) == 1 else values


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _by_id(record: Any) -> Optional[int]:
    return record.id


def _group_row(e: Group) -> Row:
    return {
        "id": e.id,
        "name": e.name,
        "created_at": to_epoch(e.created_at),
        "updated_at": to_epoch(e.updated_at),
    }


def _organization_row(e: Organization) -> Row:
    return {
        "id": e.id,
        "name": e.name,
        "created_at": to_epoch(e.created_at),
        "updated_at": to_epoch(e.updated_at),
        "group_id": e.group_id,
    }


def _organization_from_row(row: Mapping[str, Any]) -> Organization:
    return Organization(
        id=row["id"],
        name=row["name"],
        created_at=from_epoch(row["created_at"]),
        updated_at=from_epoch(row["updated_at"]),
        group_id=row["group_id"],
    )


def _user_row(e: User) -> Row:
    return {
        "id": e.id,
        "email": e.email,
        "name": e.name,
        "created_at": to_epoch(e.created_at),
        "organization_id": e.organization_id,
        "default_group_id": e.default_group_id,
        "role": e.role,
        "time_zone": e.time_zone,
        "updated_at": to_epoch(e.updated_at),
    }


def _ticket_row(e: Ticket) -> Row:
    # Reporting columns are owned by later enrichment; inserts seed defaults.
    return {
        "id": e.id,
        "subject": e.subject,
        "status": e.status,
        "requester_id": e.requester_id,
        "submitter_id": e.submitter_id,
        "assignee_id": e.assignee_id,
        "organization_id": e.organization_id,
        "group_id": e.group_id,
        "created_at": to_epoch(e.created_at),
        "updated_at": to_epoch(e.updated_at),
        "version": "",
        "component": "",
        "priority": "",
        "ttfr": 0,
        "solved_at": 0,
    }


def _ticket_from_row(row: Mapping[str, Any]) -> TicketEnhanced:
    return TicketEnhanced(
        id=row["id"],
        subject=row["subject"],
        status=row["status"],
        requester_id=row["requester_id"],
        submitter_id=row["submitter_id"],
        assignee_id=row["assignee_id"],
        organization_id=row["organization_id"],
        group_id=row["group_id"],
        created_at=from_epoch(row["created_at"]),
        updated_at=from_epoch(row["updated_at"]),
        version=row["version"] or "",
        component=row["component"] or "",
        priority=row["priority"] or "",
        ttfr=row["ttfr"] or 0,
        solved_at=from_epoch(row["solved_at"]),
    )


def _ticket_field_row(e: TicketField) -> Row:
    return {"id": e.id, "title": e.title}


def _field_value_row(e: CustomFieldValue) -> Row:
    return {
        "ticket_id": e.ticket_id,
        "field_id": e.field_id,
        "raw_value": _stringify(e.raw_value),
        "transformed_value": _stringify(e.transformed_value),
    }


def _metric_row(e: TicketMetric) -> Row:
    return {
        "id": e.id,
        "created_at": to_epoch(e.created_at),
        "updated_at": to_epoch(e.updated_at),
        "ticket_id": e.ticket_id,
        "replies": e.replies,
        "ttfr": e.reply_time_business_minutes,
        "solved_at": to_epoch(e.solved_at),
    }


def _metric_watermark(e: TicketMetric) -> Optional[int]:
    # Unsolved metrics will still change upstream; they must not move the mark.
    if not e.is_solved:
        return None
    return e.ticket_id


def _audit_row(e: AuditEvent) -> Row:
    return {
        "ticket_id": e.ticket_id,
        "author_id": e.author_id,
        "value": _stringify(e.value),
        "event_type": e.event_type,
        "field_name": e.field_name,
    }


def _audit_watermark(e: AuditEvent) -> Optional[int]:
    return e.audit_id or None


_TICKET_COLUMNS = (
    "id",
    "subject",
    "status",
    "requester_id",
    "submitter_id",
    "assignee_id",
    "organization_id",
    "group_id",
    "created_at",
    "updated_at",
    "version",
    "component",
    "priority",
    "ttfr",
    "solved_at",
)

_METRIC_COLUMNS = (
    "id",
    "created_at",
    "updated_at",
    "ticket_id",
    "replies",
    "ttfr",
    "solved_at",
)


def _terminal_parent(row: Row) -> ColumnElement[bool]:
    # Metric facts only materialize once the parent ticket is final.
    tickets = schema.tickets
    return and_(
        tickets.c.id == row["ticket_id"],
        tickets.c.status.in_(TERMINAL_TICKET_STATUSES),
    )


GROUP: EntityDescriptor[Group] = EntityDescriptor(
    name=GROUPS,
    table=schema.groups,
    record_type=Group,
    columns=("id", "name", "created_at", "updated_at"),
    key_columns=("id",),
    update_columns=("name", "created_at", "updated_at"),
    to_row=_group_row,
    watermark_of=_by_id,
)

ORGANIZATION: EntityDescriptor[Organization] = EntityDescriptor(
    name=ORGANIZATIONS,
    table=schema.organizations,
    record_type=Organization,
    columns=("id", "name", "created_at", "updated_at", "group_id"),
    key_columns=("id",),
    update_columns=("name", "created_at", "updated_at", "group_id"),
    to_row=_organization_row,
    watermark_of=_by_id,
    export_query=ExportQuery(
        columns=("id", "name", "created_at", "updated_at", "group_id"),
        filters=(
            schema.organizations.c.id > 0,
            schema.organizations.c.name.not_like("%deleted%"),
        ),
        order_by=(schema.organizations.c.name.asc(),),
    ),
    from_row=_organization_from_row,
)

USER: EntityDescriptor[User] = EntityDescriptor(
    name=USERS,
    table=schema.users,
    record_type=User,
    columns=(
        "id",
        "email",
        "name",
        "created_at",
        "organization_id",
        "default_group_id",
        "role",
        "time_zone",
        "updated_at",
    ),
    key_columns=("id",),
    update_columns=(
        "email",
        "name",
        "created_at",
        "organization_id",
        "default_group_id",
        "role",
        "time_zone",
        "updated_at",
    ),
    to_row=_user_row,
    watermark_of=_by_id,
)

TICKET: EntityDescriptor[Ticket] = EntityDescriptor(
    name=TICKETS,
    table=schema.tickets,
    record_type=Ticket,
    columns=_TICKET_COLUMNS,
    key_columns=("id",),
    update_columns=_TICKET_COLUMNS[1:10],
    to_row=_ticket_row,
    watermark_of=_by_id,
    export_query=ExportQuery(
        columns=_TICKET_COLUMNS,
        filters=(schema.tickets.c.status != "deleted",),
        order_by=(
            schema.tickets.c.organization_id.asc(),
            schema.tickets.c.id.desc(),
        ),
    ),
    from_row=_ticket_from_row,
)

TICKET_FIELD: EntityDescriptor[TicketField] = EntityDescriptor(
    name=TICKET_FIELDS,
    table=schema.ticket_fields,
    record_type=TicketField,
    columns=("id", "title"),
    key_columns=("id",),
    update_columns=("title",),
    to_row=_ticket_field_row,
    watermark_of=_by_id,
)

TICKET_FIELD_VALUE: EntityDescriptor[CustomFieldValue] = EntityDescriptor(
    name=TICKET_FIELD_VALUES,
    table=schema.ticket_metadata,
    record_type=CustomFieldValue,
    columns=("ticket_id", "field_id", "raw_value", "transformed_value"),
    key_columns=("ticket_id", "field_id"),
    update_columns=("raw_value", "transformed_value"),
    to_row=_field_value_row,
    watermark_of=lambda e: None,
    checkpointed=False,
)

TICKET_METRIC: EntityDescriptor[TicketMetric] = EntityDescriptor(
    name=TICKET_METRICS,
    table=schema.ticket_metrics,
    record_type=TicketMetric,
    columns=_METRIC_COLUMNS,
    key_columns=("id",),
    update_columns=_METRIC_COLUMNS[1:],
    to_row=_metric_row,
    watermark_of=_metric_watermark,
    insert_condition=InsertCondition(
        source=schema.tickets,
        where=_terminal_parent,
    ),
)

TICKET_AUDIT: EntityDescriptor[AuditEvent] = EntityDescriptor(
    name=TICKET_AUDITS,
    table=schema.ticket_audit,
    record_type=AuditEvent,
    columns=("ticket_id", "author_id", "value", "event_type", "field_name"),
    key_columns=("ticket_id",),
    update_columns=("author_id", "value", "event_type", "field_name"),
    to_row=_audit_row,
    watermark_of=_audit_watermark,
)

DESCRIPTORS: Dict[str, EntityDescriptor[Any]] = {
    d.name: d
    for d in (
        GROUP,
        ORGANIZATION,
        USER,
        TICKET,
        TICKET_FIELD,
        TICKET_FIELD_VALUE,
        TICKET_METRIC,
        TICKET_AUDIT,
    )
}


def get_descriptor(name: str) -> EntityDescriptor[Any]:
    try:
        return DESCRIPTORS[name]
    except KeyError:
        raise ValueError(
            f"Unknown entity type: {name}. Supported: {', '.join(sorted(DESCRIPTORS))}"
        ) from None
