"""Typed records exchanged with the sync engine.

Records carry structured datetimes; conversion to epoch seconds happens in the
entity descriptors at the storage boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from zendb.utils.datetime import to_epoch

TERMINAL_TICKET_STATUSES = ("solved", "closed", "deleted")


@dataclass
class Group:
    id: int
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Organization:
    id: int
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    group_id: Optional[int] = None


@dataclass
class User:
    id: int
    email: Optional[str]
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    organization_id: Optional[int] = None
    default_group_id: Optional[int] = None
    role: Optional[str] = None
    time_zone: Optional[str] = None


@dataclass
class CustomField:
    """A custom field value as embedded in an upstream ticket."""

    id: int
    value: Any = None
    transformed: Optional[str] = None


@dataclass
class Ticket:
    id: int
    subject: Optional[str]
    status: str
    requester_id: Optional[int] = None
    submitter_id: Optional[int] = None
    assignee_id: Optional[int] = None
    organization_id: Optional[int] = None
    group_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    custom_fields: List[CustomField] = field(default_factory=list)


@dataclass
class TicketEnhanced(Ticket):
    """A ticket as read back from the store, with derived reporting columns."""

    version: str = ""
    component: str = ""
    priority: str = ""
    ttfr: int = 0
    solved_at: Optional[datetime] = None


@dataclass
class CustomFieldValue:
    ticket_id: int
    field_id: int
    raw_value: Optional[str] = None
    transformed_value: Optional[str] = None


@dataclass
class TicketField:
    id: int
    title: str


@dataclass
class TicketMetric:
    id: int
    ticket_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    replies: int = 0
    reply_time_business_minutes: Optional[int] = None
    solved_at: Optional[datetime] = None

    @property
    def is_solved(self) -> bool:
        return to_epoch(self.solved_at) > 0


@dataclass
class AuditChange:
    """A single event inside an upstream ticket audit."""

    type: str
    field_name: Optional[str] = None
    value: Any = None


@dataclass
class Audit:
    id: int
    ticket_id: int
    author_id: Optional[int] = None
    created_at: Optional[datetime] = None
    events: List[AuditChange] = field(default_factory=list)


@dataclass
class AuditEvent:
    """A persisted audit event.

    ``audit_id`` is the identifier of the source audit and only feeds the
    watermark; it is not stored.
    """

    ticket_id: int
    author_id: Optional[int]
    value: Optional[str]
    event_type: str
    field_name: Optional[str]
    audit_id: int = 0
