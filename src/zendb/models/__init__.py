from .entities import (
    TERMINAL_TICKET_STATUSES,
    Audit,
    AuditChange,
    AuditEvent,
    CustomField,
    CustomFieldValue,
    Group,
    Organization,
    Ticket,
    TicketEnhanced,
    TicketField,
    TicketMetric,
    User,
)
from .schema import SEQUENCE_TABLE, metadata

__all__ = [
    "Audit",
    "AuditChange",
    "AuditEvent",
    "CustomField",
    "CustomFieldValue",
    "Group",
    "Organization",
    "SEQUENCE_TABLE",
    "TERMINAL_TICKET_STATUSES",
    "Ticket",
    "TicketEnhanced",
    "TicketField",
    "TicketMetric",
    "User",
    "metadata",
]
