"""Relational layout of the sync target.

Timestamps are stored as integer epoch seconds. Every entity table enforces
uniqueness on its key so the insert-first upsert can detect conflicts.
"""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

SEQUENCE_TABLE = "sequence_table"

groups = Table(
    "groups",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("name", Text, nullable=False),
    Column("created_at", BigInteger, nullable=False, server_default="0"),
    Column("updated_at", BigInteger, nullable=False, server_default="0"),
)

organizations = Table(
    "organizations",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("name", Text, nullable=False),
    Column("created_at", BigInteger, nullable=False, server_default="0"),
    Column("updated_at", BigInteger, nullable=False, server_default="0"),
    Column("group_id", BigInteger),
    Index("ix_organizations_updated_at", "updated_at"),
)

users = Table(
    "users",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("email", Text),
    Column("name", Text, nullable=False),
    Column("created_at", BigInteger, nullable=False, server_default="0"),
    Column("organization_id", BigInteger),
    Column("default_group_id", BigInteger),
    Column("role", Text),
    Column("time_zone", Text),
    Column("updated_at", BigInteger, nullable=False, server_default="0"),
)

tickets = Table(
    "tickets",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("subject", Text),
    Column("status", Text, nullable=False),
    Column("requester_id", BigInteger),
    Column("submitter_id", BigInteger),
    Column("assignee_id", BigInteger),
    Column("organization_id", BigInteger),
    Column("group_id", BigInteger),
    Column("created_at", BigInteger, nullable=False, server_default="0"),
    Column("updated_at", BigInteger, nullable=False, server_default="0"),
    Column("version", String(255), nullable=False, server_default=""),
    Column("component", String(255), nullable=False, server_default=""),
    Column("priority", String(255), nullable=False, server_default=""),
    Column("ttfr", Integer, nullable=False, server_default="0"),
    Column("solved_at", BigInteger, nullable=False, server_default="0"),
    Index("ix_tickets_updated_at", "updated_at"),
    Index("ix_tickets_org_id", "organization_id", "id"),
)

ticket_fields = Table(
    "ticket_fields",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("title", Text, nullable=False),
)

ticket_metadata = Table(
    "ticket_metadata",
    metadata,
    Column("ticket_id", BigInteger, nullable=False),
    Column("field_id", BigInteger, nullable=False),
    Column("raw_value", Text),
    Column("transformed_value", Text),
    UniqueConstraint("ticket_id", "field_id", name="uq_ticket_metadata_ticket_field"),
)

ticket_metrics = Table(
    "ticket_metrics",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("created_at", BigInteger, nullable=False, server_default="0"),
    Column("updated_at", BigInteger, nullable=False, server_default="0"),
    Column("ticket_id", BigInteger, nullable=False),
    Column("replies", Integer, nullable=False, server_default="0"),
    Column("ttfr", Integer),
    Column("solved_at", BigInteger, nullable=False, server_default="0"),
)

ticket_audit = Table(
    "ticket_audit",
    metadata,
    Column("ticket_id", BigInteger, nullable=False),
    Column("author_id", BigInteger),
    Column("value", Text),
    Column("event_type", Text, nullable=False),
    Column("field_name", Text),
    UniqueConstraint("ticket_id", name="uq_ticket_audit_ticket"),
)

sequence_table = Table(
    SEQUENCE_TABLE,
    metadata,
    Column("sequence_name", String(255), nullable=False, unique=True),
    Column("last_val", BigInteger, nullable=False, server_default="0"),
)
