from __future__ import annotations

from datetime import datetime, timezone

import pytest

from zendb.config import SyncSettings
from zendb.models.entities import (
    Audit,
    AuditChange,
    CustomFieldValue,
    Group,
    Organization,
    Ticket,
    TicketField,
    TicketMetric,
    User,
)
from zendb.models.schema import metadata
from zendb.sync.provider import SyncProvider, open_provider

FIELD_ID = "34347708"
T1 = datetime(2024, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def provider(engine):
    return SyncProvider(engine, audit_field_id=FIELD_ID)


class TestFetchState:
    def test_fresh_database(self, provider):
        assert provider.fetch_state() == {}

    def test_reflects_every_checkpointed_entity(self, provider):
        provider.import_records("groups", [Group(id=2, name="Support")])
        provider.import_records("organizations", [Organization(id=11, name="Acme")])
        provider.import_records("users", [User(id=21, email="ada@example.com", name="Ada")])
        provider.import_records("ticket_fields", [TicketField(id=31, title="Version")])
        provider.import_records("tickets", [Ticket(id=41, subject="s", status="solved")])
        provider.import_records(
            "ticket_metrics", [TicketMetric(id=51, ticket_id=41, solved_at=T1)]
        )
        provider.import_records(
            "ticket_audit",
            [Audit(id=61, ticket_id=41, events=[AuditChange("Change", FIELD_ID, "2.0")])],
        )

        assert provider.fetch_state() == {
            "groups": 2,
            "organizations": 11,
            "users": 21,
            "ticket_fields": 31,
            "tickets": 41,
            "ticket_metrics": 41,
            "ticket_audit": 61,
        }


class TestRouting:
    def test_unknown_entity(self, provider):
        with pytest.raises(ValueError, match="Unknown entity type: macros"):
            provider.import_records("macros", [])

    def test_field_values_only_through_tickets(self, provider):
        with pytest.raises(ValueError, match="imported together with their tickets"):
            provider.import_records(
                "ticket_metadata", [CustomFieldValue(ticket_id=1, field_id=2)]
            )

    def test_audits_require_field_of_interest(self, engine):
        provider = SyncProvider(engine)
        with pytest.raises(RuntimeError, match="ZENDB_AUDIT_FIELD_ID"):
            provider.import_records("ticket_audit", [])

    def test_register_transformation(self, provider):
        provider.register_transformation(
            "organizations", lambda o: setattr(o, "name", o.name.strip())
        )
        provider.import_records("organizations", [Organization(id=1, name="  Acme ")])
        assert [o.name for o in provider.export("organizations", 0)] == ["Acme"]


class TestUpdateAndExport:
    def test_update_subset(self, provider):
        provider.import_records(
            "tickets", [Ticket(id=1, subject="old", status="open", updated_at=T1)]
        )
        changed = provider.update(
            "tickets", Ticket(id=1, subject="new", status="pending"), ["subject"]
        )

        assert changed is True
        (ticket,) = provider.export("tickets", T1)
        assert (ticket.subject, ticket.status) == ("new", "open")

    def test_export_accepts_datetime_watermark(self, provider):
        provider.import_records(
            "tickets", [Ticket(id=1, subject="s", status="open", updated_at=T1)]
        )
        assert [t.id for t in provider.export("tickets", T1)] == [1]
        assert provider.export("tickets", datetime(2025, 1, 1, tzinfo=timezone.utc)) == []

    def test_export_unsupported_entity(self, provider):
        with pytest.raises(ValueError, match="users does not support export"):
            provider.export("users", 0)


class TestExecuteRaw:
    def test_returns_rowcount(self, provider):
        provider.import_records(
            "tickets",
            [Ticket(id=1, subject="a", status="solved"), Ticket(id=2, subject="b", status="open")],
        )

        changed = provider.execute_raw(
            "UPDATE tickets SET priority = :priority WHERE status = :status",
            {"priority": "high", "status": "solved"},
        )

        assert changed == 1
        assert [t.priority for t in provider.export("tickets", 0)] == ["", "high"]


class TestOpenProvider:
    def test_from_settings(self, tmp_path):
        settings = SyncSettings(
            database_uri=f"sqlite:///{tmp_path / 'settings.db'}",
            batch_timeout=12.0,
            audit_field_id=FIELD_ID,
        )
        with open_provider(settings) as provider:
            metadata.create_all(provider.engine)
            assert provider.executor.batch_timeout == 12.0
            assert "ticket_audit" in provider.synchronizers

    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ZENDB_DATABASE_URI", f"sqlite:///{tmp_path / 'env.db'}")
        monkeypatch.delenv("ZENDB_AUDIT_FIELD_ID", raising=False)
        with open_provider() as provider:
            assert provider.engine.dialect.name == "sqlite"
            assert "ticket_audit" not in provider.synchronizers
