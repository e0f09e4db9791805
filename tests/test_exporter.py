from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import literal, select, text

from zendb.models.entities import Group, Organization, Ticket, TicketEnhanced
from zendb.models.schema import tickets
from zendb.storage.checkpoints import CheckpointStore
from zendb.storage.descriptors import GROUP, ORGANIZATION, TICKET, EntityDescriptor
from zendb.storage.errors import ExportFailure
from zendb.storage.executor import UpsertExecutor
from zendb.storage.exporter import IncrementalExporter

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def executor(engine):
    return UpsertExecutor(engine, CheckpointStore(engine))


@pytest.fixture
def exporter(engine):
    return IncrementalExporter(engine)


def _ticket(id, organization_id, status="open", updated_at=T1):
    return Ticket(
        id=id,
        subject=f"ticket {id}",
        status=status,
        organization_id=organization_id,
        created_at=T0,
        updated_at=updated_at,
    )


class TestTicketExport:
    def test_orders_by_organization_then_id_desc(self, executor, exporter):
        executor.import_batch(
            TICKET, [_ticket(5, 1), _ticket(3, 2), _ticket(9, 1)]
        )

        exported = exporter.export(TICKET, int(T0.timestamp()))

        assert [(t.organization_id, t.id) for t in exported] == [(1, 9), (1, 5), (2, 3)]
        assert all(isinstance(t, TicketEnhanced) for t in exported)

    def test_excludes_deleted(self, executor, exporter):
        executor.import_batch(
            TICKET, [_ticket(1, 1), _ticket(2, 1, status="deleted")]
        )
        assert [t.id for t in exporter.export(TICKET, 0)] == [1]

    def test_watermark_is_inclusive(self, executor, exporter):
        executor.import_batch(
            TICKET, [_ticket(1, 1, updated_at=T0), _ticket(2, 1, updated_at=T1)]
        )

        assert [t.id for t in exporter.export(TICKET, int(T1.timestamp()))] == [2]
        assert [t.id for t in exporter.export(TICKET, int(T0.timestamp()))] == [2, 1]
        assert exporter.export(TICKET, int(T1.timestamp()) + 1) == []

    def test_reads_reporting_columns(self, executor, exporter, engine):
        executor.import_batch(TICKET, [_ticket(1, 1, status="solved")])
        with engine.begin() as conn:
            conn.execute(
                text(
                    "UPDATE tickets SET ttfr = 90, priority = 'high', "
                    "solved_at = :solved WHERE id = 1"
                ),
                {"solved": int(T1.timestamp())},
            )

        (ticket,) = exporter.export(TICKET, 0)

        assert ticket.ttfr == 90
        assert ticket.priority == "high"
        assert ticket.version == ""
        assert ticket.solved_at == T1
        assert ticket.created_at == T0

    def test_unsolved_ticket_has_no_solved_at(self, executor, exporter):
        executor.import_batch(TICKET, [_ticket(1, 1)])
        (ticket,) = exporter.export(TICKET, 0)
        assert ticket.solved_at is None


class TestOrganizationExport:
    def test_filters_and_orders_by_name(self, executor, exporter):
        executor.import_batch(
            ORGANIZATION,
            [
                Organization(id=1, name="Zeta", updated_at=T1),
                Organization(id=2, name="Acme", updated_at=T1),
                Organization(id=3, name="Acme (deleted)", updated_at=T1),
            ],
        )

        exported = exporter.export(ORGANIZATION, 0)

        assert [o.name for o in exported] == ["Acme", "Zeta"]
        assert exported[0] == Organization(
            id=2, name="Acme", created_at=None, updated_at=T1, group_id=None
        )


class TestCountDivergence:
    def test_trims_when_fewer_rows_than_counted(self, executor, exporter):
        # The count query does not apply the name filter.
        executor.import_batch(
            ORGANIZATION,
            [
                Organization(id=1, name="Acme", updated_at=T1),
                Organization(id=2, name="deleted org", updated_at=T1),
            ],
        )
        assert [o.id for o in exporter.export(ORGANIZATION, 0)] == [1]

    def test_grows_when_more_rows_than_counted(self, executor, exporter):
        executor.import_batch(TICKET, [_ticket(1, 1), _ticket(2, 1), _ticket(3, 1)])

        with patch.object(
            EntityDescriptor, "count_statement", lambda self, since: select(literal(1))
        ):
            exported = exporter.export(TICKET, 0)

        assert [t.id for t in exported] == [3, 2, 1]


class TestExportFailures:
    def test_query_error_raises(self, exporter, engine):
        tickets.drop(engine)
        with pytest.raises(ExportFailure, match="tickets"):
            exporter.export(TICKET, 0)

    def test_unsupported_entity(self, executor, exporter):
        executor.import_batch(GROUP, [Group(id=1, name="Support")])
        with pytest.raises(ValueError, match="does not support export"):
            exporter.export(GROUP, 0)

    def test_row_mapping_error_raises(self, executor, exporter):
        def broken(row):
            raise AttributeError("'NoneType' object has no attribute 'strip'")

        executor.import_batch(ORGANIZATION, [Organization(id=1, name="Acme")])
        descriptor = dataclasses.replace(ORGANIZATION, from_row=broken)

        with pytest.raises(ExportFailure, match="failed to read row from organizations"):
            exporter.export(descriptor, 0)
