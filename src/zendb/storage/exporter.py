"""Incremental export of rows changed since a watermark."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from zendb.storage.descriptors import EntityDescriptor
from zendb.storage.errors import ExportFailure

logger = logging.getLogger(__name__)


class IncrementalExporter:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def export(self, descriptor: EntityDescriptor[Any], since: int) -> List[Any]:
        """Return records whose ``updated_at`` is at or after ``since``.

        The result list is pre-sized from a count over the same watermark
        predicate and trimmed to the rows actually read, so concurrent writes
        between the two queries never leave gaps or overflow it.

        Raises:
            ExportFailure: If either query or the row mapping fails. No partial
                result is returned.
        """
        if descriptor.export_query is None or descriptor.from_row is None:
            raise ValueError(f"{descriptor.name} does not support export")

        since = int(since)
        try:
            with self.engine.connect() as conn:
                count = conn.execute(descriptor.count_statement(since)).scalar() or 0
                entities: List[Optional[Any]] = [None] * count
                index = 0
                rows = conn.execute(descriptor.select_statement(since))
                for row in rows.mappings():
                    record = descriptor.from_row(row)
                    if index < count:
                        entities[index] = record
                    else:
                        entities.append(record)
                    index += 1
        except SQLAlchemyError as exc:
            raise ExportFailure(
                f"failed to fetch from {descriptor.table.name}: {exc}"
            ) from exc
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ExportFailure(
                f"failed to read row from {descriptor.table.name}: {exc}"
            ) from exc

        if index != count:
            logger.debug(
                "%s export expected %d rows, read %d", descriptor.name, count, index
            )
        return entities[:index]
