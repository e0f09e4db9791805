"""SQL statement builders over the Core tables.

Every builder is a pure function returning a new statement per call. Record
values are bound into the statement itself, and identifiers are quoted by the
dialect at compile time.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from sqlalchemy import (
    ColumnElement,
    Insert,
    Select,
    Table,
    Update,
    and_,
    func,
    insert,
    literal,
    select,
    update,
)

Row = Mapping[str, Any]


def _require_columns(columns: Sequence[str]) -> None:
    if not columns:
        raise ValueError("At least one column is required")


def build_insert(table: Table, columns: Sequence[str], row: Row) -> Insert:
    _require_columns(columns)
    return insert(table).values({col: row[col] for col in columns})


def build_conditional_insert(
    table: Table,
    columns: Sequence[str],
    row: Row,
    source: Table,
    condition: ColumnElement[bool],
) -> Insert:
    """INSERT ... SELECT that only materializes a row when ``condition`` holds.

    The values are selected from ``source`` so the insert affects zero rows
    when no source row satisfies the condition.
    """
    _require_columns(columns)
    values = (
        select(
            *(
                literal(row[col], type_=table.c[col].type).label(col)
                for col in columns
            )
        )
        .select_from(source)
        .where(condition)
    )
    return insert(table).from_select(list(columns), values)


def key_predicate(
    table: Table, key_columns: Sequence[str], row: Row
) -> ColumnElement[bool]:
    _require_columns(key_columns)
    return and_(*(table.c[col] == row[col] for col in key_columns))


def build_update(
    table: Table, columns: Sequence[str], key_columns: Sequence[str], row: Row
) -> Update:
    _require_columns(columns)
    overlap = set(columns) & set(key_columns)
    if overlap:
        raise ValueError(f"Key columns cannot be updated: {sorted(overlap)}")
    return (
        update(table)
        .where(key_predicate(table, key_columns, row))
        .values({col: row[col] for col in columns})
    )


def build_select(
    table: Table,
    columns: Sequence[str],
    since: int,
    filters: Sequence[ColumnElement[bool]] = (),
    order_by: Sequence[ColumnElement[Any]] = (),
) -> Select:
    """Rows updated at or after ``since`` that also pass ``filters``."""
    _require_columns(columns)
    return (
        select(*(table.c[col] for col in columns))
        .where(table.c.updated_at >= since, *filters)
        .order_by(*order_by)
    )


def build_count(table: Table, since: int) -> Select:
    """Row count used to pre-size exports; shares the watermark predicate."""
    return (
        select(func.count())
        .select_from(table)
        .where(table.c.id > 0, table.c.updated_at >= since)
    )
