# =============================================================================
# File: bidroom/infra/persistence/pg_record_store.py
# Description: PostgreSQL implementation of the generic record store used by
#              the messaging core. SQL is built from a fixed table/column
#              whitelist; values are always bound parameters.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from bidroom.infra.persistence.pg_client import PostgresClient

log = logging.getLogger("bidroom.infra.pg_record_store")

TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "contractor_aliases": ("project_id", "contractor_id", "alias", "created_at"),
    "messages": (
        "id", "project_id", "sender_id", "message_type", "recipient_id", "content", "created_at", "read_at",
    ),
    "message_recipients": ("message_id", "recipient_id", "created_at", "read_at"),
    "message_attachments": (
        "id", "message_id", "file_name", "file_size", "file_type", "file_url", "storage_path", "created_at",
    ),
}

MEMBERSHIP_TYPES = (list, tuple, set, frozenset)


def _check_table(table: str) -> Tuple[str, ...]:
    try:
        return TABLE_COLUMNS[table]
    except KeyError:
        raise ValueError(f"Unknown table: {table!r}") from None


def _check_columns(table: str, columns: Sequence[str]) -> None:
    allowed = _check_table(table)
    unknown = [c for c in columns if c not in allowed]
    if unknown:
        raise ValueError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


def _where_clause(table: str, filters: Optional[Mapping[str, Any]], args: List[Any]) -> str:
    if not filters:
        return ""
    _check_columns(table, list(filters))
    parts = []
    for column, value in filters.items():
        if value is None:
            parts.append(f"{column} IS NULL")
        elif isinstance(value, MEMBERSHIP_TYPES):
            args.append(list(value))
            parts.append(f"{column} = ANY(${len(args)})")
        else:
            args.append(value)
            parts.append(f"{column} = ${len(args)}")
    return " WHERE " + " AND ".join(parts)


def build_select_sql(
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
) -> Tuple[str, List[Any]]:
    _check_table(table)
    args: List[Any] = []
    sql = f"SELECT * FROM {table}" + _where_clause(table, filters, args)
    if order_by:
        _check_columns(table, [order_by])
        sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
    if limit is not None:
        args.append(int(limit))
        sql += f" LIMIT ${len(args)}"
    return sql, args


def build_insert_sql(
        table: str,
        columns: Sequence[str],
        row_count: int = 1,
        ignore_conflicts: bool = False,
) -> str:
    """
    INSERT for ``row_count`` rows of the given columns, returning stored rows.

    With ignore_conflicts, rows hitting any unique constraint are skipped
    (ON CONFLICT DO NOTHING) and simply absent from RETURNING.
    """
    if not columns:
        raise ValueError("Insert needs at least one column")
    if row_count < 1:
        raise ValueError("Insert needs at least one row")
    _check_columns(table, columns)

    width = len(columns)
    groups = []
    for r in range(row_count):
        params = ", ".join(f"${r * width + i + 1}" for i in range(width))
        groups.append(f"({params})")

    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES {', '.join(groups)}"
    if ignore_conflicts:
        sql += " ON CONFLICT DO NOTHING"
    return sql + " RETURNING *"


def build_update_sql(
        table: str,
        values: Mapping[str, Any],
        filters: Mapping[str, Any],
        only_if_null: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    if not values:
        raise ValueError("Update needs at least one value")
    if not filters:
        raise ValueError("Refusing to update without filters")
    _check_columns(table, list(values))

    args: List[Any] = list(values.values())
    assignments = ", ".join(f"{column} = ${i + 1}" for i, column in enumerate(values))
    sql = f"UPDATE {table} SET {assignments}" + _where_clause(table, filters, args)
    if only_if_null:
        _check_columns(table, [only_if_null])
        sql += f" AND {only_if_null} IS NULL"
    return sql, args


def _affected_rows(status: str) -> int:
    # asyncpg status strings look like "UPDATE 3"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresRecordStore:
    """RecordStorePort over PostgresClient."""

    def __init__(self, client: PostgresClient):
        self._client = client

    async def insert(
            self,
            table: str,
            values: Mapping[str, Any],
            *,
            ignore_conflicts: bool = False,
    ) -> Optional[Dict[str, Any]]:
        columns = list(values)
        sql = build_insert_sql(table, columns, ignore_conflicts=ignore_conflicts)
        record = await self._client.fetchrow(sql, *values.values())
        if record is None:
            log.debug(f"Insert into {table} skipped on conflict")
            return None
        return dict(record)

    async def insert_many(
            self,
            table: str,
            rows: Sequence[Mapping[str, Any]],
            *,
            ignore_conflicts: bool = False,
    ) -> int:
        if not rows:
            return 0
        columns = list(rows[0])
        if any(list(row) != columns for row in rows):
            raise ValueError("All rows of a batch insert must have the same columns")

        sql = build_insert_sql(table, columns, row_count=len(rows), ignore_conflicts=ignore_conflicts)
        args = [row[column] for row in rows for column in columns]
        records = await self._client.fetch(sql, *args)
        return len(records)

    async def select(
            self,
            table: str,
            filters: Optional[Mapping[str, Any]] = None,
            *,
            order_by: Optional[str] = None,
            descending: bool = False,
            limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        sql, args = build_select_sql(table, filters, order_by, descending, limit)
        return [dict(r) for r in await self._client.fetch(sql, *args)]

    async def update(
            self,
            table: str,
            values: Mapping[str, Any],
            filters: Mapping[str, Any],
            *,
            only_if_null: Optional[str] = None,
    ) -> int:
        sql, args = build_update_sql(table, values, filters, only_if_null)
        return _affected_rows(await self._client.execute(sql, *args))
