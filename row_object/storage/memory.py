"""In-memory storage backend.

Single-process tables of row dicts with SQL-like semantics: NULL never
compares equal, ``like`` is a case-insensitive pattern, ORDER BY puts
NULLs first when ascending, and UNIQUE / NOT NULL violations raise the
same constraint errors a SQL database reports. It has no JOIN support,
so collections eager-load through batched ``id in (...)`` selects.

Example::

    storage = MemoryStorage()
    products = ProductCollection({"db": storage})
"""

from __future__ import annotations

import copy
import re
from collections.abc import Sequence
from functools import lru_cache
from typing import Any

from row_object.core.enums import DatabaseBackend
from row_object.core.exceptions import DatabaseError, RuntimeError
from row_object.core.fields import FieldKind, to_storage_value
from row_object.core.query import Operator, Predicate
from row_object.core.schema import TableSchema
from row_object.mapping.plan import JoinPlan
from row_object.storage.protocol import SelectQuery


@lru_cache(maxsize=256)
def _like_pattern(pattern: str) -> re.Pattern[str]:
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _matches(row: dict[str, Any], predicate: Predicate) -> bool:
    actual = row.get(predicate.field)
    op = predicate.operator
    expected = predicate.value
    if expected is None and op is Operator.EQ:
        return actual is None
    if expected is None and op is Operator.NEQ:
        return actual is not None
    if actual is None:
        return False
    try:
        if op is Operator.EQ:
            return bool(actual == expected)
        if op is Operator.NEQ:
            return bool(actual != expected)
        if op is Operator.GT:
            return bool(actual > expected)
        if op is Operator.LT:
            return bool(actual < expected)
        if op is Operator.GTE:
            return bool(actual >= expected)
        if op is Operator.LTE:
            return bool(actual <= expected)
        if op is Operator.IN:
            return actual in expected
        if op is Operator.LIKE:
            return _like_pattern(str(expected)).match(str(actual)) is not None
    except TypeError:
        return False
    return False


def _sort_key(value: Any) -> tuple[bool, str, Any]:
    # nulls first, numbers together, other values grouped by type
    if value is None:
        return (False, "", 0)
    if isinstance(value, (int, float)):
        return (True, "", value)
    return (True, type(value).__name__, value)


def _sort(rows: list[dict[str, Any]], order_by: Sequence[tuple[str, str]]) -> None:
    # Stable sort applied from the last key to the first
    for column, direction in reversed(order_by):
        rows.sort(
            key=lambda r, c=column: _sort_key(r.get(c)),
            reverse=direction == "DESC",
        )


class MemoryStorage:
    """Dict-of-lists storage backend without JOIN support."""

    supports_joins = False

    def __init__(self) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._schemas: dict[str, TableSchema] = {}

    @property
    def dialect(self) -> str:
        return DatabaseBackend.MEMORY.value

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Copies of every stored row of *table*."""
        return copy.deepcopy(self._table(table))

    def _table(self, table: str) -> list[dict[str, Any]]:
        rows = self._tables.get(table)
        if rows is None:
            raise DatabaseError(f"no such table: {table}", "DB_QUERY_FAILED", {"table": table})
        return rows

    async def ensure_table(self, schema: TableSchema) -> None:
        rows = self._tables.setdefault(schema.name, [])
        for column in schema.columns:
            fld = column.field
            default = None if fld.kind is FieldKind.JSON else to_storage_value(
                fld, fld.default, self.dialect
            )
            for row in rows:
                row.setdefault(column.name, default)
        self._schemas[schema.name] = schema
        for join_table in schema.join_tables:
            await self.ensure_table(join_table)

    async def select(self, query: SelectQuery) -> list[dict[str, Any]]:
        rows = [
            row for row in self._table(query.table)
            if all(_matches(row, p) for p in query.where)
        ]
        _sort(rows, query.order_by)
        start = query.offset or 0
        end = start + query.limit if query.limit is not None else None
        rows = rows[start:end]
        if query.columns:
            return [{c: copy.deepcopy(row.get(c)) for c in query.columns} for row in rows]
        return copy.deepcopy(rows)

    async def select_joined(self, plan: JoinPlan, query: SelectQuery) -> list[dict[str, Any]]:
        raise DatabaseError(
            "Memory storage does not support joined selects",
            "DB_JOIN_UNSUPPORTED",
            {"table": query.table},
        )

    async def count(self, table: str, where: Sequence[Predicate]) -> int:
        return sum(1 for row in self._table(table) if all(_matches(row, p) for p in where))

    # --- Writes ---

    def _check_not_null(self, table: str, row: dict[str, Any]) -> None:
        schema = self._schemas.get(table)
        if schema is None:
            return
        for column in schema.required_columns():
            if row.get(column) is None:
                raise DatabaseError.constraint_violation(
                    f"NOT NULL constraint failed: {table}.{column}"
                )

    def _check_unique(
        self, table: str, row: dict[str, Any], rows: list[dict[str, Any]], skip: Any = None
    ) -> None:
        schema = self._schemas.get(table)
        if schema is None:
            return
        groups = [(c,) for c in schema.unique_columns()] + list(schema.unique_together)
        for existing in rows:
            if existing is skip:
                continue
            for columns in groups:
                values = [row.get(c) for c in columns]
                if any(v is None for v in values):
                    continue
                if values == [existing.get(c) for c in columns]:
                    failed = ", ".join(f"{table}.{c}" for c in columns)
                    raise DatabaseError.constraint_violation(
                        f"UNIQUE constraint failed: {failed}"
                    )

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str],
        guard: str | None = None,
    ) -> int:
        rows = self._table(table)
        self._check_not_null(table, row)
        key = [row.get(c) for c in conflict]
        existing = next(
            (r for r in rows if [r.get(c) for c in conflict] == key), None
        )
        if existing is None:
            self._check_unique(table, row, rows)
            rows.append(copy.deepcopy(row))
            return 1
        if not update:
            return 0
        if guard is not None and existing.get(guard) != row.get(guard):
            return 0
        merged = {**existing, **{c: row.get(c) for c in update}}
        self._check_unique(table, merged, rows, skip=existing)
        existing.update(copy.deepcopy({c: row.get(c) for c in update}))
        return 1

    async def delete(self, table: str, where: Sequence[Predicate]) -> int:
        if not where:
            raise RuntimeError.operation_failed("delete", {"table": table, "reason": "no filter"})
        rows = self._table(table)
        kept = [row for row in rows if not all(_matches(row, p) for p in where)]
        removed = len(rows) - len(kept)
        rows[:] = kept
        return removed

    async def close(self) -> None:
        self._tables.clear()
        self._schemas.clear()
