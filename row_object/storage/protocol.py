"""Storage protocol.

A storage backend persists entity rows for collections and entities. SQL
backends compile each call to one statement and can answer a JoinPlan in a
single query; backends without JOIN support (``supports_joins = False``)
get eager loads as batched ``id in (...)`` selects instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from row_object.core.query import Predicate
from row_object.core.schema import TableSchema
from row_object.mapping.plan import JoinPlan


@dataclass(frozen=True)
class SelectQuery:
    """A filtered, ordered, paginated read of one table (columns, not attributes)."""

    table: str
    where: tuple[Predicate, ...] = ()
    order_by: tuple[tuple[str, str], ...] = ()
    limit: int | None = None
    offset: int | None = None
    columns: tuple[str, ...] | None = None


@runtime_checkable
class Storage(Protocol):
    """Storage backend protocol."""

    supports_joins: bool

    @property
    def dialect(self) -> str:
        """Value-conversion dialect ('sqlite', 'postgresql', 'memory')."""
        ...

    async def ensure_table(self, schema: TableSchema) -> None:
        """Create the table, its indexes and join tables if missing."""
        ...

    async def select(self, query: SelectQuery) -> list[dict[str, Any]]:
        """Rows matching *query*."""
        ...

    async def select_joined(self, plan: JoinPlan, query: SelectQuery) -> list[dict[str, Any]]:
        """Alias-prefixed rows of *plan* in one round trip."""
        ...

    async def count(self, table: str, where: Sequence[Predicate]) -> int:
        """Number of rows matching *where*."""
        ...

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str],
        guard: str | None = None,
    ) -> int:
        """Insert *row*, or update the *update* columns of the row sharing *conflict*.

        With *guard*, the update only applies when the existing row has the
        same *guard* value; otherwise nothing changes and 0 is returned.
        """
        ...

    async def delete(self, table: str, where: Sequence[Predicate]) -> int:
        """Delete rows matching *where*; returns the number removed."""
        ...
