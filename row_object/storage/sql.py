"""SQL storage backend over Database."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from row_object.core.database import Database
from row_object.core.exceptions import DatabaseError
from row_object.core.query import Predicate
from row_object.core.schema import TableSchema
from row_object.mapping.plan import JoinPlan
from row_object.storage import compiler
from row_object.storage.protocol import SelectQuery

logger = structlog.get_logger()


class SqlStorage:
    """Storage backend compiling every call to one SQL statement."""

    supports_joins = True

    def __init__(self, database: Database) -> None:
        self.database = database

    @property
    def dialect(self) -> str:
        return self.database.dialect

    async def ensure_table(self, schema: TableSchema) -> None:
        """Create *schema* if missing, then add columns an older table lacks."""
        statements = compiler.build_create_table(schema, self.dialect)
        try:
            async with self.database.transaction() as tx:
                for sql in statements:
                    await tx.execute(sql)
        except DatabaseError as e:
            raise DatabaseError.schema_error(schema.name, "create", e) from e
        await self._sync_columns(schema)
        for join_table in schema.join_tables:
            await self._sync_columns(join_table)

    async def _sync_columns(self, schema: TableSchema) -> None:
        sql, params = compiler.build_table_columns(schema.name, self.dialect)
        existing = {row["name"] for row in await self.database.fetch_all(sql, params)}
        missing = [name for name in schema.column_names if name not in existing]
        for column in missing:
            try:
                await self.database.execute(
                    compiler.build_add_column(schema.name, column, schema, self.dialect)
                )
            except DatabaseError as e:
                raise DatabaseError.schema_error(schema.name, "add column", e) from e
        if missing:
            logger.info("columns_added", table=schema.name, columns=missing)

    async def select(self, query: SelectQuery) -> list[dict[str, Any]]:
        sql, params = compiler.build_select(query, self.dialect)
        return await self.database.fetch_all(sql, params)

    async def select_joined(self, plan: JoinPlan, query: SelectQuery) -> list[dict[str, Any]]:
        sql, params = compiler.build_join_select(plan, query, self.dialect)
        return await self.database.fetch_all(sql, params)

    async def count(self, table: str, where: Sequence[Predicate]) -> int:
        sql, params = compiler.build_count(table, where)
        return int(await self.database.fetch_scalar(sql, params) or 0)

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str],
        guard: str | None = None,
    ) -> int:
        sql, params = compiler.build_upsert(
            table, row, conflict=conflict, update=update, guard=guard
        )
        return await self.database.execute(sql, params)

    async def delete(self, table: str, where: Sequence[Predicate]) -> int:
        sql, params = compiler.build_delete(table, where)
        return await self.database.execute(sql, params)

    async def close(self) -> None:
        await self.database.close()
