"""SQL execution.

Database executes inline SQL built by the storage compiler: it normalises
`:name` parameters for the driver, runs the statement on a pooled
connection and returns rows as dicts. Driver exceptions are wrapped in
DatabaseError, flagged transient or integrity according to the adapter.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from row_object.core.connection import AsyncConnectionManager, ConnectionConfig
from row_object.core.params import normalize_params
from row_object.core.transaction import (
    AsyncTransactionManager,
    rows_to_dicts,
    wrap_driver_error,
)

logger = structlog.get_logger()

T = TypeVar("T")


class Database:
    """Asynchronous SQL executor over a pooled driver adapter."""

    def __init__(self, connection_manager: AsyncConnectionManager) -> None:
        self._connection_manager = connection_manager
        self._adapter = connection_manager.adapter
        self._paramstyle = self._adapter.paramstyle

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> Database:
        """Create a Database from a ConnectionConfig.

        Args:
            config: ConnectionConfig instance

        Returns:
            Database instance
        """
        return cls(AsyncConnectionManager(config))

    @property
    def dialect(self) -> str:
        return self._adapter.dialect

    async def _run(
        self,
        sql: str,
        params: dict[str, Any] | None,
        consume: Callable[[Any], Awaitable[T]],
    ) -> T:
        sql = normalize_params(sql, self._paramstyle)
        async with self._connection_manager.get_connection() as conn:
            try:
                cursor = await self._adapter.execute_async(conn, sql, params)
                result = await consume(cursor)
                await conn.commit()
            except Exception as e:
                try:
                    await conn.rollback()
                except Exception as rollback_error:
                    logger.warning("rollback_failed", error=str(rollback_error), sql=sql)
                wrapped = wrap_driver_error(self._adapter, sql, e)
                if wrapped is e:
                    raise
                raise wrapped from e
        return result

    async def fetch_all(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch all matching rows."""
        return await self._run(sql, params, rows_to_dicts)

    async def fetch_one(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Fetch the first matching row, or None."""
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    async def fetch_scalar(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Fetch a single scalar value (first column of first row)."""
        row = await self.fetch_one(sql, params)
        if row is None:
            return None
        return next(iter(row.values()))

    async def execute(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> int:
        """Execute a write statement. Returns affected row count."""

        async def _rowcount(cursor: Any) -> int:
            return int(cursor.rowcount)

        return await self._run(sql, params, _rowcount)

    def transaction(self) -> AsyncTransactionManager:
        """Create a new transaction context manager."""
        return AsyncTransactionManager(self._connection_manager)

    async def run_in_transaction(
        self, fn: Callable[[AsyncTransactionManager], Awaitable[T]]
    ) -> T:
        """Run *fn* inside one transaction; commit on success, roll back on error."""
        async with self.transaction() as tx:
            return await fn(tx)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._connection_manager.close_pool()
