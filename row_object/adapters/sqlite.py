"""SQLite adapter using aiosqlite."""

from __future__ import annotations

import sqlite3
from typing import Any

from row_object.core.connection import ConnectionConfig
from row_object.core.enums import DatabaseBackend

_TRANSIENT_MARKERS = ("database is locked", "database table is locked", "busy")


class SqliteAsyncAdapter:
    """Asynchronous SQLite adapter using aiosqlite."""

    @property
    def paramstyle(self) -> str:
        return "named"

    @property
    def dialect(self) -> str:
        return DatabaseBackend.SQLITE.value

    async def create_pool_async(self, config: ConnectionConfig) -> list[Any]:
        """Create async SQLite connection pool.

        Every connection to ``:memory:`` opens a separate database, so
        in-memory configs should use ``pool_size=1``.
        """
        import aiosqlite

        pool: list[Any] = []
        for _ in range(config.pool_size):
            conn = await aiosqlite.connect(config.database, **config.extra)
            conn.row_factory = aiosqlite.Row
            if config.database != ":memory:":
                await conn.execute("PRAGMA journal_mode=WAL")
            pool.append(conn)
        return pool

    async def acquire_connection_async(self, pool: list[Any]) -> Any:
        """Acquire an async connection from the pool."""
        if not pool:
            raise RuntimeError("No connections available in pool")
        return pool.pop()

    async def release_connection_async(self, connection: Any, pool: list[Any]) -> None:
        """Release an async connection back to the pool."""
        pool.append(connection)

    async def close_pool_async(self, pool: list[Any]) -> None:
        """Close all async connections."""
        for conn in pool:
            await conn.close()
        pool.clear()

    async def execute_async(
        self,
        connection: Any,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Execute SQL asynchronously and return a cursor."""
        return await connection.execute(sql, params or {})

    def is_transient(self, error: BaseException) -> bool:
        if not isinstance(error, sqlite3.OperationalError):
            return False
        message = str(error).lower()
        return any(marker in message for marker in _TRANSIENT_MARKERS)

    def is_integrity_error(self, error: BaseException) -> bool:
        return isinstance(error, sqlite3.IntegrityError)
