"""PostgreSQL adapter using psycopg (v3+) async support."""

from __future__ import annotations

from typing import Any

from row_object.core.connection import ConnectionConfig
from row_object.core.enums import DatabaseBackend

# SQLSTATE classes/codes worth retrying: connection exceptions, serialization
# failure, deadlock, lock not available.
_TRANSIENT_SQLSTATES = ("08", "40001", "40P01", "55P03")


def _build_conninfo(config: ConnectionConfig) -> str:
    """Build a libpq connection string from config fields."""
    parts: list[str] = []
    if config.host is not None:
        parts.append(f"host={config.host}")
    if config.port is not None:
        parts.append(f"port={config.port}")
    if config.user is not None:
        parts.append(f"user={config.user}")
    if config.password is not None:
        parts.append(f"password={config.password}")
    parts.append(f"dbname={config.database}")
    return " ".join(parts)


class PostgresqlAsyncAdapter:
    """Asynchronous PostgreSQL adapter using psycopg (v3+) async support."""

    @property
    def paramstyle(self) -> str:
        return "pyformat"

    @property
    def dialect(self) -> str:
        return DatabaseBackend.POSTGRESQL.value

    async def create_pool_async(self, config: ConnectionConfig) -> list[Any]:
        import psycopg
        import psycopg.rows

        conninfo = _build_conninfo(config)
        pool: list[Any] = []
        for _ in range(config.pool_size):
            conn = await psycopg.AsyncConnection.connect(
                conninfo, row_factory=psycopg.rows.dict_row, **config.extra
            )
            pool.append(conn)
        return pool

    async def acquire_connection_async(self, pool: list[Any]) -> Any:
        if not pool:
            raise RuntimeError("No connections available in pool")
        return pool.pop()

    async def release_connection_async(self, connection: Any, pool: list[Any]) -> None:
        pool.append(connection)

    async def close_pool_async(self, pool: list[Any]) -> None:
        for conn in pool:
            await conn.close()
        pool.clear()

    async def execute_async(
        self,
        connection: Any,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return await connection.execute(sql, params or None)

    def is_transient(self, error: BaseException) -> bool:
        import psycopg

        if isinstance(error, psycopg.OperationalError) and getattr(error, "sqlstate", None) is None:
            return True
        sqlstate = getattr(error, "sqlstate", None) or ""
        return sqlstate.startswith(_TRANSIENT_SQLSTATES)

    def is_integrity_error(self, error: BaseException) -> bool:
        import psycopg

        return isinstance(error, psycopg.IntegrityError)
