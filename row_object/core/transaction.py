"""Transaction management.

Provides an async context manager for executing multiple SQL statements
atomically. Auto-commits on success, auto-rolls-back on exception.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from row_object.core.exceptions import (
    DatabaseError,
    RowObjectError,
    TransactionStateError,
)
from row_object.core.params import normalize_params


class _TxState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


async def rows_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert async cursor results to a list of dicts.

    Handles both tuple-like rows and dict-like rows from different adapters.
    """
    if cursor.description is None:
        return []
    columns = [desc[0] for desc in cursor.description]
    rows_raw = await cursor.fetchall()

    # Handle dict rows (psycopg dict_row) vs tuple rows (aiosqlite.Row)
    if rows_raw and isinstance(rows_raw[0], dict):
        return [dict(row) for row in rows_raw]
    return [dict(zip(columns, row, strict=True)) for row in rows_raw]


def wrap_driver_error(adapter: Any, sql: str, error: Exception) -> RowObjectError:
    """Wrap a raw driver exception; RowObject errors pass through unchanged."""
    if isinstance(error, RowObjectError):
        return error
    return DatabaseError.from_driver_error(
        sql,
        error,
        transient=adapter.is_transient(error),
        integrity=adapter.is_integrity_error(error),
    )


class AsyncTransactionManager:
    """Asynchronous transaction context manager."""

    def __init__(self, connection_manager: Any) -> None:
        self._connection_manager = connection_manager
        self._adapter = connection_manager.adapter
        self._paramstyle: str = self._adapter.paramstyle
        self._connection: Any = None
        self._state = _TxState.IDLE

    async def __aenter__(self) -> AsyncTransactionManager:
        self._connection = await self._connection_manager.acquire()
        self._state = _TxState.ACTIVE
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        try:
            if self._state == _TxState.ACTIVE:
                if exc_type is not None:
                    await self._connection.rollback()
                    self._state = _TxState.ROLLED_BACK
                else:
                    await self._connection.commit()
                    self._state = _TxState.COMMITTED
        finally:
            await self._connection_manager.release(self._connection)

    async def _execute(self, sql: str, params: dict[str, Any] | None) -> Any:
        self._check_active()
        sql = normalize_params(sql, self._paramstyle)
        try:
            return await self._adapter.execute_async(self._connection, sql, params)
        except Exception as e:
            wrapped = wrap_driver_error(self._adapter, sql, e)
            if wrapped is e:
                raise
            raise wrapped from e

    async def execute(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> int:
        """Execute a write statement within this transaction."""
        cursor = await self._execute(sql, params)
        return int(cursor.rowcount)

    async def fetch_one(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Fetch a single row within transaction context."""
        rows = await self.fetch_all(sql, params)
        if not rows:
            return None
        return rows[0]

    async def fetch_all(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch all rows within transaction context."""
        cursor = await self._execute(sql, params)
        return await rows_to_dicts(cursor)

    async def commit(self) -> None:
        """Explicitly commit the transaction."""
        if self._state == _TxState.ROLLED_BACK:
            raise TransactionStateError("rolled_back", "commit")
        if self._state == _TxState.COMMITTED:
            raise TransactionStateError("committed", "commit")
        await self._connection.commit()
        self._state = _TxState.COMMITTED

    async def rollback(self) -> None:
        """Explicitly rollback the transaction."""
        if self._state == _TxState.COMMITTED:
            raise TransactionStateError("committed", "rollback")
        await self._connection.rollback()
        self._state = _TxState.ROLLED_BACK

    def _check_active(self) -> None:
        if self._state == _TxState.IDLE:
            raise TransactionStateError("idle", "execute")
        if self._state == _TxState.COMMITTED:
            raise TransactionStateError("committed", "execute")
        if self._state == _TxState.ROLLED_BACK:
            raise TransactionStateError("rolled_back", "execute")
