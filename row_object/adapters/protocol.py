"""Database adapter protocol.

Every driver adapter MUST implement this protocol so the SQL executor can
treat all backends identically.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from row_object.core.connection import ConnectionConfig


@runtime_checkable
class AsyncAdapter(Protocol):
    """Asynchronous database adapter protocol."""

    @property
    def paramstyle(self) -> str:
        """Parameter binding style: 'named' (:name) or 'pyformat' (%(name)s)."""
        ...

    @property
    def dialect(self) -> str:
        """SQL dialect name used by the compiler ('sqlite', 'postgresql')."""
        ...

    async def create_pool_async(self, config: ConnectionConfig) -> Any:
        """Create an async connection pool."""
        ...

    async def acquire_connection_async(self, pool: Any) -> Any:
        """Acquire a connection from the async pool."""
        ...

    async def release_connection_async(self, connection: Any, pool: Any) -> None:
        """Release a connection back to the async pool."""
        ...

    async def close_pool_async(self, pool: Any) -> None:
        """Close the async pool."""
        ...

    async def execute_async(
        self,
        connection: Any,
        sql: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Execute SQL asynchronously and return a cursor-like object."""
        ...

    def is_transient(self, error: BaseException) -> bool:
        """Return True for failures worth retrying (locks, dropped connections)."""
        ...

    def is_integrity_error(self, error: BaseException) -> bool:
        """Return True for constraint violations raised by the driver."""
        ...
