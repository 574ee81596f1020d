"""Connection configuration and management.

ConnectionConfig is a Pydantic model for type-safe connection config.
AsyncConnectionManager loads the driver adapter for the configured backend
and hands out pooled connections, bounding concurrent checkouts to
``pool_size``.
"""

from __future__ import annotations

import asyncio
import importlib
from contextlib import asynccontextmanager
from typing import Any

from pydantic import BaseModel

from row_object.core.exceptions import AdapterError, PoolError


class ConnectionConfig(BaseModel):
    """Configuration for database connections."""

    driver: str
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str
    pool_size: int = 5
    pool_timeout: int = 30
    extra: dict[str, Any] = {}

    @classmethod
    def from_persistence(cls, persistence: dict[str, Any]) -> ConnectionConfig:
        """Build a config from a ``{"type": ..., ...}`` persistence mapping."""
        values = {k: v for k, v in persistence.items() if k not in ("type", "url")}
        values.setdefault("database", persistence.get("url", ":memory:"))
        if values["database"] == ":memory:":
            # each connection would open its own empty database
            values.setdefault("pool_size", 1)
        return cls(driver=persistence["type"], **values)


# Adapter module mapping: driver name -> (module_path, class_name)
_ADAPTER_MAP: dict[str, tuple[str, str]] = {
    "sqlite": ("row_object.adapters.sqlite", "SqliteAsyncAdapter"),
    "postgresql": ("row_object.adapters.postgresql", "PostgresqlAsyncAdapter"),
}


def _load_adapter(driver: str) -> Any:
    """Load an async adapter by driver name."""
    driver_lower = driver.lower()
    if driver_lower not in _ADAPTER_MAP:
        raise AdapterError(f"Unsupported database driver: {driver}")

    module_path, cls_name = _ADAPTER_MAP[driver_lower]
    try:
        module = importlib.import_module(module_path)
        return getattr(module, cls_name)()
    except (ImportError, AttributeError) as e:
        raise AdapterError(f"Failed to load adapter for '{driver}': {e}") from e


class AsyncConnectionManager:
    """Asynchronous connection manager using the AsyncAdapter protocol."""

    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config
        self._adapter = _load_adapter(config.driver)
        self._pool: Any = None
        self._slots: asyncio.Semaphore | None = None
        self._init_lock: asyncio.Lock | None = None

    @property
    def adapter(self) -> Any:
        return self._adapter

    async def initialize_pool(self) -> Any:
        """Initialize the async connection pool."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if self._pool is None:
                self._pool = await self._adapter.create_pool_async(self.config)
                self._slots = asyncio.Semaphore(self.config.pool_size)
        return self._pool

    async def acquire(self) -> Any:
        """Check a connection out of the pool, waiting up to ``pool_timeout``."""
        if self._pool is None:
            await self.initialize_pool()
        assert self._slots is not None
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.config.pool_timeout)
        except asyncio.TimeoutError as e:
            raise PoolError(
                f"No connection available after {self.config.pool_timeout}s",
                "DB_POOL_EXHAUSTED",
                {"pool_size": self.config.pool_size},
                e,
                transient=True,
            ) from e
        try:
            return await self._adapter.acquire_connection_async(self._pool)
        except BaseException:
            self._slots.release()
            raise

    async def release(self, connection: Any) -> None:
        """Return a connection obtained from :meth:`acquire`."""
        try:
            await self._adapter.release_connection_async(connection, self._pool)
        finally:
            assert self._slots is not None
            self._slots.release()

    @asynccontextmanager
    async def get_connection(self):  # type: ignore[no-untyped-def]
        """Get an async connection from the pool as an async context manager."""
        connection = await self.acquire()
        try:
            yield connection
        finally:
            await self.release(connection)

    async def close_pool(self) -> None:
        """Close the async connection pool."""
        if self._pool is not None:
            await self._adapter.close_pool_async(self._pool)
            self._pool = None
            self._slots = None
