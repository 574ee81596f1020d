"""Storage backends.

Collections talk to a Storage: SqlStorage over a Database (SQLite through
aiosqlite, PostgreSQL through psycopg) or the in-memory MemoryStorage.
"""

from __future__ import annotations

from typing import Any

from row_object.core.connection import ConnectionConfig
from row_object.core.database import Database
from row_object.core.enums import DatabaseBackend
from row_object.core.exceptions import ConfigurationError
from row_object.storage.memory import MemoryStorage
from row_object.storage.protocol import SelectQuery, Storage
from row_object.storage.sql import SqlStorage

_SQL_BACKENDS = (DatabaseBackend.SQLITE.value, DatabaseBackend.POSTGRESQL.value)


def resolve_storage(db: Any) -> Storage:
    """Return *db* as a Storage, wrapping a Database in SqlStorage."""
    if isinstance(db, Database):
        return SqlStorage(db)
    if isinstance(db, Storage):
        return db
    raise ConfigurationError.invalid_configuration(
        "db", type(db).__name__, "a Database or a storage backend"
    )


def create_storage(persistence: dict[str, Any]) -> Storage:
    """Build a storage backend from a ``{"type": ..., ...}`` mapping.

    Raises:
        ConfigurationError: ``type`` is missing or unsupported.
    """
    backend = str(persistence.get("type", "")).lower()
    if backend == DatabaseBackend.MEMORY.value:
        return MemoryStorage()
    if backend in _SQL_BACKENDS:
        config = ConnectionConfig.from_persistence({**persistence, "type": backend})
        return SqlStorage(Database.from_config(config))
    raise ConfigurationError.invalid_configuration(
        "persistence.type", persistence.get("type"), f"one of {[*_SQL_BACKENDS, 'memory']}"
    )


__all__ = [
    "MemoryStorage",
    "SelectQuery",
    "SqlStorage",
    "Storage",
    "create_storage",
    "resolve_storage",
]
