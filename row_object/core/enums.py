"""Backend and lifecycle enumerations."""

from __future__ import annotations

from enum import Enum


class DatabaseBackend(Enum):
    """Supported storage backends (the value doubles as the SQL dialect name)."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MEMORY = "memory"


class EntityState(Enum):
    """Lifecycle state of a persistent object."""

    UNSAVED = "unsaved"
    SAVED = "saved"
    DELETED = "deleted"
