"""RowObject - persistent objects and collections over SQL or memory storage."""

from __future__ import annotations

from row_object.core.config import (
    AIConfig,
    ObjectConfig,
    PersistenceOptions,
    SurfaceConfig,
)
from row_object.core.connection import AsyncConnectionManager, ConnectionConfig
from row_object.core.database import Database
from row_object.core.enums import DatabaseBackend, EntityState
from row_object.core.exceptions import (
    AdapterError,
    AIError,
    ConfigurationError,
    ConnectionError,  # noqa: A004
    DatabaseError,
    PoolError,
    RowObjectError,
    RuntimeError,  # noqa: A004
    TransactionError,
    TransactionStateError,
    ValidationError,
    ValidationReport,
)
from row_object.core.fields import (
    Field,
    FieldKind,
    boolean,
    datetime_field,
    decimal,
    foreign_key,
    integer,
    json_field,
    many_to_many,
    one_to_many,
    text,
)
from row_object.core.query import Operator, Predicate, parse_order_by, parse_where
from row_object.core.registry import ObjectRegistry, entity
from row_object.core.retry import RetryPolicy, is_retryable, with_retry
from row_object.core.transaction import AsyncTransactionManager
from row_object.mapping.model import ModelMapper
from row_object.repository.ai import AIClient
from row_object.repository.collection import Collection
from row_object.repository.entity import PersistentObject
from row_object.storage import MemoryStorage, SqlStorage, Storage

__all__ = [
    # Objects
    "PersistentObject",
    "Collection",
    "entity",
    # Fields
    "Field",
    "FieldKind",
    "text",
    "integer",
    "decimal",
    "boolean",
    "datetime_field",
    "json_field",
    "foreign_key",
    "one_to_many",
    "many_to_many",
    # Registry
    "ObjectRegistry",
    # Configuration
    "ObjectConfig",
    "SurfaceConfig",
    "AIConfig",
    "PersistenceOptions",
    "ConnectionConfig",
    # Storage
    "Storage",
    "SqlStorage",
    "MemoryStorage",
    "Database",
    "AsyncConnectionManager",
    "AsyncTransactionManager",
    # Query
    "Operator",
    "Predicate",
    "parse_where",
    "parse_order_by",
    # Mapping
    "ModelMapper",
    # Retry
    "RetryPolicy",
    "with_retry",
    "is_retryable",
    # AI
    "AIClient",
    # Enums
    "DatabaseBackend",
    "EntityState",
    # Exceptions
    "RowObjectError",
    "ValidationError",
    "ValidationReport",
    "DatabaseError",
    "AIError",
    "ConfigurationError",
    "RuntimeError",
    "TransactionError",
    "TransactionStateError",
    "AdapterError",
    "ConnectionError",
    "PoolError",
]
