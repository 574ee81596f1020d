"""Field descriptors.

A Field describes one column (or relationship) of an entity: its kind,
validation options and SQL mapping. Fields are immutable and are declared
as class attributes; instance values are plain attributes set from
``Field.get_default()``.

Example::

    class Product(PersistentObject):
        sku = text(required=True, unique=True)
        price = decimal(min=0)
        category_id = foreign_key("Category")
        tags = many_to_many("Tag")
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from row_object.core.enums import DatabaseBackend
from row_object.core.exceptions import ConfigurationError


class FieldKind(Enum):
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    JSON = "json"
    FOREIGN_KEY = "foreign_key"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"


RELATIONSHIP_KINDS = frozenset(
    {FieldKind.FOREIGN_KEY, FieldKind.ONE_TO_MANY, FieldKind.MANY_TO_MANY}
)

_SQL_TYPES: dict[FieldKind, str] = {
    FieldKind.TEXT: "TEXT",
    FieldKind.INTEGER: "INTEGER",
    FieldKind.DECIMAL: "REAL",
    FieldKind.BOOLEAN: "INTEGER",
    FieldKind.DATETIME: "DATETIME",
    FieldKind.JSON: "TEXT",
    FieldKind.FOREIGN_KEY: "TEXT",
}

# Dialect-specific overrides of _SQL_TYPES
_DIALECT_SQL_TYPES: dict[str, dict[FieldKind, str]] = {
    DatabaseBackend.POSTGRESQL.value: {FieldKind.DATETIME: "TIMESTAMP"},
}


def _sql_literal(value: Any) -> str | None:
    """Render a scalar default as a SQL literal, or None if it has no literal form."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return None


@dataclass(frozen=True)
class Field:
    """Typed column or relationship definition."""

    kind: FieldKind
    required: bool = False
    default: Any = None
    unique: bool = False
    index: bool = False
    primary_key: bool = False
    min_length: int | None = None
    max_length: int | None = None
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    related: str | None = None
    on_delete: str | None = None
    inverse: str | None = None
    through: str | None = None
    description: str | None = None
    validate: Callable[[Any], Any] | None = None
    message: str | None = None

    @property
    def is_relationship(self) -> bool:
        return self.kind in RELATIONSHIP_KINDS

    @property
    def has_column(self) -> bool:
        """OneToMany and ManyToMany live only in the relationship map."""
        return self.kind not in (FieldKind.ONE_TO_MANY, FieldKind.MANY_TO_MANY)

    def get_default(self) -> Any:
        """Fresh copy of the default value for a new instance."""
        return copy.deepcopy(self.default)

    def with_kind(self, kind: FieldKind) -> Field:
        return replace(self, kind=kind)

    def to_sql_type(self, dialect: str = DatabaseBackend.SQLITE.value) -> str:
        if not self.has_column:
            raise ConfigurationError.invalid_configuration(
                "kind", self.kind.value, "a column-backed field kind"
            )
        overrides = _DIALECT_SQL_TYPES.get(dialect, {})
        return overrides.get(self.kind, _SQL_TYPES[self.kind])

    def to_sql_constraints(self) -> list[str]:
        """Ordered column constraints: NOT NULL, UNIQUE, DEFAULT.

        A primary key implies NOT NULL and UNIQUE and is returned alone.
        """
        if self.primary_key:
            return ["PRIMARY KEY"]
        constraints: list[str] = []
        if self.required:
            constraints.append("NOT NULL")
        if self.unique:
            constraints.append("UNIQUE")
        if self.default is not None and self.kind is not FieldKind.JSON:
            literal = _sql_literal(self.default)
            if literal is not None:
                constraints.append(f"DEFAULT {literal}")
        return constraints

    def to_column_definition(self, column: str, dialect: str = DatabaseBackend.SQLITE.value) -> str:
        return " ".join([column, self.to_sql_type(dialect), *self.to_sql_constraints()])


# --- Factories ---


def text(
    *,
    required: bool = False,
    default: str | None = None,
    unique: bool = False,
    index: bool = False,
    min_length: int | None = None,
    max_length: int | None = None,
    pattern: str | None = None,
    **options: Any,
) -> Field:
    return Field(
        FieldKind.TEXT,
        required=required,
        default=default,
        unique=unique,
        index=index,
        min_length=min_length,
        max_length=max_length,
        pattern=pattern,
        **options,
    )


def integer(
    *,
    required: bool = False,
    default: int | None = None,
    min: int | None = None,
    max: int | None = None,
    **options: Any,
) -> Field:
    return Field(FieldKind.INTEGER, required=required, default=default, min=min, max=max, **options)


def decimal(
    *,
    required: bool = False,
    default: float | None = None,
    min: float | None = None,
    max: float | None = None,
    **options: Any,
) -> Field:
    return Field(FieldKind.DECIMAL, required=required, default=default, min=min, max=max, **options)


def boolean(*, required: bool = False, default: bool | None = None, **options: Any) -> Field:
    return Field(FieldKind.BOOLEAN, required=required, default=default, **options)


def datetime_field(
    *, required: bool = False, default: datetime | None = None, **options: Any
) -> Field:
    return Field(FieldKind.DATETIME, required=required, default=default, **options)


def json_field(*, required: bool = False, default: Any = None, **options: Any) -> Field:
    return Field(FieldKind.JSON, required=required, default=default, **options)


def foreign_key(
    related: str, *, required: bool = False, on_delete: str = "restrict", **options: Any
) -> Field:
    return Field(
        FieldKind.FOREIGN_KEY,
        required=required,
        related=related,
        on_delete=on_delete,
        index=True,
        **options,
    )


def one_to_many(related: str, *, inverse: str | None = None, **options: Any) -> Field:
    return Field(FieldKind.ONE_TO_MANY, related=related, inverse=inverse, **options)


def many_to_many(related: str, *, through: str | None = None, **options: Any) -> Field:
    return Field(FieldKind.MANY_TO_MANY, related=related, through=through, **options)


# --- Inference ---


def infer_field(value: Any) -> Field | None:
    """Infer a Field from a plain class-attribute default, or None."""
    if isinstance(value, bool):
        return Field(FieldKind.BOOLEAN, default=value)
    if isinstance(value, int):
        return Field(FieldKind.INTEGER, default=value)
    if isinstance(value, float):
        return Field(FieldKind.DECIMAL, default=value)
    if isinstance(value, str):
        return Field(FieldKind.TEXT, default=value)
    if isinstance(value, (datetime, date)):
        return Field(FieldKind.DATETIME, default=value)
    if isinstance(value, (list, dict)):
        return Field(FieldKind.JSON, default=value)
    return None


# --- Value conversion ---


def to_storage_value(field: Field, value: Any, dialect: str) -> Any:
    """Convert a Python attribute value into its stored representation."""
    if value is None:
        return None
    kind = field.kind
    if kind is FieldKind.BOOLEAN:
        return 1 if value else 0
    if kind is FieldKind.JSON:
        return json.dumps(value, sort_keys=True, default=str)
    if kind is FieldKind.DATETIME:
        if isinstance(value, str):
            if not value.strip():
                return None
            value = parse_datetime(value)
        if dialect == DatabaseBackend.POSTGRESQL.value:
            return value
        return value.isoformat()
    return value


def from_storage_value(field: Field, value: Any) -> Any:
    """Convert a stored value back into the attribute's Python type."""
    if value is None:
        return None
    kind = field.kind
    if kind is FieldKind.BOOLEAN:
        return bool(value)
    if kind is FieldKind.JSON:
        return json.loads(value) if isinstance(value, (str, bytes)) else value
    if kind is FieldKind.DATETIME:
        return parse_datetime(value)
    if kind is FieldKind.DECIMAL:
        return float(value)
    return value


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text_value = str(value)
    if text_value.endswith("Z"):
        text_value = text_value[:-1] + "+00:00"
    return datetime.fromisoformat(text_value)
