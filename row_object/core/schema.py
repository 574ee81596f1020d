"""Table schema derived from a registry entry.

Every entity table carries the built-in identity columns (``id``, ``slug``,
``context``, ``name``) and timestamps around the domain columns, a UNIQUE
constraint on ``(slug, context)``, indexes for indexed fields and foreign
keys, and one join table per ManyToMany relationship.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from row_object.core.fields import Field, FieldKind, datetime_field, text

if TYPE_CHECKING:
    from row_object.core.registry import RegistryEntry

LEADING_FIELDS: dict[str, Field] = {
    "id": Field(FieldKind.TEXT, primary_key=True),
    "slug": text(required=True),
    "context": text(required=True, default=""),
    "name": text(),
}
TRAILING_FIELDS: dict[str, Field] = {
    "created_at": datetime_field(),
    "updated_at": datetime_field(),
}
RESERVED_NAMES = frozenset({"id", "slug", "context", "created_at", "updated_at"})

NATURAL_KEY = ("slug", "context")
JOIN_SOURCE_COLUMN = "source_id"
JOIN_TARGET_COLUMN = "target_id"


@dataclass(frozen=True)
class Column:
    name: str
    field: Field


@dataclass(frozen=True)
class Index:
    name: str
    columns: tuple[str, ...]


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: tuple[Column, ...]
    unique_together: tuple[tuple[str, ...], ...] = ()
    indexes: tuple[Index, ...] = ()
    join_tables: tuple[TableSchema, ...] = field(default_factory=tuple)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def required_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.field.required or c.field.primary_key]

    def unique_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.field.unique or c.field.primary_key]


def join_table_name(source_table: str, field_name: str, through: str | None = None) -> str:
    return through or f"{source_table}_{field_name}"


def join_table_schema(name: str) -> TableSchema:
    return TableSchema(
        name=name,
        columns=(
            Column(JOIN_SOURCE_COLUMN, text(required=True)),
            Column(JOIN_TARGET_COLUMN, text(required=True)),
        ),
        unique_together=((JOIN_SOURCE_COLUMN, JOIN_TARGET_COLUMN),),
        indexes=(Index(f"{name}_{JOIN_TARGET_COLUMN}_idx", (JOIN_TARGET_COLUMN,)),),
    )


def build_table_schema(entry: RegistryEntry) -> TableSchema:
    """Build the TableSchema for *entry*."""
    table = entry.table_name
    columns = tuple(
        Column(entry.column_for(attr), fld) for attr, fld in entry.columns.items()
    )
    indexes: list[Index] = []
    for attr, fld in entry.columns.items():
        if attr in LEADING_FIELDS or attr in TRAILING_FIELDS:
            continue
        if fld.index and not fld.unique:
            column = entry.column_for(attr)
            indexes.append(Index(f"{table}_{column}_idx", (column,)))
    join_tables = tuple(
        join_table_schema(join_table_name(table, name, rel.through))
        for name, rel in entry.relationships.items()
        if rel.kind is FieldKind.MANY_TO_MANY
    )
    return TableSchema(
        name=table,
        columns=columns,
        unique_together=(NATURAL_KEY,),
        indexes=tuple(indexes),
        join_tables=join_tables,
    )
