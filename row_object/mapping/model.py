"""Row <-> attribute mapping for one entity.

ModelMapper converts attribute values to their stored representation
(booleans as 0/1, JSON as text, datetimes as ISO strings or native
timestamps) and back, renaming attributes to columns on the way.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from row_object.core.exceptions import ValidationError
from row_object.core.fields import Field, from_storage_value, to_storage_value
from row_object.core.query import Operator, Predicate
from row_object.core.registry import RegistryEntry

T = TypeVar("T")


class ModelMapper(Generic[T]):
    """Maps stored rows of one entity to instances built by *factory*.

    Args:
        entry: Registry entry of the entity.
        dialect: Storage dialect the values are converted for.
        factory: Builds an instance from an attribute-keyed dict.
    """

    def __init__(
        self,
        entry: RegistryEntry,
        dialect: str,
        factory: Callable[[dict[str, Any]], T],
    ) -> None:
        self._entry = entry
        self._dialect = dialect
        self._factory = factory
        self._columns = entry.columns
        self._attr_by_column = {column: attr for attr, column in entry.field_map.items()}

    def _field(self, attr: str) -> Field:
        fld = self._columns.get(attr)
        if fld is None:
            raise ValidationError.unknown_field(attr, self._entry.name)
        return fld

    def column(self, attr: str) -> str:
        self._field(attr)
        return self._entry.column_for(attr)

    def dump_value(self, attr: str, value: Any) -> Any:
        return to_storage_value(self._field(attr), value, self._dialect)

    def dump(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Attribute values -> column-keyed storage row."""
        return {
            self._entry.column_for(attr): to_storage_value(fld, values.get(attr), self._dialect)
            for attr, fld in self._columns.items()
        }

    def load(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Column-keyed storage row -> attribute values (unknown columns ignored)."""
        values: dict[str, Any] = {}
        for column, raw in row.items():
            attr = self._attr_by_column.get(column)
            if attr is not None:
                values[attr] = from_storage_value(self._columns[attr], raw)
        return values

    def dump_predicates(self, predicates: Iterable[Predicate]) -> list[Predicate]:
        """Rename predicate fields to columns and convert their values."""
        result: list[Predicate] = []
        for predicate in predicates:
            column = self.column(predicate.field)
            if predicate.operator is Operator.IN:
                value: Any = [self.dump_value(predicate.field, v) for v in predicate.value]
            elif predicate.operator is Operator.LIKE:
                value = predicate.value
            else:
                value = self.dump_value(predicate.field, predicate.value)
            result.append(Predicate(column, predicate.operator, value))
        return result

    def map_one(self, row: Mapping[str, Any]) -> T:
        return self._factory(self.load(row))

    def map_many(self, rows: Iterable[Mapping[str, Any]]) -> list[T]:
        return [self.map_one(row) for row in rows]
