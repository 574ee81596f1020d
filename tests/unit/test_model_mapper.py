"""Unit tests for ModelMapper."""

from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace
from typing import Any

import pytest

from row_object.core.exceptions import ValidationError
from row_object.core.fields import foreign_key, json_field
from row_object.core.query import Operator, Predicate
from row_object.core.registry import ObjectRegistry, entity
from row_object.mapping.model import ModelMapper
from row_object.repository.entity import PersistentObject


@pytest.fixture
def mapper() -> ModelMapper[dict[str, Any]]:
    @entity
    class Shipment(PersistentObject):
        weight = 0.0
        fragile = False
        meta = json_field()
        shipped_at = ""
        warehouseId = foreign_key("Warehouse")

    entry = ObjectRegistry.default().get_entry("Shipment")
    return ModelMapper(entry, "sqlite", dict)


class TestModelMapper:
    def test_dump_renames_and_converts(self, mapper: ModelMapper[dict[str, Any]]) -> None:
        row = mapper.dump(
            {
                "id": "s1",
                "slug": "s1",
                "fragile": True,
                "meta": {"b": 2, "a": 1},
                "shipped_at": datetime(2024, 3, 1, 8, 0),
                "warehouseId": "w1",
            }
        )
        assert row["fragile"] == 1
        assert row["meta"] == '{"a": 1, "b": 2}'
        assert row["shipped_at"] == "2024-03-01T08:00:00"
        assert row["warehouse_id"] == "w1"
        assert "warehouseId" not in row
        assert row["weight"] is None

    def test_load_converts_back(self, mapper: ModelMapper[dict[str, Any]]) -> None:
        values = mapper.load(
            {
                "id": "s1",
                "fragile": 0,
                "meta": '{"a": 1}',
                "shipped_at": "2024-03-01T08:00:00",
                "warehouse_id": "w1",
                "extra_column": "ignored",
            }
        )
        assert values == {
            "id": "s1",
            "fragile": False,
            "meta": {"a": 1},
            "shipped_at": datetime(2024, 3, 1, 8, 0),
            "warehouseId": "w1",
        }

    def test_map_one_uses_factory(self, mapper: ModelMapper[dict[str, Any]]) -> None:
        assert mapper.map_one({"id": "s1", "weight": 2}) == {"id": "s1", "weight": 2.0}

    def test_dump_predicates(self, mapper: ModelMapper[dict[str, Any]]) -> None:
        predicates = mapper.dump_predicates(
            [
                Predicate("fragile", Operator.EQ, True),
                Predicate("warehouseId", Operator.IN, ["w1", "w2"]),
                Predicate("slug", Operator.LIKE, "box%"),
            ]
        )
        assert predicates == [
            Predicate("fragile", Operator.EQ, 1),
            Predicate("warehouse_id", Operator.IN, ["w1", "w2"]),
            Predicate("slug", Operator.LIKE, "box%"),
        ]

    def test_unknown_field(self, mapper: ModelMapper[dict[str, Any]]) -> None:
        with pytest.raises(ValidationError):
            mapper.dump_predicates([Predicate("colour", Operator.EQ, "red")])


class TestMapperWithShop:
    def test_relationship_fields_have_no_column(self, shop: SimpleNamespace) -> None:
        entry = ObjectRegistry.default().get_entry("Product")
        row = ModelMapper(entry, "sqlite", dict).dump({"tags": ["x"]})
        assert "tags" not in row
