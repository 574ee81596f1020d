"""Unit tests for Collection against the memory backend."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from row_object.core.enums import EntityState
from row_object.core.exceptions import ConfigurationError, DatabaseError, ValidationError
from row_object.core.registry import ObjectRegistry, entity
from row_object.core.schema import TableSchema
from row_object.repository.collection import Collection, collection_for
from row_object.repository.entity import PersistentObject
from row_object.storage.memory import MemoryStorage
from row_object.storage.protocol import SelectQuery


class CountingStorage(MemoryStorage):
    """MemoryStorage recording selects and schema setups."""

    def __init__(self, fail_setups: int = 0) -> None:
        super().__init__()
        self.selects: list[str] = []
        self.setups: list[str] = []
        self.fail_setups = fail_setups

    async def ensure_table(self, schema: TableSchema) -> None:
        self.setups.append(schema.name)
        await asyncio.sleep(0)
        if self.fail_setups:
            self.fail_setups -= 1
            raise DatabaseError.schema_error(schema.name, "create")
        await super().ensure_table(schema)

    async def select(self, query: SelectQuery) -> list[dict[str, Any]]:
        self.selects.append(query.table)
        return await super().select(query)


@pytest.fixture
def storage() -> CountingStorage:
    return CountingStorage()


@pytest.fixture
def options(storage: CountingStorage) -> dict[str, Any]:
    return {"db": storage}


@pytest.fixture
async def catalog(shop: SimpleNamespace, options: dict[str, Any]) -> SimpleNamespace:
    """Three products, two of them in a category."""
    lamps = await shop.Category(options, name="Lamps").save()
    products = []
    for name, sku, price, stock in [
        ("Desk Lamp", "DL-1", 25.0, 3),
        ("Floor Lamp", "FL-1", 80.0, 0),
        ("Bulb", "B-1", 2.5, 100),
    ]:
        product = shop.Product(options, name=name, sku=sku, price=price, stock=stock)
        if name.endswith("Lamp"):
            product.category_id = lamps.id
        products.append(await product.save())
    return SimpleNamespace(
        lamps=lamps,
        products=products,
        collection=shop.ProductCollection(options),
    )


class TestConstruction:
    def test_requires_item_class(self) -> None:
        with pytest.raises(ConfigurationError):
            Collection()

    def test_subclass_registers_factory(self, shop: SimpleNamespace) -> None:
        assert ObjectRegistry.default().has_collection("Product")
        collection = shop.ProductCollection({"persistence": {"type": "memory"}})
        assert collection.entity_name == "Product"
        assert collection.table_name == "products"

    def test_collection_for_registers_plain_factory(self) -> None:
        @entity
        class Note(PersistentObject):
            pass

        registry = ObjectRegistry.default()
        first = collection_for(registry, "Note", {"persistence": {"type": "memory"}})
        assert type(first) is Collection
        assert first.item_class is Note
        assert collection_for(registry, "note", {"persistence": {"type": "memory"}}) is first

    def test_collection_for_unknown_entity(self) -> None:
        with pytest.raises(ConfigurationError):
            collection_for(ObjectRegistry.default(), "Ghost", {})

    def test_create_binds_options(self, shop: SimpleNamespace, options: dict[str, Any]) -> None:
        collection = shop.ProductCollection(options)
        product = collection.create({"name": "Lamp"}, sku="L-1")
        assert product.options is collection.options
        assert (product.name, product.sku) == ("Lamp", "L-1")


class TestReads:
    async def test_get_by_id_slug_and_mapping(self, catalog: SimpleNamespace) -> None:
        desk = catalog.products[0]
        collection = catalog.collection
        assert (await collection.get(desk.id)).slug == "desk-lamp"
        assert (await collection.get("desk-lamp")).id == desk.id
        assert (await collection.get({"sku": "B-1"})).name == "Bulb"
        assert await collection.get("missing") is None

    async def test_get_rejects_other_filters(self, catalog: SimpleNamespace) -> None:
        with pytest.raises(ValidationError):
            await catalog.collection.get(42)

    async def test_hydrated_entities(self, catalog: SimpleNamespace) -> None:
        bulb = await catalog.collection.get("bulb")
        assert bulb.state is EntityState.SAVED
        assert bulb.in_stock is True
        assert bulb.options is catalog.collection.options

    async def test_list_filters_and_orders(self, catalog: SimpleNamespace) -> None:
        collection = catalog.collection
        cheap = await collection.list(where={"price <": 50}, order_by="price")
        assert [p.sku for p in cheap] == ["B-1", "DL-1"]
        by_price = await collection.list(order_by="price desc", limit=2, offset=1)
        assert [p.sku for p in by_price] == ["DL-1", "B-1"]
        assert [p.sku for p in await collection.list(where={"sku in": ["FL-1"]})] == ["FL-1"]

    async def test_list_unknown_field(self, catalog: SimpleNamespace) -> None:
        with pytest.raises(ValidationError):
            await catalog.collection.list(where={"colour": "red"})

    async def test_count(self, catalog: SimpleNamespace) -> None:
        collection = catalog.collection
        assert await collection.count() == 3
        assert await collection.count({"stock >": 0}) == 2
        assert await collection.count({"category_id": None}) == 1

    async def test_empty_table(self, shop: SimpleNamespace, options: dict[str, Any]) -> None:
        collection = shop.TagCollection(options)
        assert await collection.list() == []
        assert await collection.count() == 0


class TestInclude:
    async def test_batched_one_query_per_relation(
        self,
        shop: SimpleNamespace,
        storage: CountingStorage,
        options: dict[str, Any],
    ) -> None:
        customers = [
            await shop.Customer(options, name=f"C{i}", email=f"c{i}@example.com").save()
            for i in range(3)
        ]
        product = await shop.Product(options, name="Lamp", sku="L-1").save()
        for i in range(9):
            await shop.Order(
                options, name=f"order {i}", customer_id=customers[i % 3].id, product_id=product.id
            ).save()

        storage.selects.clear()
        orders = await shop.OrderCollection(options).list(include=["customer_id", "product_id"])

        assert storage.selects == ["orders", "customers", "products"]
        assert len(orders) == 9
        for order in orders:
            assert order.is_related_loaded("customer_id")
            assert (await order.get_related("customer_id")).id == order.customer_id
            assert (await order.get_related("product_id")).sku == "L-1"
        assert storage.selects == ["orders", "customers", "products"]

    async def test_null_reference_cached_as_none(
        self, catalog: SimpleNamespace, storage: CountingStorage
    ) -> None:
        products = await catalog.collection.list(order_by="sku", include=["category_id"])
        bulb = products[0]
        assert bulb.sku == "B-1"
        assert bulb.is_related_loaded("category_id")
        assert await bulb.get_related("category_id") is None
        assert (await products[1].get_related("category_id")).id == catalog.lamps.id

    async def test_unplannable_includes_ignored(
        self, catalog: SimpleNamespace, storage: CountingStorage
    ) -> None:
        storage.selects.clear()
        products = await catalog.collection.list(include=["tags", "sku", "nope"])
        assert storage.selects == ["products"]
        assert not products[0].is_related_loaded("tags")


class TestGetOrUpsert:
    async def test_creates_on_miss(self, shop: SimpleNamespace, options: dict[str, Any]) -> None:
        collection = shop.ProductCollection(options)
        product = await collection.get_or_upsert(
            {"slug": "lamp", "price": 5.0}, {"sku": "L-1", "name": "Lamp"}
        )
        assert product.id is not None
        assert (product.sku, product.price) == ("L-1", 5.0)
        assert await collection.count() == 1

    async def test_unchanged_match_is_not_saved(
        self, shop: SimpleNamespace, options: dict[str, Any]
    ) -> None:
        collection = shop.ProductCollection(options)
        created = await collection.get_or_upsert({"slug": "lamp", "price": 5.0}, {"sku": "L-1"})
        again = await collection.get_or_upsert({"slug": "lamp", "price": 5.0})
        assert again.id == created.id
        assert again.updated_at == created.updated_at

    async def test_changed_values_saved(
        self, shop: SimpleNamespace, options: dict[str, Any]
    ) -> None:
        collection = shop.ProductCollection(options)
        created = await collection.get_or_upsert({"slug": "lamp", "price": 5.0}, {"sku": "L-1"})
        updated = await collection.get_or_upsert({"slug": "lamp", "price": 7.0})
        assert updated.id == created.id
        assert updated.price == 7.0
        assert (await collection.get("lamp")).price == 7.0
        assert await collection.count() == 1

    async def test_match_by_fields(self, catalog: SimpleNamespace) -> None:
        found = await catalog.collection.get_or_upsert({"sku": "B-1"})
        assert found.id == catalog.products[2].id


class TestEnsureSchema:
    async def test_concurrent_callers_share_setup(
        self, shop: SimpleNamespace, storage: CountingStorage, options: dict[str, Any]
    ) -> None:
        collection = shop.CategoryCollection(options)
        await asyncio.gather(*(collection.ensure_schema() for _ in range(5)))
        assert storage.setups == ["categories"]
        await collection.ensure_schema()
        assert storage.setups == ["categories"]

    async def test_failed_setup_is_retried(self, shop: SimpleNamespace) -> None:
        storage = CountingStorage(fail_setups=1)
        collection = shop.CategoryCollection({"db": storage})
        with pytest.raises(DatabaseError):
            await collection.ensure_schema()
        await collection.ensure_schema()
        assert storage.setups == ["categories", "categories"]
        assert await collection.count() == 0
