"""Shared test fixtures."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from row_object.core.connection import ConnectionConfig
from row_object.core.database import Database
from row_object.core.fields import (
    decimal,
    foreign_key,
    integer,
    many_to_many,
    one_to_many,
    text,
)
from row_object.core.registry import ObjectRegistry, entity
from row_object.repository.collection import Collection
from row_object.repository.entity import PersistentObject
from row_object.storage.memory import MemoryStorage
from row_object.storage.sql import SqlStorage


@pytest.fixture(autouse=True)
def clear_registry():
    """Every test starts from an empty default registry."""
    ObjectRegistry.default().clear()
    yield
    ObjectRegistry.default().clear()


@pytest.fixture
def sqlite_config() -> ConnectionConfig:
    """SQLite in-memory connection config (one connection, one database)."""
    return ConnectionConfig(driver="sqlite", database=":memory:", pool_size=1)


@pytest.fixture
async def database(sqlite_config: ConnectionConfig):
    db = Database.from_config(sqlite_config)
    yield db
    await db.close()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def sql_storage(database: Database) -> SqlStorage:
    return SqlStorage(database)


@pytest.fixture
def shop() -> SimpleNamespace:
    """A small catalog: customers, categories, products, tags and orders."""

    @entity
    class Category(PersistentObject):
        description = text()

    @entity
    class Customer(PersistentObject):
        email = text(unique=True)
        orders = one_to_many("Order")

    @entity
    class Tag(PersistentObject):
        pass

    @entity
    class Product(PersistentObject):
        sku = text(required=True, unique=True)
        price = decimal(min=0, default=0.0)
        stock = integer(default=0)
        in_stock = True
        category_id = foreign_key("Category")
        tags = many_to_many("Tag")

    @entity
    class Order(PersistentObject):
        total = decimal(default=0.0)
        customer_id = foreign_key("Customer")
        product_id = foreign_key("Product")
        note = text()

    class CategoryCollection(Collection[Category]):
        item_class = Category

    class CustomerCollection(Collection[Customer]):
        item_class = Customer

    class TagCollection(Collection[Tag]):
        item_class = Tag

    class ProductCollection(Collection[Product]):
        item_class = Product

    class OrderCollection(Collection[Order]):
        item_class = Order

    return SimpleNamespace(
        Category=Category,
        Customer=Customer,
        Tag=Tag,
        Product=Product,
        Order=Order,
        CategoryCollection=CategoryCollection,
        CustomerCollection=CustomerCollection,
        TagCollection=TagCollection,
        ProductCollection=ProductCollection,
        OrderCollection=OrderCollection,
    )
