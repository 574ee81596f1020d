"""
Example 02: Relationships and Eager Loading

This example demonstrates foreign keys, one-to-many and many-to-many
relationships on SQLite, and loading references in one JOINed query.
"""

import asyncio
import tempfile
from pathlib import Path

from row_object import (
    Collection,
    PersistentObject,
    decimal,
    entity,
    foreign_key,
    many_to_many,
    one_to_many,
    text,
)


@entity
class Customer(PersistentObject):
    email = text(unique=True)
    orders = one_to_many("Order")


@entity
class Tag(PersistentObject):
    pass


@entity
class Order(PersistentObject):
    total = decimal(default=0.0)
    customer_id = foreign_key("Customer")
    tags = many_to_many("Tag")


class OrderCollection(Collection[Order]):
    item_class = Order


async def main():
    db_dir = Path(tempfile.mkdtemp())
    options = {"persistence": {"type": "sqlite", "database": str(db_dir / "shop.db")}}

    print("=== Relationships ===\n")

    ada = await Customer(options, name="Ada", email="ada@example.com").save()
    bob = await Customer(options, name="Bob", email="bob@example.com").save()
    for i, owner in enumerate([ada, ada, bob]):
        await Order(options, name=f"Order {i + 1}", total=10.0 * (i + 1), customer_id=owner.id).save()

    # Foreign keys resolved in one query
    print("1. Include foreign keys:")
    orders = await OrderCollection(options).list(order_by="name", include=["customer_id"])
    for order in orders:
        customer = await order.get_related("customer_id")
        print(f"   {order.name}: {customer.name}")
    print()

    # One-to-many
    print("2. One-to-many:")
    for order in await ada.get_related("orders"):
        print(f"   {ada.name} -> {order.name} ({order.total})")
    print()

    # Many-to-many
    print("3. Many-to-many:")
    urgent = await Tag(options, name="Urgent").save()
    gift = await Tag(options, name="Gift").save()
    first = orders[0]
    await first.add_related("tags", urgent, gift)
    print(f"   tags: {sorted(t.name for t in await first.get_related('tags'))}")
    await first.remove_related("tags", gift)
    print(f"   after remove: {[t.name for t in await first.load_related_many('tags')]}")

    # Clean up
    storage = first.collection.storage
    await storage.close()
    for path in db_dir.iterdir():
        path.unlink()
    db_dir.rmdir()


if __name__ == "__main__":
    asyncio.run(main())
