"""
Example 01: Persistent Objects

This example demonstrates declaring entities, saving them to an in-memory
store and reading them back through a Collection.
"""

import asyncio

from row_object import Collection, PersistentObject, decimal, entity, integer, text
from row_object.core.exceptions import ValidationError

MEMORY = {"persistence": {"type": "memory"}}


@entity
class Product(PersistentObject):
    sku = text(required=True, unique=True)
    price = decimal(min=0, default=0.0)
    stock = integer(default=0)
    featured = False


class ProductCollection(Collection[Product]):
    item_class = Product


async def main():
    print("=== Persistent Objects ===\n")

    # Save assigns id, slug and timestamps
    print("1. Save:")
    lamp = await Product(MEMORY, name="Desk Lamp", sku="DL-1", price=25.0, stock=3).save()
    print(f"   {lamp.slug} -> {lamp.id}")
    print(f"   created {lamp.created_at:%Y-%m-%d %H:%M:%S}\n")

    await Product(MEMORY, name="Floor Lamp", sku="FL-1", price=80.0).save()
    await Product(MEMORY, name="Bulb", sku="B-1", price=2.5, stock=100).save()

    # Second save updates the same row
    print("2. Update:")
    lamp.price = 22.0
    await lamp.save()
    print(f"   price now {lamp.price}, updated {lamp.updated_at:%H:%M:%S.%f}\n")

    # Collection reads with operator filters
    print("3. Query:")
    products = ProductCollection(MEMORY)
    in_stock = await products.list(where={"stock >": 0}, order_by="price desc")
    for product in in_stock:
        print(f"   - {product.name}: {product.price}")
    print(f"   lamps: {await products.count({'name like': '%lamp%'})}\n")

    # Lookup by slug
    print("4. Get by slug:")
    bulb = await products.get("bulb")
    print(f"   {bulb.name} ({bulb.sku})\n")

    # Validation collects every failing field
    print("5. Validation:")
    try:
        await Product(MEMORY, name="Broken", price=-1.0).save()
    except ValidationError as e:
        print(f"   {e.message}")
        print(f"   fields: {e.fields}\n")

    # Delete
    print("6. Delete:")
    await bulb.delete()
    print(f"   remaining: {await products.count()}")


if __name__ == "__main__":
    asyncio.run(main())
