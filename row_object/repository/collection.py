"""Collections: typed gateways to the stored entities of one kind.

A Collection subclass names its entity with ``item_class`` and registers
itself as that entity's collection factory when the class is created::

    class ProductCollection(Collection[Product]):
        item_class = Product

    products = ProductCollection({"persistence": {"type": "sqlite", "database": "shop.db"}})
    cheap = await products.list(where={"price <": 10}, order_by="price", include=["category_id"])

Entities without a Collection subclass get a plain Collection on first use.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable, Mapping, Sequence
from typing import Any, ClassVar, Generic, TypeVar

import structlog

from row_object.core.config import PersistenceOptions
from row_object.core.enums import EntityState
from row_object.core.exceptions import ConfigurationError, ValidationError
from row_object.core.naming import looks_like_uuid
from row_object.core.query import parse_order_by, parse_where
from row_object.core.registry import ObjectRegistry, RegistryEntry
from row_object.core.schema import build_table_schema
from row_object.mapping.aggregate import AggregateMapper
from row_object.mapping.builder import plan_includes
from row_object.mapping.model import ModelMapper
from row_object.mapping.plan import ROOT_ALIAS, ReferencePlan
from row_object.storage.protocol import SelectQuery, Storage

logger = structlog.get_logger()

T = TypeVar("T")


def collection_for(
    registry: ObjectRegistry,
    entity_name: str,
    options: PersistenceOptions | dict[str, Any] | None,
) -> Collection[Any]:
    """Cached collection of *entity_name*, registering a plain one if needed."""
    if not registry.has_collection(entity_name):
        item_class = registry.get_class(entity_name)
        if item_class is None:
            raise ConfigurationError.missing_configuration(
                "registration", f"entity '{entity_name}'"
            )
        registry.register_collection(
            registry.require_entry(entity_name).name, Collection.factory_for(item_class)
        )
    return registry.get_collection(entity_name, options)


class Collection(Generic[T]):
    """Gateway for listing, counting, fetching and creating entities of one kind."""

    item_class: ClassVar[type]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        item_class = cls.__dict__.get("item_class")
        if item_class is not None:
            entry = item_class.registry_entry()
            item_class.registry().register_collection(entry.name, cls)

    def __init__(
        self,
        options: PersistenceOptions | dict[str, Any] | None = None,
        *,
        registry: ObjectRegistry | None = None,
        item_class: type | None = None,
    ) -> None:
        item_class = item_class or getattr(type(self), "item_class", None)
        if item_class is None:
            raise ConfigurationError.missing_configuration(
                "item_class", f"collection {type(self).__name__}"
            )
        self.item_class = item_class
        self.options = PersistenceOptions.coerce(options)
        self.registry = registry or item_class.registry()
        self.entry: RegistryEntry = item_class.registry_entry()
        self._storage: Storage | None = None
        self._mapper: ModelMapper[T] | None = None
        self._schema_task: asyncio.Future[None] | None = None

    @classmethod
    def factory_for(cls, item_class: type) -> Callable[..., Collection[Any]]:
        return functools.partial(cls, item_class=item_class)

    @property
    def entity_name(self) -> str:
        return self.entry.name

    @property
    def table_name(self) -> str:
        return self.entry.table_name

    @property
    def storage(self) -> Storage:
        if self._storage is None:
            self._storage = self.registry.get_storage(self.options)
        return self._storage

    @property
    def mapper(self) -> ModelMapper[T]:
        if self._mapper is None:
            self._mapper = ModelMapper(self.entry, self.storage.dialect, self._hydrate)
        return self._mapper

    def _hydrate(self, values: dict[str, Any]) -> T:
        item = self.item_class(self.options)
        for attr, value in values.items():
            setattr(item, attr, value)
        item._state = EntityState.SAVED
        return item

    def from_row(self, row: Mapping[str, Any]) -> T:
        """Hydrate a stored (column-keyed) row into a saved entity."""
        return self.mapper.map_one(row)

    # --- Schema ---

    async def ensure_schema(self) -> None:
        """Create the table once; concurrent callers share the same setup.

        A failed setup is forgotten so that the next call tries again.
        """
        if self._schema_task is None:
            self._schema_task = asyncio.ensure_future(self._setup_schema())
        task = self._schema_task
        try:
            await task
        except Exception:
            if self._schema_task is task:
                self._schema_task = None
            raise

    async def _setup_schema(self) -> None:
        schema = build_table_schema(self.entry)
        await self.storage.ensure_table(schema)
        logger.debug("schema_ensured", entity=self.entity_name, table=schema.name)

    # --- Reads ---

    def build_query(
        self,
        where: Mapping[str, Any] | None,
        limit: int | None = None,
        offset: int | None = None,
        order_by: str | Sequence[str] | None = None,
    ) -> SelectQuery:
        predicates = self.mapper.dump_predicates(parse_where(where))
        order = [(self.mapper.column(f), d) for f, d in parse_order_by(order_by)]
        return SelectQuery(
            table=self.table_name,
            where=tuple(predicates),
            order_by=tuple(order),
            limit=limit,
            offset=offset,
        )

    async def get(self, filter: str | Mapping[str, Any]) -> T | None:
        """Fetch one entity by id, by slug (context ``""``) or by a where mapping."""
        if isinstance(filter, str):
            where: dict[str, Any] = (
                {"id": filter} if looks_like_uuid(filter) else {"slug": filter, "context": ""}
            )
        elif isinstance(filter, Mapping):
            where = dict(filter)
        else:
            raise ValidationError.invalid_value(
                "filter", filter, "an id, a slug or a where mapping"
            )
        items = await self.list(where=where, limit=1)
        return items[0] if items else None

    async def list(
        self,
        where: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int | None = None,
        order_by: str | Sequence[str] | None = None,
        include: Sequence[str] | None = None,
    ) -> list[T]:
        """List entities, eager-loading the foreign keys named in *include*.

        SQL storage answers an include in one JOINed query; other storage
        issues one ``id in (...)`` query per included relation.
        """
        await self.ensure_schema()
        query = self.build_query(where, limit, offset, order_by)
        plan = plan_includes(self.registry, self.entity_name, include or ())
        if not plan.reference_plans:
            return self.mapper.map_many(await self.storage.select(query))

        related = {
            ref.entity_plan.alias: collection_for(
                self.registry, ref.entity_plan.entity_name, self.options
            )
            for ref in plan.reference_plans
        }
        for collection in related.values():
            await collection.ensure_schema()

        if self.storage.supports_joins:
            rows = await self.storage.select_joined(plan, query)
            factories = {ROOT_ALIAS: self.mapper.map_one}
            factories.update({alias: c.mapper.map_one for alias, c in related.items()})
            return AggregateMapper(plan, factories).map_many(rows)

        items = self.mapper.map_many(await self.storage.select(query))
        for ref in plan.reference_plans:
            await self._attach_batch(items, ref, related[ref.entity_plan.alias])
        return items

    async def _attach_batch(
        self, items: list[T], ref: ReferencePlan, collection: Collection[Any]
    ) -> None:
        attr = ref.attribute_name
        ids = list(dict.fromkeys(
            getattr(item, attr) for item in items if getattr(item, attr) is not None
        ))
        found = await collection.list(where={"id in": ids})
        by_id = {entity.id: entity for entity in found}
        for item in items:
            item.cache_related(attr, by_id.get(getattr(item, attr)))

    async def count(self, where: Mapping[str, Any] | None = None) -> int:
        await self.ensure_schema()
        predicates = self.mapper.dump_predicates(parse_where(where))
        return await self.storage.count(self.table_name, predicates)

    # --- Writes ---

    def create(self, data: Mapping[str, Any] | None = None, **values: Any) -> T:
        """New unsaved entity bound to this collection's options."""
        return self.item_class(self.options, **{**(data or {}), **values})

    async def get_or_upsert(
        self, match: Mapping[str, Any], defaults: Mapping[str, Any] | None = None
    ) -> T:
        """Return the entity matching *match*, saving it when values differ.

        Entities are matched by ``id``, else by ``slug`` and ``context``,
        else by every value of *match*. A miss creates the entity from
        *defaults* overlaid with *match* and saves it.
        """
        match = dict(match)
        if match.get("id"):
            where: dict[str, Any] = {"id": match["id"]}
        elif match.get("slug"):
            where = {"slug": match["slug"], "context": match.get("context") or ""}
        else:
            where = match
        existing = await self.get(where)
        if existing is None:
            item = self.create({**(defaults or {}), **match})
            await item.save()
            return item

        columns = self.entry.columns
        changed = {
            key: value
            for key, value in match.items()
            if key in columns and getattr(existing, key) != value
        }
        if changed:
            for key, value in changed.items():
                setattr(existing, key, value)
            await existing.save()
        return existing
