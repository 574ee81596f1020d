"""Persistent objects.

Subclass PersistentObject and declare fields as class attributes; every
entity also carries ``id``, ``slug``, ``context``, ``name``, ``created_at``
and ``updated_at``::

    @entity(hooks={"before_save": "normalize"})
    class Product(PersistentObject):
        sku = text(required=True, unique=True)
        price = decimal(min=0)
        category_id = foreign_key("Category")
        tags = many_to_many("Tag")

        def normalize(self) -> None:
            self.sku = self.sku.upper()

    product = Product({"persistence": {"type": "memory"}}, name="Desk Lamp", sku="dl-1")
    await product.save()

Rows are written with an upsert keyed on ``(slug, context)``; a row with
the same key but another ``id`` is a uniqueness conflict, never an
overwrite.
"""

from __future__ import annotations

import inspect
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar, TypeVar

import structlog

from row_object.core.config import PersistenceOptions
from row_object.core.enums import EntityState
from row_object.core.exceptions import (
    AIError,
    ConfigurationError,
    DatabaseError,
    RowObjectError,
    RuntimeError,
    ValidationError,
    translate_constraint_error,
)
from row_object.core.fields import FieldKind, parse_datetime
from row_object.core.naming import slugify
from row_object.core.query import Operator, Predicate
from row_object.core.registry import ObjectRegistry, RegistryEntry, RelationshipDescriptor
from row_object.core.retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry
from row_object.core.schema import (
    JOIN_SOURCE_COLUMN,
    JOIN_TARGET_COLUMN,
    NATURAL_KEY,
    join_table_name,
)
from row_object.core.validation import validate_values
from row_object.repository.ai import (
    build_do_prompt,
    build_is_prompt,
    build_tools,
    parse_is_response,
)
from row_object.repository.collection import Collection, collection_for
from row_object.storage.protocol import SelectQuery

logger = structlog.get_logger()

E = TypeVar("E", bound="PersistentObject")

# Columns an upsert never overwrites on an existing row
_FIXED_COLUMNS = frozenset({"id", *NATURAL_KEY, "created_at"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: Any) -> datetime:
    value = parse_datetime(value)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class PersistentObject:
    """Base class of stored entities."""

    __entity_base__ = True

    retry_policy: ClassVar[RetryPolicy] = DEFAULT_RETRY_POLICY

    def __init__(
        self, options: PersistenceOptions | dict[str, Any] | None = None, **values: Any
    ) -> None:
        entry = type(self).registry_entry()
        self._options = PersistenceOptions.coerce(options)
        self._state = EntityState.UNSAVED
        self._related: dict[str, Any] = {}
        self.id: str | None = None
        self.slug: str | None = None
        self.context: str = ""
        self.name: str | None = None
        self.created_at: datetime | None = None
        self.updated_at: datetime | None = None
        for attr, fld in entry.fields.items():
            if fld.has_column:
                setattr(self, attr, fld.get_default())
        for attr, value in values.items():
            if attr not in entry.columns:
                raise ValidationError.unknown_field(attr, entry.name)
            setattr(self, attr, value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} slug={self.slug!r}>"

    # --- Registration ---

    @classmethod
    def registry(cls) -> ObjectRegistry:
        return cls.__dict__.get("_registry") or ObjectRegistry.default()

    @classmethod
    def registry_entry(cls) -> RegistryEntry:
        """Registry entry of this class, registering it on first use."""
        registry = cls.registry()
        name = cls.__dict__.get("_entity_name")
        entry = registry.get_entry(name) if name else None
        if entry is None or entry.cls is not cls:
            entry = registry.register(cls)
        return entry

    @classmethod
    def entity_name(cls) -> str:
        return cls.registry_entry().name

    @property
    def state(self) -> EntityState:
        return self._state

    @property
    def options(self) -> PersistenceOptions:
        return self._options

    @property
    def collection(self) -> Collection[Any]:
        return collection_for(self.registry(), self.entity_name(), self.options)

    # --- Values ---

    def _values(self) -> dict[str, Any]:
        return {attr: getattr(self, attr, None) for attr in self.registry_entry().columns}

    def to_dict(self) -> dict[str, Any]:
        """Built-in and column field values keyed by attribute name."""
        return self._values()

    def get_field_value(self, name: str) -> Any:
        entry = self.registry_entry()
        if name not in entry.columns:
            raise ValidationError.unknown_field(name, entry.name)
        return getattr(self, name, None)

    def derive_slug(self) -> str:
        """Slug from ``name``; the id when the name yields nothing."""
        return slugify(self.name or "") or str(self.id)

    def _check_not_deleted(self, operation: str) -> None:
        if self.state is EntityState.DELETED:
            raise RuntimeError.invalid_state(self.state.value, operation, self.entity_name())

    async def validate(self) -> None:
        """Check every domain field.

        Raises:
            ValidationError: one error listing every violated field.
        """
        entry = self.registry_entry()
        report = await validate_values(self._values(), entry.fields, entry.name)
        report.raise_for_errors()

    # --- Lifecycle ---

    async def initialize(self: E) -> E:
        """Ensure the table exists and load stored values by id or slug."""
        collection = self.collection
        await collection.ensure_schema()
        if self.id:
            where: dict[str, Any] = {"id": self.id}
        elif self.slug:
            where = {"slug": self.slug, "context": self.context or ""}
        else:
            return self
        query = collection.build_query(where, limit=1)
        rows = await collection.storage.select(query)
        if rows:
            for attr, value in collection.mapper.load(rows[0]).items():
                setattr(self, attr, value)
            self._state = EntityState.SAVED
        return self

    def _touch(self) -> None:
        now = _utcnow()
        if self.updated_at is not None:
            previous = _as_naive_utc(self.updated_at)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
        self.updated_at = now
        if self.created_at is None:
            self.created_at = now

    async def save(self: E) -> E:
        """Validate and upsert this entity.

        Raises:
            ValidationError: a field is invalid, or the (slug, context)
                key belongs to another entity.
            RuntimeError: the entity was deleted.
        """
        self._check_not_deleted("save")
        entry = self.registry_entry()
        await self._run_hook("before_save")
        await self.validate()

        if not self.id:
            self.id = str(uuid.uuid4())
        if not self.slug:
            self.slug = self.derive_slug()
        if self.context is None:
            self.context = ""
        self._touch()

        collection = self.collection
        await collection.ensure_schema()
        storage = collection.storage
        row = collection.mapper.dump(self._values())
        if self._state is EntityState.SAVED:
            await self._check_key_unchanged(entry, storage)
        update = [column for column in row if column not in _FIXED_COLUMNS]

        try:
            affected = await with_retry(
                lambda: storage.upsert(
                    entry.table_name, row, conflict=NATURAL_KEY, update=update, guard="id"
                ),
                self.retry_policy,
                operation_name=f"{entry.name}.save",
            )
        except DatabaseError as e:
            translated = translate_constraint_error(e, row)
            if translated is None:
                raise
            raise translated from e
        if affected == 0:
            raise ValidationError.unique_constraint(
                ", ".join(NATURAL_KEY), f"{self.slug}, {self.context}"
            )

        self._state = EntityState.SAVED
        logger.debug("object_saved", entity=entry.name, id=self.id, slug=self.slug)
        await self._run_hook("after_save")
        return self

    async def _check_key_unchanged(self, entry: RegistryEntry, storage: Any) -> None:
        rows = await storage.select(
            SelectQuery(
                table=entry.table_name,
                where=(Predicate("id", Operator.EQ, self.id),),
                columns=NATURAL_KEY,
                limit=1,
            )
        )
        if not rows:
            return
        stored = (rows[0]["slug"], rows[0]["context"])
        if stored != (self.slug, self.context):
            raise ValidationError.invalid_value(
                ", ".join(NATURAL_KEY),
                f"{self.slug}, {self.context}",
                f"the stored key {stored[0]}, {stored[1]} (saved entities keep their slug)",
            )

    async def delete(self) -> None:
        """Delete the row and this entity's many-to-many links."""
        self._check_not_deleted("delete")
        entry = self.registry_entry()
        if not self.id and not self.slug:
            raise RuntimeError.invalid_state(self.state.value, "delete without id or slug", entry.name)
        await self._run_hook("before_delete")

        collection = self.collection
        await collection.ensure_schema()
        storage = collection.storage
        if self.id:
            where = [Predicate("id", Operator.EQ, self.id)]
        else:
            where = [
                Predicate("slug", Operator.EQ, self.slug),
                Predicate("context", Operator.EQ, self.context or ""),
            ]
        await with_retry(
            lambda: storage.delete(entry.table_name, where),
            self.retry_policy,
            operation_name=f"{entry.name}.delete",
        )
        if self.id:
            await self._delete_links(entry)

        logger.debug("object_deleted", entity=entry.name, id=self.id, slug=self.slug)
        await self._run_hook("after_delete")
        self._state = EntityState.DELETED

    async def _delete_links(self, entry: RegistryEntry) -> None:
        storage = self.collection.storage
        for field_name, rel in entry.relationships.items():
            if rel.kind is FieldKind.MANY_TO_MANY:
                table = join_table_name(entry.table_name, field_name, rel.through)
                await storage.delete(table, [Predicate(JOIN_SOURCE_COLUMN, Operator.EQ, self.id)])
        registry = self.registry()
        for rel in registry.get_inverse_relationships(entry.name):
            if rel.kind is not FieldKind.MANY_TO_MANY:
                continue
            source = collection_for(registry, rel.source, self.options)
            await source.ensure_schema()
            table = join_table_name(source.table_name, rel.field_name, rel.through)
            await storage.delete(table, [Predicate(JOIN_TARGET_COLUMN, Operator.EQ, self.id)])

    async def _run_hook(self, hook_name: str) -> None:
        entry = self.registry_entry()
        hook: str | Callable[..., Any] | None = entry.config.hooks.get(hook_name)
        if hook is None:
            method = getattr(self, hook_name, None)
            if not callable(method):
                return
            result = method()
        elif isinstance(hook, str):
            method = getattr(self, hook, None)
            if not callable(method):
                logger.warning(
                    "hook_method_missing", entity=entry.name, hook=hook_name, method=hook
                )
                return
            result = method()
        else:
            result = hook(self)
        if inspect.isawaitable(result):
            await result

    # --- Relationships ---

    def _relationship(self, field_name: str, *kinds: FieldKind) -> RelationshipDescriptor:
        rel = self.registry_entry().relationships.get(field_name)
        if rel is None or (kinds and rel.kind not in kinds):
            raise ConfigurationError.invalid_configuration(
                field_name,
                rel.kind.value if rel else None,
                "a " + " or ".join(k.value for k in kinds) + " relationship"
                if kinds
                else "a relationship",
            )
        return rel

    def cache_related(self, field_name: str, value: Any) -> None:
        self._related[field_name] = value

    def is_related_loaded(self, field_name: str) -> bool:
        return field_name in self._related

    async def get_related(self, field_name: str) -> Any:
        """Related entity (or list) for *field_name*, loading it when not cached."""
        if field_name in self._related:
            return self._related[field_name]
        rel = self._relationship(field_name)
        if rel.kind is FieldKind.FOREIGN_KEY:
            return await self.load_related(field_name)
        return await self.load_related_many(field_name)

    async def load_related(self, field_name: str) -> Any:
        """Load the entity a foreign key points at; None for a null key."""
        if field_name in self._related:
            return self._related[field_name]
        rel = self._relationship(field_name, FieldKind.FOREIGN_KEY)
        key = getattr(self, field_name, None)
        related = None
        if key is not None:
            target = collection_for(self.registry(), rel.related, self.options)
            related = await target.get({"id": key})
        self._related[field_name] = related
        return related

    async def load_related_many(self, field_name: str) -> list[Any]:
        """Load one-to-many children or many-to-many links."""
        if field_name in self._related:
            return self._related[field_name]
        rel = self._relationship(field_name, FieldKind.ONE_TO_MANY, FieldKind.MANY_TO_MANY)
        registry = self.registry()
        target = collection_for(registry, rel.related, self.options)
        if self.id is None:
            items: list[Any] = []
        elif rel.kind is FieldKind.ONE_TO_MANY:
            inverse = registry.get_inverse_field(self.entity_name(), field_name)
            items = await target.list(where={inverse: self.id})
        else:
            ids = await self._linked_ids(field_name, rel)
            items = await target.list(where={"id in": ids}) if ids else []
        self._related[field_name] = items
        return items

    def _join_table(self, field_name: str, rel: RelationshipDescriptor) -> str:
        return join_table_name(self.registry_entry().table_name, field_name, rel.through)

    async def _linked_ids(self, field_name: str, rel: RelationshipDescriptor) -> list[str]:
        collection = self.collection
        await collection.ensure_schema()
        rows = await collection.storage.select(
            SelectQuery(
                table=self._join_table(field_name, rel),
                where=(Predicate(JOIN_SOURCE_COLUMN, Operator.EQ, self.id),),
                columns=(JOIN_TARGET_COLUMN,),
            )
        )
        return [row[JOIN_TARGET_COLUMN] for row in rows]

    def _require_saved(self, operation: str) -> None:
        self._check_not_deleted(operation)
        if self.id is None or self.state is not EntityState.SAVED:
            raise RuntimeError.invalid_state(self.state.value, operation, self.entity_name())

    async def add_related(self, field_name: str, *others: PersistentObject) -> None:
        """Link saved *others* through a many-to-many field."""
        self._require_saved("add_related")
        rel = self._relationship(field_name, FieldKind.MANY_TO_MANY)
        collection = self.collection
        await collection.ensure_schema()
        table = self._join_table(field_name, rel)
        for other in others:
            other._require_saved("link")
            await with_retry(
                lambda other=other: collection.storage.upsert(
                    table,
                    {JOIN_SOURCE_COLUMN: self.id, JOIN_TARGET_COLUMN: other.id},
                    conflict=(JOIN_SOURCE_COLUMN, JOIN_TARGET_COLUMN),
                    update=(),
                ),
                self.retry_policy,
                operation_name=f"{self.entity_name()}.add_related",
            )
        self._related.pop(field_name, None)

    async def remove_related(self, field_name: str, *others: PersistentObject) -> None:
        """Unlink *others* from a many-to-many field."""
        self._require_saved("remove_related")
        rel = self._relationship(field_name, FieldKind.MANY_TO_MANY)
        collection = self.collection
        await collection.ensure_schema()
        ids = [other.id for other in others if other.id is not None]
        if ids:
            await collection.storage.delete(
                self._join_table(field_name, rel),
                [
                    Predicate(JOIN_SOURCE_COLUMN, Operator.EQ, self.id),
                    Predicate(JOIN_TARGET_COLUMN, Operator.IN, ids),
                ],
            )
        self._related.pop(field_name, None)

    # --- AI ---

    def available_tools(self) -> list[dict[str, Any]]:
        """Function-calling tools for the methods listed in ``ai.callable``."""
        return build_tools(type(self), self.registry_entry().config.ai, stop=PersistentObject)

    async def _complete(self, prompt: str, operation: str, **options: Any) -> str:
        client = self.options.ai
        if client is None:
            raise ConfigurationError.missing_configuration("ai", f"entity '{self.entity_name()}'")
        provider = getattr(client, "name", type(client).__name__)
        tools = self.available_tools() or None
        try:
            return await with_retry(
                lambda: client.complete(prompt, tools=tools, **options),
                self.retry_policy,
                operation_name=f"{self.entity_name()}.{operation}",
            )
        except RowObjectError:
            raise
        except Exception as e:
            raise AIError.provider_error(provider, operation, e) from e

    async def is_(self, criteria: str, **options: Any) -> bool:
        """Ask the AI client whether this entity meets *criteria*."""
        options.setdefault("response_format", {"type": "json_object"})
        message = await self._complete(build_is_prompt(criteria, self.to_dict()), "is", **options)
        provider = getattr(self.options.ai, "name", type(self.options.ai).__name__)
        return parse_is_response(message, provider)

    async def do(self, instructions: str, **options: Any) -> str:
        """Have the AI client follow *instructions* about this entity."""
        return await self._complete(
            build_do_prompt(instructions, self.to_dict()), "do", **options
        )

    def update(self, values: Mapping[str, Any]) -> None:
        """Assign column values; unknown names raise ValidationError."""
        self._check_not_deleted("update")
        entry = self.registry_entry()
        for attr, value in values.items():
            if attr not in entry.columns:
                raise ValidationError.unknown_field(attr, entry.name)
            setattr(self, attr, value)
