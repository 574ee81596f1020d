"""Object registry.

Process-wide metadata store: entity name -> field descriptors, relationship
descriptors, configuration and collection factory. It also owns the
collection singleton cache, so relationship traversal reuses one collection
(and one storage backend) per (entity, persistence options) pair.

The registry is a plain object; ``ObjectRegistry.default()`` returns the
shared instance that the ``@entity`` decorator uses unless another registry
is passed. ``clear()`` is the teardown hook for tests.
"""

from __future__ import annotations

import inspect
import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

import structlog

from row_object.core.config import ObjectConfig, PersistenceOptions
from row_object.core.exceptions import ConfigurationError
from row_object.core.fields import RELATIONSHIP_KINDS, Field, FieldKind, infer_field
from row_object.core.naming import is_temporal_name, table_name_for, to_snake_case
from row_object.core.schema import LEADING_FIELDS, RESERVED_NAMES, TRAILING_FIELDS

logger = structlog.get_logger()

# Marks the library base classes whose attributes are never inferred as fields.
BASE_MARKER = "__entity_base__"


@dataclass(frozen=True)
class RelationshipDescriptor:
    source: str
    field_name: str
    kind: FieldKind
    related: str
    inverse: str | None = None
    through: str | None = None
    on_delete: str | None = None


@dataclass
class RegistryEntry:
    name: str
    cls: type
    config: ObjectConfig
    fields: dict[str, Field]
    relationships: dict[str, RelationshipDescriptor]
    table_name: str
    field_map: dict[str, str] = field(default_factory=dict)  # attribute -> column

    def __post_init__(self) -> None:
        self.field_map = {attr: to_snake_case(attr) for attr in self.columns}

    @property
    def columns(self) -> dict[str, Field]:
        """Built-in and domain fields that are stored as columns, in table order."""
        leading = {name: self.fields.get(name, fld) for name, fld in LEADING_FIELDS.items()}
        domain = {
            name: fld
            for name, fld in self.fields.items()
            if fld.has_column and name not in leading
        }
        return {**leading, **domain, **TRAILING_FIELDS}

    def column_for(self, attr: str) -> str:
        return self.field_map.get(attr, to_snake_case(attr))


def _class_vars(klass: type) -> set[str]:
    annotations = inspect.get_annotations(klass)
    return {name for name, annotation in annotations.items() if "ClassVar" in str(annotation)}


def _base_names(cls: type) -> set[str]:
    """Public attribute names of the library base classes in *cls*'s MRO."""
    return {
        name
        for klass in cls.__mro__
        if BASE_MARKER in klass.__dict__
        for name in klass.__dict__
        if not name.startswith("_")
    }


def extract_fields(cls: type) -> dict[str, Field]:
    """Derive field descriptors from class attributes, base classes first.

    Raises:
        ConfigurationError: a field would shadow a base-class attribute.
    """
    fields: dict[str, Field] = {}
    taken = _base_names(cls)
    for klass in reversed(cls.__mro__):
        if klass is object or BASE_MARKER in klass.__dict__:
            continue
        class_vars = _class_vars(klass)
        for name, value in list(klass.__dict__.items()):
            if name.startswith("_") or name in RESERVED_NAMES or name in class_vars:
                continue
            if isinstance(value, Field):
                fld = value
            elif value is None or callable(value) or isinstance(
                value, (property, classmethod, staticmethod)
            ):
                continue
            else:
                inferred = infer_field(value)
                if inferred is None:
                    continue
                fld = inferred
            if name in taken:
                raise ConfigurationError.invalid_configuration(
                    f"{cls.__name__}.{name}", name, "a field name not used by the entity base class"
                )
            if is_temporal_name(name) and not fld.is_relationship:
                fld = fld.with_kind(FieldKind.DATETIME)
            fields[name] = fld
    return fields


class ObjectRegistry:
    """Registry of entity classes, their collections and storages."""

    _default: ClassVar[ObjectRegistry | None] = None

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._factories: dict[str, Callable[..., Any]] = {}
        self._collections: dict[str, Any] = {}
        self._storages: dict[str, Any] = {}
        self._lock = threading.RLock()

    @classmethod
    def default(cls) -> ObjectRegistry:
        """The shared registry instance."""
        if cls._default is None:
            cls._default = cls()
        return cls._default

    # --- Registration ---

    def register(self, cls: type, config: ObjectConfig | None = None) -> RegistryEntry:
        """Record *cls* and its derived fields; re-registration overwrites."""
        config = config or ObjectConfig()
        name = config.name or cls.__name__
        fields = extract_fields(cls)
        relationships = {
            field_name: RelationshipDescriptor(
                source=name,
                field_name=field_name,
                kind=fld.kind,
                related=fld.related or "",
                inverse=fld.inverse,
                through=fld.through,
                on_delete=fld.on_delete,
            )
            for field_name, fld in fields.items()
            if fld.kind in RELATIONSHIP_KINDS
        }
        entry = RegistryEntry(
            name=name,
            cls=cls,
            config=config,
            fields=fields,
            relationships=relationships,
            table_name=config.table_name or table_name_for(name),
        )
        with self._lock:
            self._entries[name] = entry
        cls._entity_name = name  # type: ignore[attr-defined]
        cls._registry = self  # type: ignore[attr-defined]
        logger.debug(
            "object_registered",
            name=name,
            table=entry.table_name,
            fields=list(fields),
        )
        return entry

    def register_collection(self, entity_name: str, factory: Callable[..., Any]) -> None:
        """Associate the collection factory for *entity_name*; last write wins."""
        with self._lock:
            self._factories[entity_name] = factory

    # --- Lookup ---

    def get_entry(self, entity_name: str) -> RegistryEntry | None:
        entry = self._entries.get(entity_name)
        if entry is not None:
            return entry
        lowered = entity_name.lower()
        for name, candidate in self._entries.items():
            if name.lower() == lowered:
                return candidate
        return None

    def require_entry(self, entity_name: str) -> RegistryEntry:
        entry = self.get_entry(entity_name)
        if entry is None:
            raise ConfigurationError.missing_configuration(
                "registration", f"entity '{entity_name}'"
            )
        return entry

    def has_class(self, entity_name: str) -> bool:
        return self.get_entry(entity_name) is not None

    def get_class(self, entity_name: str) -> type | None:
        entry = self.get_entry(entity_name)
        return entry.cls if entry is not None else None

    def class_names(self) -> list[str]:
        return list(self._entries)

    def get_fields(self, entity_name: str) -> dict[str, Field]:
        """Field descriptors of *entity_name*; empty for unknown names."""
        entry = self.get_entry(entity_name)
        return dict(entry.fields) if entry is not None else {}

    def get_relationships(self, entity_name: str) -> dict[str, RelationshipDescriptor]:
        entry = self.get_entry(entity_name)
        return dict(entry.relationships) if entry is not None else {}

    def get_inverse_relationships(self, entity_name: str) -> list[RelationshipDescriptor]:
        """Relationships on other entities that point at *entity_name*."""
        lowered = entity_name.lower()
        return [
            rel
            for entry in self._entries.values()
            for rel in entry.relationships.values()
            if rel.related.lower() == lowered
        ]

    def has_collection(self, entity_name: str) -> bool:
        """True if a collection factory is registered for *entity_name*."""
        entry = self.get_entry(entity_name)
        return entry is not None and entry.name in self._factories

    def get_config(self, entity_name: str) -> ObjectConfig | None:
        entry = self.get_entry(entity_name)
        return entry.config if entry is not None else None

    def get_inverse_field(self, entity_name: str, field_name: str) -> str:
        """Foreign-key field on the related entity that backs a OneToMany field."""
        entry = self.require_entry(entity_name)
        rel = entry.relationships.get(field_name)
        if rel is None or rel.kind is not FieldKind.ONE_TO_MANY:
            raise ConfigurationError.invalid_configuration(
                field_name, rel.kind.value if rel else None, "a one_to_many relationship"
            )
        if rel.inverse:
            return rel.inverse
        target = self.require_entry(rel.related)
        for candidate in target.relationships.values():
            if (
                candidate.kind is FieldKind.FOREIGN_KEY
                and candidate.related.lower() == entry.name.lower()
            ):
                return candidate.field_name
        raise ConfigurationError.missing_configuration(
            "inverse", f"{entry.name}.{field_name} (no foreign key on {target.name})"
        )

    # --- Collections and storage ---

    def get_collection(
        self,
        entity_name: str,
        options: PersistenceOptions | dict[str, Any] | None = None,
    ) -> Any:
        """Return the cached collection for (entity, options), creating it once.

        Raises:
            ConfigurationError: the entity is unknown or has no collection factory.
        """
        options = PersistenceOptions.coerce(options)
        with self._lock:
            entry = self.require_entry(entity_name)
            key = f"{entry.name}:{options.cache_key()}"
            cached = self._collections.get(key)
            if cached is not None:
                return cached
            factory = self._factories.get(entry.name)
            if factory is None:
                raise ConfigurationError.missing_configuration(
                    "collection factory", f"entity '{entry.name}'"
                )
            collection = factory(options, registry=self)
            self._collections[key] = collection
        logger.debug("collection_created", name=entry.name, table=entry.table_name)
        return collection

    def get_storage(self, options: PersistenceOptions | dict[str, Any] | None) -> Any:
        """Resolve the storage backend described by *options*.

        A ``db`` passed in the options is used as is (a Database is wrapped);
        storages built from ``persistence`` configuration are cached.
        """
        from row_object.storage import create_storage, resolve_storage

        options = PersistenceOptions.coerce(options)
        if options.db is not None:
            return resolve_storage(options.db)
        if not options.persistence:
            raise ConfigurationError.missing_configuration("db", "persistence options")
        key = json.dumps(options.persistence, sort_keys=True, default=str)
        with self._lock:
            storage = self._storages.get(key)
            if storage is None:
                storage = create_storage(options.persistence)
                self._storages[key] = storage
        return storage

    # --- Dependency graph ---

    def get_dependency_graph(self) -> dict[str, list[str]]:
        """Entity name -> registered entities it references by foreign key."""
        graph: dict[str, list[str]] = {}
        for name, entry in self._entries.items():
            deps: list[str] = []
            for rel in entry.relationships.values():
                if rel.kind is not FieldKind.FOREIGN_KEY:
                    continue
                target = self.get_entry(rel.related)
                if target is not None and target.name != name and target.name not in deps:
                    deps.append(target.name)
            graph[name] = deps
        return graph

    def get_initialization_order(self) -> list[str]:
        """Entity names ordered so that referenced entities come first.

        Raises:
            ConfigurationError: the foreign-key graph has a cycle.
        """
        graph = self.get_dependency_graph()
        order: list[str] = []
        done: set[str] = set()
        visiting: list[str] = []

        def visit(name: str) -> None:
            if name in done:
                return
            if name in visiting:
                cycle = [*visiting[visiting.index(name):], name]
                raise ConfigurationError.invalid_configuration(
                    "relationships", " -> ".join(cycle), "an acyclic foreign-key graph"
                )
            visiting.append(name)
            for dep in graph.get(name, []):
                visit(dep)
            visiting.pop()
            done.add(name)
            order.append(name)

        for name in graph:
            visit(name)
        return order

    # --- Teardown ---

    def clear_cache(self) -> None:
        """Drop cached collections and storages, keeping registrations."""
        with self._lock:
            self._collections.clear()
            self._storages.clear()

    def clear(self) -> None:
        """Drop every registration, factory and cached instance."""
        with self._lock:
            self._entries.clear()
            self._factories.clear()
            self._collections.clear()
            self._storages.clear()


def entity(
    cls: type | None = None,
    *,
    registry: ObjectRegistry | None = None,
    **config: Any,
) -> Any:
    """Class decorator registering an entity.

    Usable bare (``@entity``) or with ``ObjectConfig`` options::

        @entity(table_name="catalog_products", hooks={"before_save": "normalize"})
        class Product(PersistentObject):
            ...
    """

    def decorate(target: type) -> type:
        (registry or ObjectRegistry.default()).register(target, ObjectConfig(**config))
        return target

    if cls is not None:
        return decorate(cls)
    return decorate
