"""Eager-load planning.

Turns an ``include`` list of foreign-key field names into a JoinPlan.
Names that do not resolve to a ForeignKey whose target is registered
(OneToMany, ManyToMany, plain fields, typos) are dropped, not errored:
those relations stay unloaded and can be loaded lazily.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from row_object.core.fields import FieldKind
from row_object.core.registry import ObjectRegistry, RegistryEntry
from row_object.mapping.plan import ROOT_ALIAS, EntityPlan, JoinPlan, ReferencePlan

logger = structlog.get_logger()


def entity_plan(entry: RegistryEntry, alias: str) -> EntityPlan:
    return EntityPlan(
        entity_name=entry.name,
        table=entry.table_name,
        alias=alias,
        columns=tuple(entry.field_map.values()),
        key_column=entry.column_for("id"),
    )


def plan_includes(
    registry: ObjectRegistry, entity_name: str, include: Sequence[str]
) -> JoinPlan:
    """Build the JoinPlan for *entity_name* eager-loading *include*.

    Kept relations are aliased ``t1..tN`` in include order.
    """
    entry = registry.require_entry(entity_name)
    references: list[ReferencePlan] = []
    dropped: list[str] = []
    seen: set[str] = set()

    for name in include:
        if name in seen:
            continue
        seen.add(name)
        rel = entry.relationships.get(name)
        target = registry.get_entry(rel.related) if rel is not None else None
        if rel is None or rel.kind is not FieldKind.FOREIGN_KEY or target is None:
            dropped.append(name)
            continue
        alias = f"t{len(references) + 1}"
        references.append(
            ReferencePlan(
                attribute_name=name,
                fk_column=entry.column_for(name),
                entity_plan=entity_plan(target, alias),
            )
        )

    if dropped:
        logger.debug("include_dropped", entity=entry.name, names=dropped)
    return JoinPlan(
        root_plan=entity_plan(entry, ROOT_ALIAS),
        reference_plans=tuple(references),
        dropped=tuple(dropped),
    )
