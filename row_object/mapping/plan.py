"""Join plan data classes.

Frozen dataclasses describing one eager-loading query: the base table under
alias ``t0`` and one LEFT JOINed reference per included foreign key.
Built by ``plan_includes`` and consumed by the SQL compiler and
AggregateMapper.
"""

from __future__ import annotations

from dataclasses import dataclass

ROOT_ALIAS = "t0"


@dataclass(frozen=True)
class EntityPlan:
    """Columns of one entity selected under a table alias."""

    entity_name: str
    table: str
    alias: str
    columns: tuple[str, ...]
    key_column: str = "id"

    @property
    def prefix(self) -> str:
        """Result-column prefix, e.g. ``t1_`` for ``t1.name AS t1_name``."""
        return f"{self.alias}_"


@dataclass(frozen=True)
class ReferencePlan:
    """A foreign key on the root joined to its related entity."""

    attribute_name: str
    fk_column: str
    entity_plan: EntityPlan


@dataclass(frozen=True)
class JoinPlan:
    """Compiled eager-loading plan."""

    root_plan: EntityPlan
    reference_plans: tuple[ReferencePlan, ...] = ()
    dropped: tuple[str, ...] = ()

    @property
    def entity_plans(self) -> list[EntityPlan]:
        return [self.root_plan, *(ref.entity_plan for ref in self.reference_plans)]
