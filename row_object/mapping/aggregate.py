"""Join result hydration.

Single-pass reconstruction of root entities and their eager-loaded
references from flat, alias-prefixed rows, using identity maps.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from row_object.mapping.plan import EntityPlan, JoinPlan

T = TypeVar("T")

Factory = Callable[[dict[str, Any]], Any]


def extract_segment(row: Mapping[str, Any], plan: EntityPlan) -> dict[str, Any]:
    """Columns of *plan* from a joined row, with the alias prefix removed."""
    prefix = plan.prefix
    return {column: row.get(prefix + column) for column in plan.columns}


class AggregateMapper(Generic[T]):
    """Reconstructs root entities with their joined references attached.

    Args:
        plan: The JoinPlan the rows were selected with.
        factories: Entity factory per alias; each takes an unprefixed row.
    """

    def __init__(self, plan: JoinPlan, factories: Mapping[str, Factory]) -> None:
        self._plan = plan
        self._factories = factories

    def map_many(self, rows: list[dict[str, Any]]) -> list[T]:
        """Hydrate rows; each root id is built once, in first-seen order.

        A reference whose columns are all NULL (null or dangling foreign
        key) is attached as None.
        """
        plan = self._plan
        root_plan = plan.root_plan
        root_key_col = root_plan.prefix + root_plan.key_column

        roots: dict[Any, Any] = {}
        references: dict[str, dict[Any, Any]] = {
            ref.entity_plan.alias: {} for ref in plan.reference_plans
        }

        for row in rows:
            root_key = row.get(root_key_col)
            if root_key is None or root_key in roots:
                continue
            root = self._factories[root_plan.alias](extract_segment(row, root_plan))
            roots[root_key] = root

            for ref in plan.reference_plans:
                ref_plan = ref.entity_plan
                segment = extract_segment(row, ref_plan)
                related: Any = None
                if any(value is not None for value in segment.values()):
                    identity = references[ref_plan.alias]
                    ref_key = segment.get(ref_plan.key_column)
                    related = identity.get(ref_key)
                    if related is None:
                        related = self._factories[ref_plan.alias](segment)
                        identity[ref_key] = related
                root.cache_related(ref.attribute_name, related)

        return list(roots.values())
