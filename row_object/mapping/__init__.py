"""Mapping layer - eager-load planning and row hydration."""

from __future__ import annotations

from row_object.mapping.aggregate import AggregateMapper
from row_object.mapping.builder import plan_includes
from row_object.mapping.model import ModelMapper
from row_object.mapping.plan import EntityPlan, JoinPlan, ReferencePlan

__all__ = [
    "ModelMapper",
    "AggregateMapper",
    "plan_includes",
    "JoinPlan",
    "EntityPlan",
    "ReferencePlan",
]
