"""Query predicates: operator parsing, ordering and REST filters.

A ``where`` mapping keys each value by a field name with an optional
operator suffix separated by one space::

    {"price >": 100, "status in": ["active", "pending"], "name like": "%pro%"}

Predicates are AND-combined; there is no OR.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from row_object.core.exceptions import ValidationError
from row_object.core.naming import is_identifier


class Operator(Enum):
    EQ = "="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    NEQ = "!="
    IN = "in"
    LIKE = "like"


_OPERATORS: dict[str, Operator] = {op.value: op for op in Operator}
_OPERATOR_RANK: dict[Operator, int] = {op: rank for rank, op in enumerate(Operator)}

# REST query-string operator names: ``price[gt]=100``
REST_OPERATORS: dict[str, str] = {
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "ne": "!=",
    "in": "in",
    "like": "like",
}

_REST_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>\w+)\]$")


@dataclass(frozen=True)
class Predicate:
    field: str
    operator: Operator
    value: Any


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (Sequence, set, frozenset)) and not isinstance(
        value, (str, bytes, bytearray)
    )


def parse_key(key: str) -> tuple[str, Operator]:
    """Split ``"field op"`` on the first space into ``(field, operator)``."""
    field_name, sep, token = key.strip().partition(" ")
    if sep:
        operator = _OPERATORS.get(token.strip().lower())
        if operator is not None:
            field_name = field_name.strip()
        else:
            field_name, operator = key.strip(), Operator.EQ
    else:
        operator = Operator.EQ
    if not is_identifier(field_name):
        raise ValidationError.invalid_value(field_name, key, "a field name")
    return field_name, operator


def parse_where(where: Mapping[str, Any] | None) -> list[Predicate]:
    """Parse a where mapping into a deterministically ordered predicate list.

    Raises:
        ValidationError: for an invalid field name, or an ``in`` operator
            given a scalar instead of a sequence.
    """
    predicates: list[Predicate] = []
    for key, value in (where or {}).items():
        field_name, operator = parse_key(key)
        if operator is Operator.IN:
            if not _is_sequence(value):
                raise ValidationError.invalid_value(field_name, value, "a list for 'in'")
            value = list(value)
        predicates.append(Predicate(field_name, operator, value))
    predicates.sort(key=lambda p: (p.field, _OPERATOR_RANK[p.operator]))
    return predicates


def parse_order_by(order_by: str | Sequence[str] | None) -> list[tuple[str, str]]:
    """Parse ``"field [ASC|DESC]"`` strings into ``(field, direction)`` pairs.

    Order is preserved: the first entry is the primary sort key.
    """
    if not order_by:
        return []
    items = [order_by] if isinstance(order_by, str) else list(order_by)
    result: list[tuple[str, str]] = []
    for item in items:
        parts = item.split()
        if not parts or len(parts) > 2:
            raise ValidationError.invalid_value("order_by", item, "'field [ASC|DESC]'")
        field_name = parts[0]
        direction = parts[1].upper() if len(parts) == 2 else "ASC"
        if not is_identifier(field_name):
            raise ValidationError.invalid_value("order_by", item, "a field name")
        if direction not in ("ASC", "DESC"):
            raise ValidationError.invalid_value("order_by", item, "ASC or DESC")
        result.append((field_name, direction))
    return result


def where_from_query_params(params: Mapping[str, Any]) -> dict[str, Any]:
    """Translate REST filters (``price[gt]=100``) into a where mapping.

    Keys without brackets are equality filters. ``in`` values given as a
    comma-separated string are split into a list.
    """
    where: dict[str, Any] = {}
    for key, value in params.items():
        match = _REST_KEY.match(key)
        if match is None:
            where[key] = value
            continue
        op_name = match.group("op").lower()
        if op_name not in REST_OPERATORS:
            raise ValidationError.invalid_value(key, value, f"one of {sorted(REST_OPERATORS)}")
        operator = REST_OPERATORS[op_name]
        if operator == "in" and isinstance(value, str):
            value = [part.strip() for part in value.split(",") if part.strip()]
        where[f"{match.group('field')} {operator}"] = value
    return where
