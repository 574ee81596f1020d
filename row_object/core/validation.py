"""Per-field validation.

Every column-backed field is checked for presence, type, range, length,
pattern and an optional custom validator. One ``validate_values`` pass
reports every violated field, not just the first.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from row_object.core.exceptions import ValidationError, ValidationReport
from row_object.core.fields import Field, FieldKind, parse_datetime


def _type_error(name: str, field: Field, value: Any) -> ValidationError | None:
    kind = field.kind
    if kind in (FieldKind.TEXT, FieldKind.FOREIGN_KEY):
        ok = isinstance(value, str)
        expected = "a string"
    elif kind is FieldKind.INTEGER:
        ok = isinstance(value, int) and not isinstance(value, bool)
        expected = "an integer"
    elif kind is FieldKind.DECIMAL:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        expected = "a number"
    elif kind is FieldKind.BOOLEAN:
        ok = isinstance(value, bool)
        expected = "a boolean"
    elif kind is FieldKind.DATETIME:
        expected = "a datetime or ISO-8601 string"
        if isinstance(value, (datetime, date)):
            ok = True
        else:
            try:
                parse_datetime(value)
                ok = True
            except (TypeError, ValueError):
                ok = False
    else:
        return None
    return None if ok else ValidationError.invalid_value(name, value, expected)


async def validate_value(
    name: str, field: Field, value: Any, object_type: str
) -> ValidationError | None:
    """Return the first violation for one field value, or None."""
    if value is None or value == "":
        if field.required:
            return ValidationError.required_field(name, object_type)
        return None

    error = _type_error(name, field, value)
    if error is not None:
        return error

    if field.kind in (FieldKind.INTEGER, FieldKind.DECIMAL):
        if (field.min is not None and value < field.min) or (
            field.max is not None and value > field.max
        ):
            return ValidationError.range_error(name, value, field.min, field.max)

    if field.kind is FieldKind.TEXT:
        if field.min_length is not None and len(value) < field.min_length:
            return ValidationError.invalid_value(
                name, value, f"at least {field.min_length} characters"
            )
        if field.max_length is not None and len(value) > field.max_length:
            return ValidationError.invalid_value(
                name, value, f"at most {field.max_length} characters"
            )
        if field.pattern is not None and not re.search(field.pattern, value):
            return ValidationError.invalid_value(
                name, value, f"a value matching /{field.pattern}/"
            )

    if field.validate is not None:
        result = field.validate(value)
        if inspect.isawaitable(result):
            result = await result
        if result is False:
            return ValidationError(
                field.message or f"Custom validation failed for field '{name}'",
                "VALIDATION_CUSTOM",
                {"field": name, "value": value},
            )
    return None


async def validate_values(
    values: Mapping[str, Any], fields: Mapping[str, Field], object_type: str
) -> ValidationReport:
    """Validate every column-backed field and collect all violations."""
    report = ValidationReport(object_type)
    for name, field in fields.items():
        if not field.has_column:
            continue
        error = await validate_value(name, field, values.get(name), object_type)
        if error is not None:
            report.add(error)
    return report
