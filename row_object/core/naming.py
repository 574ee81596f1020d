"""Naming rules: column names, table names, slugs and temporal field names."""

from __future__ import annotations

import re

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_SLUG_SEPARATOR = re.compile(r"[^a-z0-9]+")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

TEMPORAL_SUFFIXES = ("_at", "_date")


def to_snake_case(name: str) -> str:
    """``OrderItem`` -> ``order_item``; ``customerId`` -> ``customer_id``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def pluralize(word: str) -> str:
    """Basic English plural: consonant+y -> ies, s/sh/ch -> +es, else +s.

    Deliberately simple: ``person`` becomes ``persons``.
    """
    if len(word) > 1 and word.endswith("y") and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "sh", "ch")):
        return word + "es"
    return word + "s"


def table_name_for(class_name: str) -> str:
    """Table name for an entity class: snake_case, then pluralized."""
    return pluralize(to_snake_case(class_name))


def slugify(text: str) -> str:
    """Lowercase, collapse non-alphanumeric runs into ``-``, trim hyphens."""
    return _SLUG_SEPARATOR.sub("-", text.lower()).strip("-")


def is_temporal_name(name: str) -> bool:
    """True for ``*_at``, ``*_date`` and ``date``; such fields are DATETIME."""
    return name == "date" or name.endswith(TEMPORAL_SUFFIXES)


def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER.match(name))


def looks_like_uuid(value: str) -> bool:
    return bool(_UUID.match(value))
