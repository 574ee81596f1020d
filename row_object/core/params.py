"""SQL parameter handling.

Generated SQL always binds values as `:name` parameters; they are converted
to the driver-specific style just before execution. String literals and
PostgreSQL `::typecast` syntax are left untouched.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache
from typing import Any

# Matches :name but not ::typecast and not inside words
_PARAM_PATTERN = re.compile(r"(?<![:\w]):([a-zA-Z_]\w*)")

# Matches single-quoted string literals (with escaped quotes handled)
_STRING_LITERAL_PATTERN = re.compile(r"'(?:[^'\\]|\\.)*'")


def normalize_params(sql: str, paramstyle: str) -> str:
    """Convert :name parameters to the target param style.

    Args:
        sql: SQL string with :name parameters.
        paramstyle: Target style - 'named' (no conversion) or 'pyformat' (%(name)s).

    Returns:
        SQL with parameters converted to the target style.
    """
    if paramstyle == "named":
        return sql
    return _convert_to_pyformat(sql)


@lru_cache(maxsize=512)
def _convert_to_pyformat(sql: str) -> str:
    """Convert :name params to %(name)s, preserving string literals."""
    parts: list[str] = []
    last_end = 0

    for match in _STRING_LITERAL_PATTERN.finditer(sql):
        start, end = match.span()
        if start > last_end:
            parts.append(_PARAM_PATTERN.sub(r"%(\1)s", sql[last_end:start]))
        parts.append(match.group())
        last_end = end

    if last_end < len(sql):
        parts.append(_PARAM_PATTERN.sub(r"%(\1)s", sql[last_end:]))

    return "".join(parts)


def expand_list_param(
    name: str, values: Iterable[Any], params: dict[str, Any]
) -> str:
    """Bind each element of *values* as ``:name_0, :name_1, ...``.

    The bound values are written into *params*; the placeholder list is
    returned for use inside ``IN (...)``.
    """
    placeholders: list[str] = []
    for index, value in enumerate(values):
        key = f"{name}_{index}"
        params[key] = value
        placeholders.append(f":{key}")
    return ", ".join(placeholders)
