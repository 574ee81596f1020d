"""SQL compiler.

Builds parameterized SQL text for the storage operations. Identifiers are
validated and double-quoted where they name tables; every value is bound as
a `:name` parameter, never interpolated.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from row_object.core.enums import DatabaseBackend
from row_object.core.exceptions import ConfigurationError, RuntimeError
from row_object.core.naming import is_identifier
from row_object.core.params import expand_list_param
from row_object.core.query import Operator, Predicate
from row_object.core.schema import TableSchema
from row_object.mapping.plan import JoinPlan
from row_object.storage.protocol import SelectQuery

_SQL_OPERATORS: dict[Operator, str] = {
    Operator.EQ: "=",
    Operator.GT: ">",
    Operator.LT: "<",
    Operator.GTE: ">=",
    Operator.LTE: "<=",
    Operator.NEQ: "!=",
    Operator.LIKE: "LIKE",
}


def identifier(name: str) -> str:
    if not is_identifier(name):
        raise ConfigurationError.invalid_configuration("identifier", name, "a SQL identifier")
    return name


def quote(name: str) -> str:
    return f'"{identifier(name)}"'


quote_table = quote


def _qualified(column: str, alias: str | None) -> str:
    column = quote(column)
    return f"{alias}.{column}" if alias else column


def build_where(
    predicates: Sequence[Predicate],
    params: dict[str, Any],
    *,
    alias: str | None = None,
) -> str:
    """Render AND-combined predicates as `` WHERE ...`` (empty when none)."""
    clauses: list[str] = []
    for index, predicate in enumerate(predicates):
        column = _qualified(predicate.field, alias)
        name = f"w{index}"
        if predicate.operator is Operator.IN:
            if not predicate.value:
                clauses.append("1 = 0")
                continue
            placeholders = expand_list_param(name, predicate.value, params)
            clauses.append(f"{column} IN ({placeholders})")
        elif predicate.value is None and predicate.operator is Operator.EQ:
            clauses.append(f"{column} IS NULL")
        elif predicate.value is None and predicate.operator is Operator.NEQ:
            clauses.append(f"{column} IS NOT NULL")
        else:
            params[name] = predicate.value
            clauses.append(f"{column} {_SQL_OPERATORS[predicate.operator]} :{name}")
    if not clauses:
        return ""
    return " WHERE " + " AND ".join(clauses)


def build_order_by(order_by: Sequence[tuple[str, str]], *, alias: str | None = None) -> str:
    if not order_by:
        return ""
    keys = ", ".join(f"{_qualified(column, alias)} {direction}" for column, direction in order_by)
    return f" ORDER BY {keys}"


def build_pagination(
    limit: int | None, offset: int | None, params: dict[str, Any], dialect: str
) -> str:
    sql = ""
    if limit is not None:
        params["limit"] = int(limit)
        sql += " LIMIT :limit"
    elif offset and dialect == DatabaseBackend.SQLITE.value:
        # SQLite only accepts OFFSET after a LIMIT
        sql += " LIMIT -1"
    if offset:
        params["offset"] = int(offset)
        sql += " OFFSET :offset"
    return sql


def build_select(query: SelectQuery, dialect: str) -> tuple[str, dict[str, Any]]:
    params: dict[str, Any] = {}
    columns = ", ".join(quote(c) for c in query.columns) if query.columns else "*"
    sql = f"SELECT {columns} FROM {quote_table(query.table)}"
    sql += build_where(query.where, params)
    sql += build_order_by(query.order_by)
    sql += build_pagination(query.limit, query.offset, params, dialect)
    return sql, params


def build_join_select(
    plan: JoinPlan, query: SelectQuery, dialect: str
) -> tuple[str, dict[str, Any]]:
    """One SELECT with a LEFT JOIN per reference; columns aliased ``tN_col``."""
    params: dict[str, Any] = {}
    selected = ", ".join(
        f"{ep.alias}.{quote(column)} AS {ep.prefix}{column}"
        for ep in plan.entity_plans
        for column in ep.columns
    )
    root = plan.root_plan
    sql = f"SELECT {selected} FROM {quote_table(root.table)} {root.alias}"
    for ref in plan.reference_plans:
        target = ref.entity_plan
        sql += (
            f" LEFT JOIN {quote_table(target.table)} {target.alias}"
            f" ON {root.alias}.{quote(ref.fk_column)} = {target.alias}.{quote(target.key_column)}"
        )
    sql += build_where(query.where, params, alias=root.alias)
    sql += build_order_by(query.order_by, alias=root.alias)
    sql += build_pagination(query.limit, query.offset, params, dialect)
    return sql, params


def build_count(table: str, where: Sequence[Predicate]) -> tuple[str, dict[str, Any]]:
    params: dict[str, Any] = {}
    sql = f"SELECT COUNT(*) AS count FROM {quote_table(table)}"
    sql += build_where(where, params)
    return sql, params


def build_upsert(
    table: str,
    row: dict[str, Any],
    *,
    conflict: Sequence[str],
    update: Sequence[str],
    guard: str | None = None,
) -> tuple[str, dict[str, Any]]:
    columns = [quote(c) for c in row]
    quoted = quote_table(table)
    sql = (
        f"INSERT INTO {quoted} ({', '.join(columns)})"
        f" VALUES ({', '.join(':' + c for c in row)})"
        f" ON CONFLICT ({', '.join(quote(c) for c in conflict)})"
    )
    if not update:
        return sql + " DO NOTHING", dict(row)
    assignments = ", ".join(f"{quote(c)} = excluded.{quote(c)}" for c in update)
    sql += f" DO UPDATE SET {assignments}"
    if guard is not None:
        sql += f" WHERE {quoted}.{quote(guard)} = excluded.{quote(guard)}"
    return sql, dict(row)


def build_delete(table: str, where: Sequence[Predicate]) -> tuple[str, dict[str, Any]]:
    if not where:
        raise RuntimeError.operation_failed("delete", {"table": table, "reason": "no filter"})
    params: dict[str, Any] = {}
    sql = f"DELETE FROM {quote_table(table)}" + build_where(where, params)
    return sql, params


def build_create_table(schema: TableSchema, dialect: str) -> list[str]:
    """DDL statements for *schema*, its indexes and its join tables."""
    definitions = [
        column.field.to_column_definition(quote(column.name), dialect)
        for column in schema.columns
    ]
    definitions.extend(
        f"UNIQUE ({', '.join(quote(c) for c in columns)})"
        for columns in schema.unique_together
    )
    statements = [
        f"CREATE TABLE IF NOT EXISTS {quote_table(schema.name)} ({', '.join(definitions)})"
    ]
    statements.extend(
        f"CREATE INDEX IF NOT EXISTS {quote_table(index.name)}"
        f" ON {quote_table(schema.name)} ({', '.join(quote(c) for c in index.columns)})"
        for index in schema.indexes
    )
    for join_table in schema.join_tables:
        statements.extend(build_create_table(join_table, dialect))
    return statements


def build_table_columns(table: str, dialect: str) -> tuple[str, dict[str, Any]]:
    """Query listing the existing column names of *table* as ``name``."""
    identifier(table)
    if dialect == DatabaseBackend.POSTGRESQL.value:
        return (
            "SELECT column_name AS name FROM information_schema.columns"
            " WHERE table_name = :table",
            {"table": table},
        )
    return "SELECT name FROM pragma_table_info(:table)", {"table": table}


def build_add_column(table: str, column: str, schema: TableSchema, dialect: str) -> str:
    """``ALTER TABLE ... ADD COLUMN`` keeping only the DEFAULT constraint."""
    fld = next(c.field for c in schema.columns if c.name == column)
    parts = [quote(column), fld.to_sql_type(dialect)]
    parts.extend(c for c in fld.to_sql_constraints() if c.startswith("DEFAULT"))
    return f"ALTER TABLE {quote_table(table)} ADD COLUMN {' '.join(parts)}"
