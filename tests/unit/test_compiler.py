"""Unit tests for the SQL compiler."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from row_object.core.exceptions import ConfigurationError, RuntimeError
from row_object.core.query import Operator, Predicate
from row_object.core.registry import ObjectRegistry
from row_object.core.schema import build_table_schema
from row_object.mapping.builder import plan_includes
from row_object.storage.compiler import (
    build_add_column,
    build_count,
    build_create_table,
    build_delete,
    build_join_select,
    build_select,
    build_table_columns,
    build_upsert,
    build_where,
    quote,
)
from row_object.storage.protocol import SelectQuery


class TestQuote:
    def test_quotes_keywords(self) -> None:
        assert quote("order") == '"order"'

    def test_rejects_injection(self) -> None:
        with pytest.raises(ConfigurationError):
            quote('name"; DROP TABLE products; --')


class TestBuildWhere:
    def test_operators(self) -> None:
        params: dict[str, object] = {}
        sql = build_where(
            [
                Predicate("price", Operator.GT, 10),
                Predicate("name", Operator.LIKE, "%lamp%"),
                Predicate("status", Operator.NEQ, "archived"),
            ],
            params,
        )
        assert sql == ' WHERE "price" > :w0 AND "name" LIKE :w1 AND "status" != :w2'
        assert params == {"w0": 10, "w1": "%lamp%", "w2": "archived"}

    def test_in_expands(self) -> None:
        params: dict[str, object] = {}
        sql = build_where([Predicate("id", Operator.IN, ["a", "b"])], params)
        assert sql == ' WHERE "id" IN (:w0_0, :w0_1)'
        assert params == {"w0_0": "a", "w0_1": "b"}

    def test_empty_in_matches_nothing(self) -> None:
        assert build_where([Predicate("id", Operator.IN, [])], {}) == " WHERE 1 = 0"

    def test_null_checks(self) -> None:
        params: dict[str, object] = {}
        sql = build_where(
            [
                Predicate("category_id", Operator.EQ, None),
                Predicate("note", Operator.NEQ, None),
            ],
            params,
        )
        assert sql == ' WHERE "category_id" IS NULL AND "note" IS NOT NULL'
        assert params == {}

    def test_alias(self) -> None:
        sql = build_where([Predicate("total", Operator.GTE, 5)], {}, alias="t0")
        assert sql == ' WHERE t0."total" >= :w0'

    def test_no_predicates(self) -> None:
        assert build_where([], {}) == ""


class TestBuildSelect:
    def test_full_query(self) -> None:
        sql, params = build_select(
            SelectQuery(
                table="products",
                where=(Predicate("stock", Operator.GT, 0),),
                order_by=(("price", "DESC"), ("name", "ASC")),
                limit=10,
                offset=20,
            ),
            "sqlite",
        )
        assert sql == (
            'SELECT * FROM "products" WHERE "stock" > :w0'
            ' ORDER BY "price" DESC, "name" ASC LIMIT :limit OFFSET :offset'
        )
        assert params == {"w0": 0, "limit": 10, "offset": 20}

    def test_offset_without_limit(self) -> None:
        sqlite_sql, _ = build_select(SelectQuery(table="products", offset=5), "sqlite")
        assert sqlite_sql.endswith(" LIMIT -1 OFFSET :offset")
        pg_sql, _ = build_select(SelectQuery(table="products", offset=5), "postgresql")
        assert pg_sql == 'SELECT * FROM "products" OFFSET :offset'

    def test_projection(self) -> None:
        sql, _ = build_select(
            SelectQuery(table="products_tags", columns=("target_id",)), "sqlite"
        )
        assert sql == 'SELECT "target_id" FROM "products_tags"'

    def test_count(self) -> None:
        sql, params = build_count("orders", [Predicate("total", Operator.LT, 3)])
        assert sql == 'SELECT COUNT(*) AS count FROM "orders" WHERE "total" < :w0'
        assert params == {"w0": 3}


class TestBuildJoinSelect:
    def test_left_join_per_reference(self, shop: SimpleNamespace) -> None:
        plan = plan_includes(ObjectRegistry.default(), "Order", ["customer_id"])
        sql, params = build_join_select(
            plan,
            SelectQuery(
                table="orders",
                where=(Predicate("total", Operator.GT, 1),),
                order_by=(("total", "DESC"),),
                limit=5,
            ),
            "sqlite",
        )
        assert 't0."total" AS t0_total' in sql
        assert 't1."email" AS t1_email' in sql
        assert 'FROM "orders" t0 LEFT JOIN "customers" t1 ON t0."customer_id" = t1."id"' in sql
        assert sql.endswith(' WHERE t0."total" > :w0 ORDER BY t0."total" DESC LIMIT :limit')
        assert params == {"w0": 1, "limit": 5}


class TestBuildUpsert:
    def test_guarded_update(self) -> None:
        sql, params = build_upsert(
            "products",
            {"id": "p1", "slug": "lamp", "context": "", "price": 9.5},
            conflict=("slug", "context"),
            update=["price"],
            guard="id",
        )
        assert sql == (
            'INSERT INTO "products" ("id", "slug", "context", "price")'
            " VALUES (:id, :slug, :context, :price)"
            ' ON CONFLICT ("slug", "context")'
            ' DO UPDATE SET "price" = excluded."price"'
            ' WHERE "products"."id" = excluded."id"'
        )
        assert params == {"id": "p1", "slug": "lamp", "context": "", "price": 9.5}

    def test_no_update_does_nothing(self) -> None:
        sql, _ = build_upsert(
            "products_tags",
            {"source_id": "p1", "target_id": "t1"},
            conflict=("source_id", "target_id"),
            update=(),
        )
        assert sql.endswith(' ON CONFLICT ("source_id", "target_id") DO NOTHING')


class TestBuildDelete:
    def test_delete(self) -> None:
        sql, params = build_delete("orders", [Predicate("id", Operator.EQ, "o1")])
        assert sql == 'DELETE FROM "orders" WHERE "id" = :w0'
        assert params == {"w0": "o1"}

    def test_delete_requires_filter(self) -> None:
        with pytest.raises(RuntimeError):
            build_delete("orders", [])


class TestSchemaStatements:
    def test_create_table(self, shop: SimpleNamespace) -> None:
        schema = build_table_schema(ObjectRegistry.default().get_entry("Product"))
        statements = build_create_table(schema, "sqlite")
        create = statements[0]
        assert create.startswith('CREATE TABLE IF NOT EXISTS "products" ("id" TEXT PRIMARY KEY')
        assert '"slug" TEXT NOT NULL' in create
        assert '"context" TEXT NOT NULL DEFAULT \'\'' in create
        assert '"sku" TEXT NOT NULL UNIQUE' in create
        assert '"price" REAL DEFAULT 0.0' in create
        assert '"in_stock" INTEGER DEFAULT 1' in create
        assert create.endswith('UNIQUE ("slug", "context"))')
        assert (
            'CREATE INDEX IF NOT EXISTS "products_category_id_idx"'
            ' ON "products" ("category_id")'
        ) in statements
        assert any(
            s.startswith('CREATE TABLE IF NOT EXISTS "products_tags"') for s in statements
        )

    def test_postgresql_timestamps(self, shop: SimpleNamespace) -> None:
        schema = build_table_schema(ObjectRegistry.default().get_entry("Tag"))
        create = build_create_table(schema, "postgresql")[0]
        assert '"created_at" TIMESTAMP' in create

    def test_table_columns_query(self) -> None:
        assert build_table_columns("products", "sqlite") == (
            "SELECT name FROM pragma_table_info(:table)",
            {"table": "products"},
        )
        sql, _ = build_table_columns("products", "postgresql")
        assert "information_schema.columns" in sql

    def test_add_column_keeps_only_default(self, shop: SimpleNamespace) -> None:
        schema = build_table_schema(ObjectRegistry.default().get_entry("Product"))
        assert build_add_column("products", "sku", schema, "sqlite") == (
            'ALTER TABLE "products" ADD COLUMN "sku" TEXT'
        )
        assert build_add_column("products", "stock", schema, "sqlite") == (
            'ALTER TABLE "products" ADD COLUMN "stock" INTEGER DEFAULT 0'
        )
