"""Unit tests for Database execution and AsyncTransactionManager."""

from __future__ import annotations

import sqlite3

import pytest

from row_object.core.database import Database
from row_object.core.exceptions import DatabaseError, TransactionStateError

INSERT = 'INSERT INTO "notes" ("id", "body") VALUES (:id, :body)'
COUNT = 'SELECT COUNT(*) AS cnt FROM "notes"'


@pytest.fixture
async def notes_db(database: Database) -> Database:
    await database.execute('CREATE TABLE "notes" ("id" TEXT PRIMARY KEY, "body" TEXT NOT NULL)')
    return database


class TestDatabase:
    async def test_execute_and_fetch(self, notes_db: Database) -> None:
        assert await notes_db.execute(INSERT, {"id": "n1", "body": "hello"}) == 1
        assert await notes_db.fetch_scalar(COUNT) == 1
        row = await notes_db.fetch_one('SELECT * FROM "notes" WHERE "id" = :id', {"id": "n1"})
        assert row == {"id": "n1", "body": "hello"}

    async def test_fetch_one_missing(self, notes_db: Database) -> None:
        assert await notes_db.fetch_one('SELECT * FROM "notes" WHERE "id" = :id', {"id": "x"}) is None

    async def test_integrity_error_wrapped(self, notes_db: Database) -> None:
        await notes_db.execute(INSERT, {"id": "n1", "body": "hello"})
        with pytest.raises(DatabaseError) as exc_info:
            await notes_db.execute(INSERT, {"id": "n1", "body": "again"})
        assert exc_info.value.code == "DB_CONSTRAINT_VIOLATION"
        assert "UNIQUE" in exc_info.value.message

    async def test_query_error_wrapped(self, notes_db: Database) -> None:
        with pytest.raises(DatabaseError) as exc_info:
            await notes_db.fetch_all('SELECT * FROM "missing"')
        assert exc_info.value.code == "DB_QUERY_FAILED"
        assert not exc_info.value.transient

    async def test_failed_rollback_keeps_original_error(
        self, notes_db: Database, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def broken_rollback() -> None:
            raise sqlite3.ProgrammingError("Cannot operate on a closed database.")

        pool = await notes_db._connection_manager.initialize_pool()
        for conn in pool:
            monkeypatch.setattr(conn, "rollback", broken_rollback)
        with pytest.raises(DatabaseError) as exc_info:
            await notes_db.fetch_all('SELECT * FROM "missing"')
        assert exc_info.value.code == "DB_QUERY_FAILED"
        assert "no such table" in str(exc_info.value.cause)

    async def test_dialect(self, database: Database) -> None:
        assert database.dialect == "sqlite"


class TestAsyncTransactionManager:
    async def test_commit_on_success(self, notes_db: Database) -> None:
        async with notes_db.transaction() as tx:
            assert await tx.execute(INSERT, {"id": "n1", "body": "hello"}) == 1
            rows = await tx.fetch_all('SELECT "id" FROM "notes"')
            assert rows == [{"id": "n1"}]
        assert await notes_db.fetch_scalar(COUNT) == 1

    async def test_rollback_on_exception(self, notes_db: Database) -> None:
        with pytest.raises(ValueError, match="boom"):
            async with notes_db.transaction() as tx:
                await tx.execute(INSERT, {"id": "n1", "body": "hello"})
                raise ValueError("boom")
        assert await notes_db.fetch_scalar(COUNT) == 0

    async def test_explicit_rollback(self, notes_db: Database) -> None:
        async with notes_db.transaction() as tx:
            await tx.execute(INSERT, {"id": "n1", "body": "hello"})
            await tx.rollback()
        assert await notes_db.fetch_scalar(COUNT) == 0

    async def test_execute_after_commit_raises(self, notes_db: Database) -> None:
        async with notes_db.transaction() as tx:
            await tx.commit()
            with pytest.raises(TransactionStateError):
                await tx.execute(INSERT, {"id": "n1", "body": "hello"})

    async def test_commit_after_rollback_raises(self, notes_db: Database) -> None:
        async with notes_db.transaction() as tx:
            await tx.rollback()
            with pytest.raises(TransactionStateError):
                await tx.commit()

    async def test_run_in_transaction(self, notes_db: Database) -> None:
        async def insert_two(tx) -> int:  # type: ignore[no-untyped-def]
            await tx.execute(INSERT, {"id": "a", "body": "1"})
            await tx.execute(INSERT, {"id": "b", "body": "2"})
            return 2

        assert await notes_db.run_in_transaction(insert_two) == 2
        assert await notes_db.fetch_scalar(COUNT) == 2

    async def test_driver_error_inside_transaction(self, notes_db: Database) -> None:
        with pytest.raises(DatabaseError):
            async with notes_db.transaction() as tx:
                await tx.execute(INSERT, {"id": "n1", "body": None})
        assert await notes_db.fetch_scalar(COUNT) == 0
