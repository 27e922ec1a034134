"""Tests for dbwrap/postgres/client.py."""

from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from dbwrap.exceptions import DatabaseError, DbwrapError
from dbwrap.postgres.client import PostgresClient, quote_identifier, shift_placeholders


# ── Helpers ───────────────────────────────────────────────────────────────────

def _async_cm(value=None) -> MagicMock:
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=value)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


def _make_conn(**methods) -> MagicMock:
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="SELECT 0")
    conn.executemany = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.transaction.return_value = _async_cm()
    for name, value in methods.items():
        setattr(conn, name, value)
    return conn


def _make_client(conn, settings) -> PostgresClient:
    pool = MagicMock()
    pool.acquire.return_value = _async_cm(conn)
    pool.close = AsyncMock()
    return PostgresClient.from_pool(pool, settings=settings)


# ── Identifiers ───────────────────────────────────────────────────────────────

class TestIdentifiers:

    def test_quote_plain(self):
        assert quote_identifier("users") == '"users"'

    def test_quote_dotted(self):
        assert quote_identifier("public.users") == '"public"."users"'

    def test_quote_escapes_quotes(self):
        assert quote_identifier('we"ird') == '"we""ird"'

    def test_shift_placeholders(self):
        assert shift_placeholders("id = $1 AND org = $2", 3) == "id = $4 AND org = $5"
        assert shift_placeholders("id = $1", 0) == "id = $1"


# ── Lifecycle ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLifecycle:

    async def test_pool_before_connect_raises(self, settings):
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = PostgresClient(settings=settings).pool

    async def test_health_check(self, settings):
        conn = _make_conn(fetchval=AsyncMock(return_value=1))
        assert await _make_client(conn, settings).health_check() is True

    async def test_health_check_false_on_error(self, settings):
        conn = _make_conn(fetchval=AsyncMock(side_effect=OSError("refused")))
        assert await _make_client(conn, settings).health_check() is False

    async def test_close_closes_pool_once(self, settings):
        client = _make_client(_make_conn(), settings)
        pool = client.pool
        await client.close()
        await client.close()
        pool.close.assert_awaited_once()

    async def test_failed_verification_closes_pool(self, settings):
        conn = _make_conn(fetchval=AsyncMock(side_effect=OSError("refused")))
        pool = _make_client(conn, settings).pool
        client = PostgresClient(settings=settings)

        with patch("dbwrap.postgres.client.asyncpg.create_pool", AsyncMock(return_value=pool)):
            with pytest.raises(OSError):
                await client.connect()

        pool.close.assert_awaited_once()
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = client.pool


# ── Queries ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestQueries:

    async def test_run_returns_status(self, settings):
        conn = _make_conn(execute=AsyncMock(return_value="DELETE 2"))
        client = _make_client(conn, settings)
        assert await client.run("DELETE FROM t WHERE a = $1", 5) == "DELETE 2"
        conn.execute.assert_awaited_once_with("DELETE FROM t WHERE a = $1", 5)

    async def test_all_returns_dicts(self, settings):
        conn = _make_conn(fetch=AsyncMock(return_value=[{"id": 1}, {"id": 2}]))
        rows = await _make_client(conn, settings).all("SELECT id FROM t")
        assert rows == [{"id": 1}, {"id": 2}]
        assert all(type(row) is dict for row in rows)

    async def test_get_none_when_no_row(self, settings):
        conn = _make_conn()
        assert await _make_client(conn, settings).get("SELECT 1 WHERE false") is None

    async def test_scalar(self, settings):
        conn = _make_conn(fetchval=AsyncMock(return_value=7))
        assert await _make_client(conn, settings).scalar("SELECT count(*) FROM t") == 7

    async def test_database_error_carries_query(self, settings):
        error = asyncpg.exceptions.UndefinedTableError('relation "nope" does not exist')
        conn = _make_conn(fetch=AsyncMock(side_effect=error))
        client = _make_client(conn, settings)

        with pytest.raises(DatabaseError) as exc_info:
            await client.all("SELECT * FROM nope WHERE id = $1", 3)

        err = exc_info.value
        assert isinstance(err, DbwrapError)
        assert err.query == "SELECT * FROM nope WHERE id = $1"
        assert err.params == [3]
        assert err.details["sqlstate"] == "42P01"
        assert err.__cause__ is error
        assert "SELECT * FROM nope" in str(err)

    async def test_other_errors_propagate_unwrapped(self, settings):
        conn = _make_conn(fetch=AsyncMock(side_effect=TimeoutError()))
        with pytest.raises(TimeoutError):
            await _make_client(conn, settings).all("SELECT 1")


# ── Transactions ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestTransaction:

    async def test_runs_each_statement(self, settings):
        conn = _make_conn()
        await _make_client(conn, settings).transaction(
            ["UPDATE a SET x = 1", ("INSERT INTO b (y) VALUES ($1)", [2])]
        )
        assert [c.args for c in conn.execute.await_args_list] == [
            ("UPDATE a SET x = 1",),
            ("INSERT INTO b (y) VALUES ($1)", 2),
        ]
        conn.transaction.assert_called_once()

    async def test_failure_aborts_transaction(self, settings):
        error = asyncpg.exceptions.UniqueViolationError("duplicate key")
        conn = _make_conn(execute=AsyncMock(side_effect=["UPDATE 1", error, "UPDATE 1"]))
        client = _make_client(conn, settings)

        with pytest.raises(DatabaseError) as exc_info:
            await client.transaction(["UPDATE a SET x = 1", "INSERT INTO b VALUES (1)", "UPDATE c"])

        assert exc_info.value.query == "INSERT INTO b VALUES (1)"
        assert conn.execute.await_count == 2
        exit_args = conn.transaction.return_value.__aexit__.await_args.args
        assert exit_args[0] is DatabaseError


# ── CRUD helpers ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestCrudHelpers:

    async def test_insert_returns_row(self, settings):
        conn = _make_conn(fetchrow=AsyncMock(return_value={"id": 1, "name": "ada"}))
        row = await _make_client(conn, settings).insert("users", {"name": "ada"})
        assert row == {"id": 1, "name": "ada"}
        conn.fetchrow.assert_awaited_once_with(
            'INSERT INTO "users" ("name") VALUES ($1) RETURNING *', "ada"
        )

    async def test_insert_many(self, settings):
        conn = _make_conn()
        count = await _make_client(conn, settings).insert_many(
            "users", [{"name": "ada", "age": 36}, {"name": "grace", "age": 45}]
        )
        assert count == 2
        conn.executemany.assert_awaited_once_with(
            'INSERT INTO "users" ("name", "age") VALUES ($1, $2)',
            [("ada", 36), ("grace", 45)],
        )

    async def test_insert_many_empty(self, settings):
        conn = _make_conn()
        assert await _make_client(conn, settings).insert_many("users", []) == 0
        conn.executemany.assert_not_awaited()

    async def test_update_renumbers_where(self, settings):
        conn = _make_conn(execute=AsyncMock(return_value="UPDATE 3"))
        count = await _make_client(conn, settings).update(
            "users", {"name": "ada", "age": 37}, "org = $1", ["acme"]
        )
        assert count == 3
        conn.execute.assert_awaited_once_with(
            'UPDATE "users" SET "name" = $1, "age" = $2 WHERE org = $3', "ada", 37, "acme"
        )

    async def test_delete(self, settings):
        conn = _make_conn(execute=AsyncMock(return_value="DELETE 1"))
        assert await _make_client(conn, settings).delete("users", "id = $1", [9]) == 1
        conn.execute.assert_awaited_once_with('DELETE FROM "users" WHERE id = $1', 9)

    async def test_select_variants(self, settings):
        conn = _make_conn()
        client = _make_client(conn, settings)
        await client.select("users")
        await client.select("users", ["id", "name"], "age > $1", [30])
        assert [c.args for c in conn.fetch.await_args_list] == [
            ('SELECT * FROM "users"',),
            ('SELECT "id", "name" FROM "users" WHERE age > $1', 30),
        ]

    async def test_get_row_and_value(self, settings):
        conn = _make_conn(
            fetchrow=AsyncMock(return_value={"id": 1}),
            fetchval=AsyncMock(return_value="ada"),
        )
        client = _make_client(conn, settings)
        assert await client.get_row("users", "id = $1", [1]) == {"id": 1}
        assert await client.get_value("users", "name", "id = $1", [1]) == "ada"
        conn.fetchval.assert_awaited_once_with(
            'SELECT "name" FROM "users" WHERE id = $1 LIMIT 1', 1
        )

    async def test_table_exists_and_get_tables(self, settings):
        conn = _make_conn(
            fetchval=AsyncMock(return_value=True),
            fetch=AsyncMock(return_value=[{"table_name": "a"}, {"table_name": "b"}]),
        )
        client = _make_client(conn, settings)
        assert await client.table_exists("a") is True
        assert await client.get_tables() == ["a", "b"]
        assert conn.fetchval.await_args.args[1:] == ("public", "a")
