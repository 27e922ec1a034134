"""Async PostgreSQL client with connection pooling and query helpers."""

import asyncio
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional

import asyncpg
from asyncpg import Pool

from dbwrap.config import Settings, get_settings
from dbwrap.exceptions import DatabaseError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(\d+)")

Query = str | tuple[str, Sequence[Any]]


def quote_identifier(name: str) -> str:
    """
    Quote a table or column name for PostgreSQL.

    Dotted names are quoted per part ("public.users" -> "public"."users");
    embedded double quotes are doubled.
    """
    parts = name.split(".")
    return ".".join('"' + part.replace('"', '""') + '"' for part in parts)


def shift_placeholders(sql: str, offset: int) -> str:
    """Renumber $n placeholders by offset, e.g. "$1" -> "$3" for offset 2."""
    if offset == 0:
        return sql
    return _PLACEHOLDER.sub(lambda m: f"${int(m.group(1)) + offset}", sql)


def _affected_rows(status: str) -> int:
    """Row count from a command status such as "UPDATE 3" or "INSERT 0 1"."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PostgresClient:
    """
    Production PostgreSQL client with connection pooling.

    Features:
    - Lazy initialization
    - Connection pooling via asyncpg
    - Parameterized query helpers returning plain dicts
    - CRUD helpers with identifier quoting
    - Query failures wrapped with their SQL
    - Health checks
    - Singleton pattern
    """

    _instance: Optional["PostgresClient"] = None
    _lock: asyncio.Lock = asyncio.Lock()

    def __init__(self, settings: Settings | None = None) -> None:
        self._pool: Pool | None = None
        self._initialized = False
        self._settings = settings or get_settings()

    @classmethod
    def from_pool(cls, pool: Pool, settings: Settings | None = None) -> "PostgresClient":
        """Wrap an existing asyncpg pool."""
        instance = cls(settings=settings)
        instance._pool = pool
        instance._initialized = True
        return instance

    @classmethod
    async def get_instance(cls) -> "PostgresClient":
        """Thread-safe singleton access."""
        if cls._instance is None:
            async with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
                    await cls._instance.connect()
        return cls._instance

    async def connect(self) -> None:
        """Initialize connection pool."""
        if self._initialized:
            return

        try:
            self._pool = await asyncpg.create_pool(
                host=self._settings.postgres_host,
                port=self._settings.postgres_port,
                user=self._settings.postgres_user,
                password=self._settings.postgres_password,
                database=self._settings.postgres_database,
                min_size=self._settings.postgres_pool_min,
                max_size=self._settings.postgres_pool_max,
                command_timeout=self._settings.postgres_command_timeout,
                max_inactive_connection_lifetime=300.0,
            )

            # Verify connection
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")

            self._initialized = True
            logger.info("PostgreSQL connection pool established")

        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            if self._pool:
                await self._pool.close()
                self._pool = None
            raise

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self._pool and self._initialized:
            await self._pool.close()
            self._initialized = False
            logger.info("PostgreSQL connection pool closed")

    async def close(self) -> None:
        """Alias for disconnect()."""
        await self.disconnect()

    async def __aenter__(self) -> "PostgresClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @property
    def pool(self) -> Pool:
        """Get the connection pool."""
        if not self._pool or not self._initialized:
            raise RuntimeError("PostgreSQL not initialized. Call connect() first.")
        return self._pool

    async def health_check(self) -> bool:
        """Check if PostgreSQL is healthy."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return False

    # ========================================================================
    # Parameterized queries
    # ========================================================================

    async def _query(self, method: str, query: str, params: Sequence[Any]) -> Any:
        """Run one connection method, attaching the SQL to any database error."""
        async with self.pool.acquire() as conn:
            try:
                return await getattr(conn, method)(query, *params)
            except asyncpg.PostgresError as e:
                raise DatabaseError(
                    str(e),
                    query=query,
                    params=params,
                    details={"sqlstate": e.sqlstate},
                ) from e

    async def run(self, query: str, *params: Any) -> str:
        """Execute a statement; returns the command status, e.g. "DELETE 2"."""
        return await self._query("execute", query, params)

    async def all(self, query: str, *params: Any) -> list[dict[str, Any]]:
        """Fetch every row as a dict."""
        rows = await self._query("fetch", query, params)
        return [dict(row) for row in rows]

    async def get(self, query: str, *params: Any) -> dict[str, Any] | None:
        """Fetch the first row, or None."""
        row = await self._query("fetchrow", query, params)
        return dict(row) if row is not None else None

    async def scalar(self, query: str, *params: Any) -> Any:
        """Fetch the first column of the first row, or None."""
        return await self._query("fetchval", query, params)

    async def transaction(self, queries: Iterable[Query]) -> None:
        """
        Execute statements in a single transaction.

        Args:
            queries: SQL strings or (sql, params) tuples

        Raises:
            DatabaseError: Any statement failed; nothing is committed
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for query in queries:
                    sql, params = (query, ()) if isinstance(query, str) else query
                    try:
                        await conn.execute(sql, *params)
                    except asyncpg.PostgresError as e:
                        raise DatabaseError(
                            f"Transaction aborted: {e}",
                            query=sql,
                            params=params,
                            details={"sqlstate": e.sqlstate},
                        ) from e

    # ========================================================================
    # CRUD helpers
    # ========================================================================

    async def insert(self, table: str, data: Mapping[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored."""
        columns = ", ".join(quote_identifier(column) for column in data)
        placeholders = ", ".join(f"${i}" for i in range(1, len(data) + 1))
        query = (
            f"INSERT INTO {quote_identifier(table)} ({columns}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        return await self.get(query, *data.values())

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert several rows sharing the first row's columns.

        Returns:
            Number of rows inserted
        """
        if not rows:
            return 0

        column_names = list(rows[0])
        columns = ", ".join(quote_identifier(column) for column in column_names)
        placeholders = ", ".join(f"${i}" for i in range(1, len(column_names) + 1))
        query = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({placeholders})"
        args = [tuple(row[column] for column in column_names) for row in rows]

        async with self.pool.acquire() as conn:
            try:
                await conn.executemany(query, args)
            except asyncpg.PostgresError as e:
                raise DatabaseError(str(e), query=query, details={"sqlstate": e.sqlstate}) from e
        return len(rows)

    async def update(
        self,
        table: str,
        data: Mapping[str, Any],
        where: str,
        where_params: Sequence[Any] = (),
    ) -> int:
        """
        Update matching rows.

        Placeholders in ``where`` start at $1; they are renumbered to follow
        the SET values.

        Returns:
            Number of rows updated
        """
        assignments = ", ".join(
            f"{quote_identifier(column)} = ${i}" for i, column in enumerate(data, start=1)
        )
        query = (
            f"UPDATE {quote_identifier(table)} SET {assignments} "
            f"WHERE {shift_placeholders(where, len(data))}"
        )
        status = await self.run(query, *data.values(), *where_params)
        return _affected_rows(status)

    async def delete(self, table: str, where: str, where_params: Sequence[Any] = ()) -> int:
        """Delete matching rows; returns how many were removed."""
        query = f"DELETE FROM {quote_identifier(table)} WHERE {where}"
        status = await self.run(query, *where_params)
        return _affected_rows(status)

    async def select(
        self,
        table: str,
        columns: str | Sequence[str] = "*",
        where: str | None = None,
        where_params: Sequence[Any] = (),
    ) -> list[dict[str, Any]]:
        """Select rows, optionally filtered."""
        if not isinstance(columns, str):
            columns = ", ".join(quote_identifier(column) for column in columns)
        query = f"SELECT {columns} FROM {quote_identifier(table)}"
        if where:
            query += f" WHERE {where}"
        return await self.all(query, *where_params)

    async def get_row(
        self,
        table: str,
        where: str,
        where_params: Sequence[Any] = (),
    ) -> dict[str, Any] | None:
        """First matching row, or None."""
        query = f"SELECT * FROM {quote_identifier(table)} WHERE {where} LIMIT 1"
        return await self.get(query, *where_params)

    async def get_value(
        self,
        table: str,
        column: str,
        where: str,
        where_params: Sequence[Any] = (),
    ) -> Any:
        """Single column of the first matching row, or None."""
        query = (
            f"SELECT {quote_identifier(column)} FROM {quote_identifier(table)} "
            f"WHERE {where} LIMIT 1"
        )
        return await self.scalar(query, *where_params)

    async def table_exists(self, table: str, schema: str = "public") -> bool:
        query = (
            "SELECT EXISTS (SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = $1 AND table_name = $2)"
        )
        return bool(await self.scalar(query, schema, table))

    async def get_tables(self, schema: str = "public") -> list[str]:
        rows = await self.all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = $1 ORDER BY table_name",
            schema,
        )
        return [row["table_name"] for row in rows]


async def get_postgres() -> PostgresClient:
    """Get PostgreSQL client instance."""
    return await PostgresClient.get_instance()
