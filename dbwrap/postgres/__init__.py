"""PostgreSQL client module."""

from dbwrap.postgres.client import PostgresClient, get_postgres, quote_identifier

__all__ = ["PostgresClient", "get_postgres", "quote_identifier"]
