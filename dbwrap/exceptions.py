"""Exception types raised by dbwrap.

The Redis layers raise nothing of their own; errors from ``redis.asyncio``
reach the caller untouched. Only the relational client wraps failures, so
the failing statement travels with the error.
"""

from typing import Any, Sequence


class DbwrapError(Exception):
    """Base exception for dbwrap errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DatabaseError(DbwrapError):
    """A relational query failed."""

    def __init__(
        self,
        message: str,
        query: str = "",
        params: Sequence[Any] = (),
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.query = query
        self.params = list(params)

    def __str__(self) -> str:
        if not self.query:
            return self.message
        return f"{self.message} (query: {self.query})"
