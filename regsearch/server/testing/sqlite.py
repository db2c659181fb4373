"""
In-memory SQL server handler for testing.

This module provides an in-memory SQLite-based implementation of the pooled
SQL interface so the pool manager can be exercised without a PostgreSQL
server. The "pool" is a single connection leased under a lock.
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Sequence

import aiosqlite
from sqlalchemy.dialects import sqlite
from sqlalchemy.sql import ddl

from regsearch.server.db_models import SQL_DATABASE_MODELS
from regsearch.server.services import SQLConnection, SQLDatabase

logger = logging.getLogger(__name__)

POSITIONAL_PLACEHOLDER_PATTERN = re.compile(r"\$(\d+)")


def convert_placeholders(sql: str, params: Sequence[Any] | None) -> tuple[str, list[Any]]:
    """
    Rewrite `$n` placeholders into SQLite `?` placeholders.

    Parameters are reordered by order of appearance, so `$2 ... $1` and
    repeated placeholders both work.

    Args:
        sql: Statement using `$1`, `$2`, ...
        params: Positional parameters

    Returns:
        Tuple of (rewritten sql, reordered parameters)
    """
    params = list(params or [])
    if not params:
        # compiled statements carry literal values that may contain "$"
        return sql, []
    ordered: list[Any] = []

    def _replace(match: re.Match) -> str:
        index = int(match.group(1)) - 1
        if index < 0 or index >= len(params):
            raise IndexError(f"Placeholder ${index + 1} has no matching parameter")
        ordered.append(_adapt(params[index]))
        return "?"

    rewritten = POSITIONAL_PLACEHOLDER_PATTERN.sub(_replace, sql)
    return rewritten, ordered


def _adapt(value: Any) -> Any:
    # sqlite3's default datetime adapter is deprecated
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


# -------------------------------------------------------------- #
# Leased Connection
# -------------------------------------------------------------- #


class SQLiteConnection(SQLConnection):
    """Leased view of the shared aiosqlite connection."""

    def __init__(self, connection: aiosqlite.Connection):
        self._connection = connection

    async def fetch(self, sql: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        query, values = convert_placeholders(sql, params)
        async with self._connection.execute(query, values) as cursor:
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def execute(self, sql: str, params: Sequence[Any] | None = None) -> str:
        query, values = convert_placeholders(sql, params)
        async with self._connection.execute(query, values) as cursor:
            return f"OK {cursor.rowcount}"


# -------------------------------------------------------------- #
# In-Memory SQL Server Handler (SQLite-based)
# -------------------------------------------------------------- #


class InMemorySQLServer(SQLDatabase):
    """Handler for in-memory SQLite database (mimics the PostgreSQL pool for testing)."""

    def __init__(self, name: str = "test_sqlite"):
        """
        Initialize in-memory SQL server handler.

        Args:
            name: Name of the server handler
        """
        conn_str = "sqlite+aiosqlite:///:memory:"
        super().__init__(name, conn_str)
        self.connection: aiosqlite.Connection | None = None
        self._lease_lock = asyncio.Lock()

    # -------------------------------------------------------------- #
    # Connection Management
    # -------------------------------------------------------------- #

    async def connect(self) -> None:
        """Establish connection to in-memory SQLite database."""
        try:
            # autocommit so explicit BEGIN / COMMIT / ROLLBACK are honoured
            self.connection = await aiosqlite.connect(":memory:", isolation_level=None)
            self.connection.row_factory = aiosqlite.Row

            self._connected = True
            logger.info(f"[{self.name}] Connected to in-memory SQLite database")
        except Exception as e:
            logger.error(f"[{self.name}] Failed to connect: {e}")
            self._connected = False
            raise

    async def disconnect(self) -> None:
        """Close connection to in-memory database."""
        try:
            if self.connection:
                await self.connection.close()
                self.connection = None
            self._connected = False
            logger.info(f"[{self.name}] Disconnected from in-memory database")
        except Exception as e:
            logger.error(f"[{self.name}] Error during disconnect: {e}")
            raise

    async def health_check(self) -> bool:
        """Check if database is healthy."""
        try:
            if not self.connection:
                return False
            async with self.connection.execute("SELECT 1") as cursor:
                result = await cursor.fetchone()
                return result is not None
        except Exception as e:
            logger.error(f"[{self.name}] Health check failed: {e}")
            return False

    # -------------------------------------------------------------- #
    # Database Operations
    # -------------------------------------------------------------- #

    async def create_tables(self) -> None:
        """Create database tables from models."""
        try:
            if not self.connection:
                raise RuntimeError("Not connected to database")

            logger.info(f"[{self.name}] Creating tables...")

            for model in SQL_DATABASE_MODELS:
                create_stmt = ddl.CreateTable(model.__table__, if_not_exists=True)
                sql = str(create_stmt.compile(dialect=sqlite.dialect()))

                logger.debug(f"[{self.name}] Executing: {sql}")
                await self.connection.execute(sql)

            logger.info(f"[{self.name}] Tables created successfully")

        except Exception as e:
            logger.error(f"[{self.name}] Failed to create tables: {e}")
            raise

    @asynccontextmanager
    async def acquire(self, timeout: float | None = None) -> AsyncIterator[SQLConnection]:
        """Lease the shared connection; waits up to `timeout` seconds for it to free up."""
        if not self.connection:
            raise RuntimeError("Not connected to database")

        await asyncio.wait_for(self._lease_lock.acquire(), timeout=timeout)
        try:
            yield SQLiteConnection(self.connection)
        finally:
            self._lease_lock.release()

    def pool_status(self) -> dict[str, int]:
        if not self.connection:
            return {"total": 0, "idle": 0}
        return {"total": 1, "idle": 0 if self._lease_lock.locked() else 1}

    def compile_query_object(self, stmt) -> str:
        """
        Compile a SQLAlchemy statement object into a SQL query string.

        Args:
            stmt: SQLAlchemy statement object

        Returns:
            Compiled SQL query string
        """
        try:
            compiled = stmt.compile(
                dialect=sqlite.dialect(), compile_kwargs={"literal_binds": True}
            )
            return str(compiled)
        except Exception as e:
            logger.error(f"[{self.name}] Failed to compile query: {e}")
            raise
