"""
PostgreSQL server handler for database operations.

This module provides an object-oriented handler for managing a bounded
asyncpg connection pool. Statements may be built with SQLAlchemy Core and
compiled here, or passed as SQL strings with `$n` placeholders.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

import asyncpg
from asyncpg import Pool
from sqlalchemy.dialects.postgresql import asyncpg as pg_asyncpg
from sqlalchemy.sql import ddl

from regsearch.server.db_models import SQL_DATABASE_MODELS
from regsearch.server.services import SQLConnection, SQLDatabase

logger = logging.getLogger(__name__)


# -------------------------------------------------------------- #
# Leased Connection
# -------------------------------------------------------------- #


class PostgreSQLConnection(SQLConnection):
    """Thin wrapper over a leased asyncpg connection."""

    def __init__(self, connection: asyncpg.Connection):
        self._connection = connection

    async def fetch(self, sql: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        rows = await self._connection.fetch(sql, *(params or ()))
        return [dict(row) for row in rows]

    async def execute(self, sql: str, params: Sequence[Any] | None = None) -> str:
        return await self._connection.execute(sql, *(params or ()))


# -------------------------------------------------------------- #
# PostgreSQL Server Handler
# -------------------------------------------------------------- #


class PostgreSQLServer(SQLDatabase):
    """Handler for PostgreSQL database server operations."""

    def __init__(
        self,
        connection_string: str,
        name: str = "postgresql",
        min_size: int = 2,
        max_size: int = 20,
        command_timeout: float = 10.0,
        idle_timeout: float = 30.0,
        ssl: bool = False,
    ):
        """
        Initialize PostgreSQL server handler.

        Args:
            connection_string: Full connection string
            name: Name of the server handler
            min_size: Connections opened eagerly and kept alive
            max_size: Upper bound on concurrently open connections
            command_timeout: Server-side statement timeout in seconds
            idle_timeout: Seconds before an idle connection above min_size is closed
            ssl: Require TLS
        """
        super().__init__(name, connection_string)
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.idle_timeout = idle_timeout
        self.ssl = ssl

        self.pool: Pool | None = None

    # -------------------------------------------------------------- #
    # Connection Management
    # -------------------------------------------------------------- #

    async def connect(self) -> None:
        """Establish connection pool to PostgreSQL server."""
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                max_inactive_connection_lifetime=self.idle_timeout,
                ssl="require" if self.ssl else None,
            )
            self._connected = True
            logger.info(
                f"[{self.name}] Connected to PostgreSQL (pool {self.min_size}..{self.max_size})"
            )
        except Exception as e:
            logger.error(f"[{self.name}] Failed to connect: {e}")
            self._connected = False
            raise

    async def disconnect(self) -> None:
        """Close connection pool to PostgreSQL server."""
        if self.pool:
            try:
                await self.pool.close()
                self.pool = None
                self._connected = False
                logger.info(f"[{self.name}] Disconnected from PostgreSQL")
            except Exception as e:
                logger.error(f"[{self.name}] Failed to disconnect: {e}")
                raise

    async def health_check(self) -> bool:
        """Check if the PostgreSQL server is healthy and responding."""
        if not self.pool:
            return False

        try:
            async with self.pool.acquire() as connection:
                result = await connection.fetchval("SELECT 1")
                is_healthy = result == 1
                if is_healthy:
                    logger.debug(f"[{self.name}] Health check passed")
                else:
                    logger.warning(f"[{self.name}] Health check failed")
                return is_healthy
        except Exception as e:
            logger.error(f"[{self.name}] Health check error: {e}")
            return False

    async def create_tables(self) -> None:
        """Create all database tables from the defined models."""
        if not self.pool:
            raise RuntimeError(f"[{self.name}] Connection pool not initialized")

        logger.info(f"[{self.name}] Creating database tables...")
        async with self.pool.acquire() as connection:
            for model in SQL_DATABASE_MODELS:
                create_stmt = ddl.CreateTable(model.__table__, if_not_exists=True)
                await connection.execute(str(create_stmt.compile(dialect=pg_asyncpg.dialect())))
                for index in model.__table__.indexes:
                    index_stmt = ddl.CreateIndex(index, if_not_exists=True)
                    await connection.execute(str(index_stmt.compile(dialect=pg_asyncpg.dialect())))
                logger.info(f"[{self.name}] Created/verified table: {model.__tablename__}")

        logger.info(f"[{self.name}] All tables created successfully")

    # -------------------------------------------------------------- #
    # Pool Access
    # -------------------------------------------------------------- #

    @asynccontextmanager
    async def acquire(self, timeout: float | None = None) -> AsyncIterator[SQLConnection]:
        """Lease a connection from the pool; released on exit even on error."""
        if not self.pool:
            raise RuntimeError(f"[{self.name}] Connection pool not initialized")

        connection = await self.pool.acquire(timeout=timeout)
        try:
            yield PostgreSQLConnection(connection)
        finally:
            await self.pool.release(connection)

    def pool_status(self) -> dict[str, int]:
        if not self.pool:
            return {"total": 0, "idle": 0}
        return {"total": self.pool.get_size(), "idle": self.pool.get_idle_size()}

    # -------------------------------------------------------------- #
    # Utils
    # -------------------------------------------------------------- #

    def compile_query_object(self, stmt) -> str:
        """
        Compile a SQLAlchemy statement object into a SQL query string.

        Uses the asyncpg dialect so literal percent signs are rendered as-is;
        the plain psycopg2 dialect doubles them for pyformat escaping.

        Args:
            stmt: SQLAlchemy statement object

        Returns:
            Compiled SQL query string
        """
        compiled = stmt.compile(
            dialect=pg_asyncpg.dialect(), compile_kwargs={"literal_binds": True}
        )
        return str(compiled)
