"""
Database Pool Manager Service.

Pooled relational access on top of the SQL client:

- `query` runs one statement on a leased connection with acquire and
  statement timeouts, optionally serving it from a 5 minute read cache
- `get_stats` / `search` are cached reads with their own key prefixes
- `write` purges cached reads for the table it touches before executing
- `transaction` runs a callback inside BEGIN / COMMIT, rolling back on error

Every execution is timed into a bounded metrics window; executions slower
than the slow-query threshold are counted and logged but still returned.

Usage:
    rows = await db_pool.get_stats("SELECT count(*) AS n FROM agendas WHERE union_id = $1", [uid])
    await db_pool.write("UPDATE agendas SET title = $1 WHERE id = $2", [title, agenda_id])

    async def move(connection):
        await connection.execute("DELETE FROM drafts WHERE id = $1", [draft_id])
        await connection.execute("INSERT INTO agendas (id, title) VALUES ($1, $2)", [draft_id, title])

    await db_pool.transaction(move, tables=["drafts", "agendas"])
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence, TypeVar

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.exceptions import DatabaseError, PoolAcquireTimeoutError, QueryTimeoutError
from regsearch.request_context import get_request_id
from regsearch.server.services import SQLConnection
from regsearch.services.common.ttl_cache import TTLCache
from regsearch.services.manager import BaseDatabasePoolManagerService
from regsearch.utils import WHITESPACE_PATTERN, elapsed_ms, now_ms

T = TypeVar("T")

QUERY_CACHE_TTL_MS = 5 * 60 * 1000
SLOW_QUERY_THRESHOLD_MS = 100.0
MAX_METRICS = 1000
COMPACTED_METRICS = 500
DETAILED_METRICS_WINDOW_MS = 24 * 60 * 60 * 1000

WRITE_VERB_PATTERN = re.compile(r"\b(?:INSERT|UPDATE|DELETE|CREATE|DROP|ALTER)\b", re.IGNORECASE)
TABLE_NAME_PATTERN = re.compile(
    r"(?:FROM|INTO|UPDATE|JOIN)\s+[\"`]?([a-zA-Z_][a-zA-Z0-9_]*)", re.IGNORECASE
)


@dataclass
class QueryMetric:
    query_type: str
    duration_ms: float
    cache_hit: bool
    timestamp: float


@dataclass(frozen=True)
class QueryCacheOptions:
    enable_cache: bool = False
    cache_key: str | None = None
    query_type: str = "read"


# -------------------------------------------------------------- #
# SQL Helpers
# -------------------------------------------------------------- #


def generate_cache_key(sql: str, params: Sequence[Any] | None = None) -> str:
    """Whitespace-normalized SQL plus the JSON-encoded parameters."""
    params_json = json.dumps(list(params), default=str, ensure_ascii=False) if params else ""
    return f"{WHITESPACE_PATTERN.sub(' ', sql).strip()}_{params_json}"


def is_write_statement(sql: str) -> bool:
    return WRITE_VERB_PATTERN.search(sql) is not None


def extract_table_name(sql: str) -> str | None:
    """
    First table named after FROM / INTO / UPDATE / JOIN, lowercased.

    This is a heuristic: for multi-table statements, CTEs or subqueries it
    only sees the first match. Pass `tables=` to `write` to be explicit.
    """
    match = TABLE_NAME_PATTERN.search(sql)
    return match.group(1).lower() if match else None


# -------------------------------------------------------------- #
# Database Pool Manager
# -------------------------------------------------------------- #


class DatabasePoolManagerService(BaseDatabasePoolManagerService):
    """Pooled relational access with a read cache and query metrics."""

    def __init__(
        self,
        context: Context,
        acquire_timeout: float = 2.0,
        statement_timeout: float = 10.0,
        slow_query_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS,
        cache_ttl_ms: float = QUERY_CACHE_TTL_MS,
        max_metrics: int = MAX_METRICS,
        clock: Callable[[], float] = now_ms,
    ):
        """
        Args:
            context: Application context
            acquire_timeout: Seconds to wait for a pooled connection
            statement_timeout: Seconds a single statement may run
            slow_query_threshold_ms: Executions slower than this are counted as slow
            cache_ttl_ms: Read cache time-to-live
            max_metrics: Query metrics kept in the rolling window
            clock: Wall clock in ms
        """
        super().__init__(context)
        self.acquire_timeout = acquire_timeout
        self.statement_timeout = statement_timeout
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.max_metrics = max_metrics
        self.clock = clock

        self.cache: TTLCache[list[dict[str, Any]]] = TTLCache(
            "query", cache_ttl_ms, clock=clock
        )
        self._metrics: list[QueryMetric] = []
        self._waiting = 0

        self._total_queries = 0
        self._total_query_time = 0.0
        self._cache_hits = 0
        self._slow_queries = 0

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)
        status = self.sql_client.pool_status()
        await self.services.logging_service.info(
            f"[DatabasePoolManager] Started on '{self.sql_client.name}' "
            f"(connections={status['total']}, acquire_timeout={self.acquire_timeout}s, "
            f"statement_timeout={self.statement_timeout}s)"
        )

    async def on_close(self) -> None:
        """Release every pooled connection."""
        self.cache.clear()
        if self.sql_client.is_connected:
            await self.sql_client.disconnect()
        await self.services.logging_service.info("[DatabasePoolManager] Connection pool closed")

    # -------------------------------------------------------------- #
    # Query Execution
    # -------------------------------------------------------------- #

    async def query(
        self,
        sql: Any,
        params: Sequence[Any] | None = None,
        enable_cache: bool = False,
        cache_key: str | None = None,
        query_type: str = "general",
    ) -> list[dict[str, Any]]:
        """
        Execute one statement on a leased connection.

        Args:
            sql: SQL text with `$n` placeholders, or a SQLAlchemy statement
            params: Positional parameters
            enable_cache: Serve from / store into the read cache
            cache_key: Explicit cache key (defaults to SQL text + params)
            query_type: Label used in metrics

        Returns:
            Result rows as dictionaries

        Raises:
            PoolAcquireTimeoutError: No connection became free in time
            QueryTimeoutError: The statement exceeded the statement timeout
            DatabaseError: The database rejected the statement
        """
        sql_text = self._to_sql(sql)
        start = time.perf_counter()
        key = cache_key or generate_cache_key(sql_text, params)

        if enable_cache:
            cached = self.cache.get(key)
            if cached is not None:
                self._cache_hits += 1
                self._record_metric(query_type, elapsed_ms(start), cache_hit=True)
                return list(cached)

        async with AsyncExitStack() as stack:
            connection = await self._acquire(stack, query_type)
            rows = await self._run(connection, sql_text, params, query_type)

        duration = elapsed_ms(start)
        self._record_metric(query_type, duration, cache_hit=False)

        if enable_cache and rows:
            self.cache.set(key, rows)

        if duration > self.slow_query_threshold_ms:
            self._slow_queries += 1
            await self.services.logging_service.warning(
                f"[DatabasePoolManager] Slow query ({duration:.2f}ms, {query_type}): "
                f"{sql_text[:100]}"
            )
        else:
            await self.services.logging_service.debug(
                f"[DatabasePoolManager] Query finished in {duration:.2f}ms ({query_type})"
            )

        return list(rows)

    async def read(
        self,
        sql: Any,
        params: Sequence[Any] | None = None,
        cache_options: QueryCacheOptions | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows; cached only when `cache_options.enable_cache` is set."""
        cache_options = cache_options or QueryCacheOptions()
        return await self.query(
            sql,
            params,
            enable_cache=cache_options.enable_cache,
            cache_key=cache_options.cache_key,
            query_type=cache_options.query_type,
        )

    async def get_stats(self, sql: Any, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Cached read for aggregate / statistics queries."""
        sql_text = self._to_sql(sql)
        return await self.query(
            sql_text,
            params,
            enable_cache=True,
            cache_key=f"stats_{generate_cache_key(sql_text, params)}",
            query_type="stats",
        )

    async def search(self, sql: Any, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Cached read for lookup / search queries."""
        sql_text = self._to_sql(sql)
        return await self.query(
            sql_text,
            params,
            enable_cache=True,
            cache_key=f"search_{generate_cache_key(sql_text, params)}",
            query_type="search",
        )

    async def write(
        self,
        sql: Any,
        params: Sequence[Any] | None = None,
        tables: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a write, never cached.

        Cached reads mentioning the affected table are purged before the
        statement runs. The table comes from `tables` when given, otherwise
        from the first FROM / INTO / UPDATE / JOIN in the SQL.
        """
        sql_text = self._to_sql(sql)
        self.invalidate(sql_text, tables)
        return await self.query(sql_text, params, enable_cache=False, query_type="write")

    async def transaction(
        self,
        callback: Callable[[SQLConnection], Awaitable[T]],
        tables: list[str] | None = None,
    ) -> T:
        """
        Run `callback(connection)` inside BEGIN / COMMIT on one leased connection.

        Any exception rolls the transaction back and is re-raised; the
        connection is always released. A failing BEGIN or COMMIT surfaces as
        DatabaseError. Cached reads for `tables` are purged after a
        successful commit.
        """
        start = time.perf_counter()

        async with AsyncExitStack() as stack:
            connection = await self._acquire(stack, "transaction")
            await self._run_command(connection, "BEGIN")
            try:
                result = await callback(connection)
                await self._run_command(connection, "COMMIT")
            except BaseException as e:
                try:
                    await connection.execute("ROLLBACK")
                except Exception as rollback_error:
                    await self.services.logging_service.error(
                        f"[DatabasePoolManager] Rollback failed: {rollback_error}"
                    )
                await self.services.logging_service.error(
                    f"[DatabasePoolManager] Transaction rolled back: {e!r}"
                )
                raise

        for table in tables or []:
            self.cache.purge_containing(table)

        self._record_metric("transaction", elapsed_ms(start), cache_hit=False)
        await self.services.logging_service.debug("[DatabasePoolManager] Transaction committed")
        return result

    # -------------------------------------------------------------- #
    # Cache Invalidation
    # -------------------------------------------------------------- #

    def invalidate(self, sql_text: str, tables: list[str] | None = None) -> int:
        """
        Purge cached reads affected by a write.

        Returns:
            Number of cache entries removed
        """
        if tables is not None:
            targets = [table.lower() for table in tables]
        elif is_write_statement(sql_text):
            table = extract_table_name(sql_text)
            targets = [table] if table else []
        else:
            targets = []

        removed = sum(self.cache.purge_containing(table) for table in targets)
        if targets:
            self.services.logging_service.log_nowait(
                f"[DatabasePoolManager] Invalidated {removed} cached reads for {targets}"
            )
        return removed

    # -------------------------------------------------------------- #
    # Stats and Maintenance
    # -------------------------------------------------------------- #

    def get_pool_stats(self) -> dict[str, Any]:
        status = self.sql_client.pool_status()
        queries = self._total_queries
        return {
            "total_connections": status["total"],
            "idle_connections": status["idle"],
            "waiting_connections": self._waiting,
            "total_queries": queries,
            "average_query_time": round(self._total_query_time / queries, 2) if queries else 0.0,
            "slow_queries": self._slow_queries,
            "cache_hit_rate": round(self._cache_hits / queries * 100, 2) if queries else 0.0,
        }

    def get_detailed_metrics(self) -> dict[str, Any]:
        cutoff = self.clock() - DETAILED_METRICS_WINDOW_MS
        recent = [metric for metric in self._metrics if metric.timestamp > cutoff]

        by_query_type: dict[str, dict[str, Any]] = {}
        for metric in recent:
            bucket = by_query_type.setdefault(
                metric.query_type, {"count": 0, "total_time": 0.0, "avg_time": 0.0, "cache_hits": 0}
            )
            bucket["count"] += 1
            bucket["total_time"] += metric.duration_ms
            if metric.cache_hit:
                bucket["cache_hits"] += 1

        for bucket in by_query_type.values():
            bucket["avg_time"] = bucket["total_time"] / bucket["count"]

        return {
            "summary": self.get_pool_stats(),
            "by_query_type": by_query_type,
            "recent_metrics_count": len(recent),
            "cache_size": len(self.cache),
        }

    def clear_cache(self) -> None:
        self.cache.clear()
        self.services.logging_service.log_nowait("[DatabasePoolManager] Query cache cleared")

    def sweep_expired(self) -> int:
        return self.cache.sweep()

    def compact_metrics(self, keep: int = COMPACTED_METRICS) -> int:
        """
        Keep only the most recent `keep` metrics.

        Returns:
            Number of metrics dropped
        """
        excess = len(self._metrics) - keep
        if excess <= 0:
            return 0
        del self._metrics[:excess]
        return excess

    @property
    def metrics(self) -> list[QueryMetric]:
        return list(self._metrics)

    # -------------------------------------------------------------- #
    # Utils
    # -------------------------------------------------------------- #

    async def _acquire(self, stack: AsyncExitStack, query_type: str) -> SQLConnection:
        self._waiting += 1
        try:
            return await stack.enter_async_context(
                self.sql_client.acquire(timeout=self.acquire_timeout)
            )
        except asyncio.TimeoutError as e:
            raise PoolAcquireTimeoutError(
                f"No database connection available within {self.acquire_timeout}s",
                query_type=query_type,
                details=self.sql_client.pool_status(),
            ) from e
        finally:
            self._waiting -= 1

    async def _run(
        self,
        connection: SQLConnection,
        sql_text: str,
        params: Sequence[Any] | None,
        query_type: str,
    ) -> list[dict[str, Any]]:
        try:
            return await asyncio.wait_for(
                connection.fetch(sql_text, params), timeout=self.statement_timeout
            )
        except asyncio.TimeoutError as e:
            await self.services.logging_service.error(
                f"[DatabasePoolManager] Statement timed out after {self.statement_timeout}s "
                f"({query_type}): {sql_text[:100]}"
            )
            raise QueryTimeoutError(
                f"Statement exceeded {self.statement_timeout}s",
                query_type=query_type,
                details={"sql": sql_text[:100]},
            ) from e
        except Exception as e:
            await self.services.logging_service.error(
                f"[DatabasePoolManager] Query failed ({query_type}): {e} | {sql_text[:100]}"
            )
            raise DatabaseError(
                str(e), query_type=query_type, details={"sql": sql_text[:100]}
            ) from e

    async def _run_command(self, connection: SQLConnection, command: str) -> None:
        try:
            await asyncio.wait_for(connection.execute(command), timeout=self.statement_timeout)
        except asyncio.TimeoutError as e:
            raise QueryTimeoutError(f"{command} timed out", query_type="transaction") from e
        except Exception as e:
            raise DatabaseError(
                f"{command} failed: {e}", query_type="transaction", details={"command": command}
            ) from e

    def _record_metric(self, query_type: str, duration_ms: float, cache_hit: bool) -> None:
        self._total_queries += 1
        self._total_query_time += duration_ms
        self._metrics.append(
            QueryMetric(
                query_type=query_type,
                duration_ms=duration_ms,
                cache_hit=cache_hit,
                timestamp=self.clock(),
            )
        )
        if len(self._metrics) > self.max_metrics:
            del self._metrics[: len(self._metrics) - self.max_metrics]

        self.services.profiler_manager.record_database_query(
            get_request_id(), query_type, duration_ms, cache_hit
        )

    def _to_sql(self, sql: Any) -> str:
        if isinstance(sql, str):
            return sql
        return self.sql_client.compile_query_object(sql)

    # -------------------------------------------------------------- #
    # Properties
    # -------------------------------------------------------------- #

    @property
    def sql_client(self):
        return self.server.sql_client
