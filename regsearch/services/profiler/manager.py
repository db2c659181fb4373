"""
Request Performance Profiler Service.

Collects per-request timings (AI calls, vector search, database queries,
cache operations, errors) into a bounded history and aggregates them into
summary reports. The profiler only observes: recording into an unknown or
already-finished request is a no-op, and no method raises into the caller.

Usage:
    async with profiler.profile(request_id, "/search", "POST"):
        results = await vector_search.search(query)

    summary = profiler.get_performance_summary(60 * 60 * 1000)
"""

from __future__ import annotations

import math
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.request_context import reset_request_id, set_request_id
from regsearch.services.manager import BaseProfilerManagerService
from regsearch.services.profiler.models import (
    CacheOperation,
    DatabaseQueryRecord,
    ErrorRecord,
    ProfileFilter,
    RequestProfile,
    RequestTiming,
    ResourceSnapshot,
)
from regsearch.utils import now_ms

MAX_PROFILES = 1000
DEFAULT_WINDOW_MS = 24 * 60 * 60 * 1000


def perf_ms() -> float:
    return time.perf_counter() * 1000.0


def percentile(values: list[float], pct: float) -> float:
    """Nearest-rank percentile (ceil based); 0.0 for no values."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil(pct / 100 * len(ordered)) - 1
    return ordered[max(index, 0)]


# -------------------------------------------------------------- #
# Profiler Manager
# -------------------------------------------------------------- #


class ProfilerManagerService(BaseProfilerManagerService):
    """Bounded in-memory request profiler."""

    def __init__(
        self,
        context: Context,
        max_profiles: int = MAX_PROFILES,
        max_age_ms: float = DEFAULT_WINDOW_MS,
        clock: Callable[[], float] = now_ms,
        perf_clock: Callable[[], float] = perf_ms,
    ):
        """
        Args:
            context: Application context
            max_profiles: Completed profiles kept; oldest evicted first
            max_age_ms: Default age limit used by `cleanup`
            clock: Wall clock in ms, stamps profiles for windowing
            perf_clock: Monotonic clock in ms, measures durations
        """
        super().__init__(context)
        self.max_profiles = max_profiles
        self.max_age_ms = max_age_ms
        self.clock = clock
        self.perf_clock = perf_clock

        self._active: dict[str, RequestProfile] = {}
        self._completed: list[RequestProfile] = []

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)
        await self.services.logging_service.info(
            f"[ProfilerManager] Started (history={self.max_profiles})"
        )

    async def on_close(self) -> None:
        if self._active:
            await self.services.logging_service.warning(
                f"[ProfilerManager] Closing with {len(self._active)} unfinished profiles"
            )
        self._active.clear()

    # -------------------------------------------------------------- #
    # Recording
    # -------------------------------------------------------------- #

    def start_profiling(self, request_id: str, route: str, method: str) -> None:
        try:
            self._active[request_id] = RequestProfile(
                request_id=request_id,
                route=route,
                method=method,
                timestamp=self.clock(),
                request=RequestTiming(start_time=self.perf_clock()),
                system=ResourceSnapshot.capture(),
            )
            self._log(f"Profiling started: {request_id} [{method} {route}]", "DEBUG")
        except Exception as e:
            self._log(f"Failed to start profiling {request_id}: {e}", "WARNING")

    def record_ai_processing(
        self,
        request_id: str | None,
        kind: str,
        duration_ms: float,
        token_usage: dict[str, int] | None = None,
    ) -> None:
        """
        Args:
            kind: "embedding" or "chat_completion"
            token_usage: Optional {"prompt", "completion", "total"} counts
        """
        profile = self._active.get(request_id) if request_id else None
        if profile is None:
            return
        try:
            if kind == "embedding":
                profile.ai.embedding_time += duration_ms
            else:
                profile.ai.chat_completion_time += duration_ms

            if token_usage:
                profile.ai.prompt_tokens += token_usage.get("prompt", 0)
                profile.ai.completion_tokens += token_usage.get("completion", 0)
                profile.ai.total_tokens += token_usage.get("total", 0)
        except Exception as e:
            self._log(f"Failed to record AI processing for {request_id}: {e}", "WARNING")

    def record_search_processing(
        self,
        request_id: str | None,
        vector_search_ms: float,
        post_processing_ms: float,
        result_count: int,
        cache_hit: bool,
        similarities: list[float],
    ) -> None:
        profile = self._active.get(request_id) if request_id else None
        if profile is None:
            return
        profile.search.vector_search_time = vector_search_ms
        profile.search.post_processing_time = post_processing_ms
        profile.search.result_count = result_count
        profile.search.cache_hit = cache_hit
        profile.search.similarities = list(similarities)

    def record_database_query(
        self, request_id: str | None, query_type: str, duration_ms: float, cached: bool
    ) -> None:
        profile = self._active.get(request_id) if request_id else None
        if profile is None:
            return
        profile.database.queries.append(
            DatabaseQueryRecord(query_type=query_type, duration=duration_ms, cached=cached)
        )
        profile.database.total_time += duration_ms

    def record_cache_operation(
        self, request_id: str | None, kind: str, key: str, duration_ms: float
    ) -> None:
        profile = self._active.get(request_id) if request_id else None
        if profile is None:
            return
        profile.cache.operations.append(CacheOperation(kind=kind, key=key, duration=duration_ms))
        if kind == "hit":
            profile.cache.hits += 1
        elif kind == "miss":
            profile.cache.misses += 1

    def record_error(self, request_id: str | None, error: BaseException, error_type: str) -> None:
        profile = self._active.get(request_id) if request_id else None
        if profile is None:
            return
        profile.errors.append(
            ErrorRecord(type=error_type, message=str(error), timestamp=self.clock())
        )
        self._log(f"Error recorded: {error_type} - {error} [{request_id}]", "WARNING")

    def end_profiling(self, request_id: str, content_length: int | None = None) -> RequestProfile | None:
        """
        Close a profile and move it into the completed history.

        Returns:
            The completed profile, or None if the id is unknown
        """
        profile = self._active.pop(request_id, None)
        if profile is None:
            self._log(f"No active profile for {request_id}", "WARNING")
            return None

        try:
            end_time = self.perf_clock()
            profile.request.end_time = end_time
            profile.request.total_time = end_time - profile.request.start_time
            profile.request.content_length = content_length or 0
            profile.system = ResourceSnapshot.capture()
        except Exception as e:
            self._log(f"Failed to finalize profile {request_id}: {e}", "WARNING")

        self._completed.append(profile)
        if len(self._completed) > self.max_profiles:
            del self._completed[: len(self._completed) - self.max_profiles]

        self._log(
            f"Profiling finished: {profile.request.total_time:.2f}ms [{request_id}]", "DEBUG"
        )
        return profile

    @asynccontextmanager
    async def profile(
        self, request_id: str, route: str, method: str = "GET"
    ) -> AsyncIterator[RequestProfile | None]:
        """
        Profile the enclosed block as one request.

        The request id is bound to the current task so the managers called
        inside attribute their timings to this profile. Exceptions are
        recorded and re-raised.
        """
        self.start_profiling(request_id, route, method)
        token = set_request_id(request_id)
        try:
            yield self._active.get(request_id)
        except Exception as e:
            self.record_error(request_id, e, type(e).__name__)
            raise
        finally:
            reset_request_id(token)
            self.end_profiling(request_id)

    # -------------------------------------------------------------- #
    # Reporting
    # -------------------------------------------------------------- #

    def get_performance_summary(self, window_ms: float = DEFAULT_WINDOW_MS) -> dict[str, Any]:
        cutoff = self.clock() - window_ms
        recent = [profile for profile in self._completed if profile.timestamp > cutoff]
        window_hours = window_ms / 1000 / 60 / 60

        if not recent:
            return {
                "message": "No profiles in the requested window",
                "time_window_hours": window_hours,
                "total_requests": 0,
            }

        count = len(recent)
        total_times = [profile.request.total_time for profile in recent]

        def average(values) -> float:
            return sum(values) / count

        db_queries = [query for profile in recent for query in profile.database.queries]
        cache_hits = sum(profile.cache.hits for profile in recent)
        cache_misses = sum(profile.cache.misses for profile in recent)

        error_types: dict[str, int] = {}
        for profile in recent:
            for error in profile.errors:
                error_types[error.type] = error_types.get(error.type, 0) + 1

        latest_system = recent[-1].system

        return {
            "time_window_hours": window_hours,
            "total_requests": count,
            "response_time": {
                "avg": average(total_times),
                "min": min(total_times),
                "max": max(total_times),
                "p95": percentile(total_times, 95),
                "p99": percentile(total_times, 99),
            },
            "ai": {
                "avg_embedding_time": average(p.ai.embedding_time for p in recent),
                "avg_chat_time": average(p.ai.chat_completion_time for p in recent),
                "total_tokens": sum(p.ai.total_tokens for p in recent),
                "avg_tokens_per_request": average(p.ai.total_tokens for p in recent),
            },
            "search": {
                "avg_vector_search_time": average(p.search.vector_search_time for p in recent),
                "avg_post_processing_time": average(
                    p.search.post_processing_time for p in recent
                ),
                "cache_hit_rate": sum(1 for p in recent if p.search.cache_hit) / count * 100,
                "avg_result_count": average(p.search.result_count for p in recent),
            },
            "database": {
                "avg_total_time": average(p.database.total_time for p in recent),
                "avg_queries_per_request": len(db_queries) / count,
                "cache_hit_rate": (
                    sum(1 for query in db_queries if query.cached) / len(db_queries) * 100
                    if db_queries
                    else 0.0
                ),
            },
            "cache": {
                "total_hits": cache_hits,
                "total_misses": cache_misses,
                "hit_rate": (
                    cache_hits / (cache_hits + cache_misses) * 100
                    if cache_hits + cache_misses
                    else 0.0
                ),
            },
            "errors": {
                "total_errors": sum(len(p.errors) for p in recent),
                "error_rate": sum(1 for p in recent if p.errors) / count * 100,
                "error_types": error_types,
            },
            "system": latest_system.to_dict() if latest_system else {},
        }

    def get_profiles_by(self, profile_filter: ProfileFilter | None = None, **criteria) -> list[RequestProfile]:
        """Completed profiles matching a ProfileFilter (or its fields as keyword arguments)."""
        profile_filter = profile_filter or ProfileFilter(**criteria)
        return [profile for profile in self._completed if profile_filter.matches(profile)]

    def cleanup(self, max_age_ms: float | None = None) -> int:
        """
        Drop completed profiles older than `max_age_ms`.

        Returns:
            Number of profiles removed
        """
        cutoff = self.clock() - (self.max_age_ms if max_age_ms is None else max_age_ms)
        before = len(self._completed)
        self._completed = [profile for profile in self._completed if profile.timestamp > cutoff]
        removed = before - len(self._completed)
        if removed:
            self._log(f"Removed {removed} old profiles")
        return removed

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def completed_count(self) -> int:
        return len(self._completed)

    # -------------------------------------------------------------- #
    # Utils
    # -------------------------------------------------------------- #

    def _log(self, message: str, level: str = "INFO") -> None:
        if self.services is None:
            return
        self.services.logging_service.log_nowait(f"[ProfilerManager] {message}", level)
