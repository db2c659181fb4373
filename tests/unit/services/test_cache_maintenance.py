"""
Unit tests for the Cache Maintenance Service.
"""

import asyncio

import pytest

from regsearch.services.database_pool_manager.manager import QUERY_CACHE_TTL_MS
from regsearch.services.embedding_manager.manager import EMBEDDING_CACHE_TTL_MS
from regsearch.services.vector_search_manager.manager import SEARCH_CACHE_TTL_MS


@pytest.mark.unit
class TestCacheMaintenanceManagerService:
    @pytest.fixture
    def maintenance(self, test_services):
        return test_services.cache_maintenance_manager

    def test_entries_expire_in_ttl_order(self, test_services, maintenance, clock):
        test_services.embedding_manager.cache.set("quorum", (0.1, 0.2))
        test_services.vector_search_manager.cache.set("quorum|{}", ())
        test_services.database_pool_manager.cache.set("stats_SELECT 1_", [{"n": 1}])
        test_services.profiler_manager.start_profiling("req-1", "/api/search", "POST")
        test_services.profiler_manager.end_profiling("req-1")

        assert maintenance.sweep_once() == {
            "embedding_cache": 0,
            "search_cache": 0,
            "query_cache": 0,
            "query_metrics": 0,
            "profiles": 0,
        }

        clock.advance(QUERY_CACHE_TTL_MS + 1)
        removed = maintenance.sweep_once()
        assert removed["query_cache"] == 1
        assert removed["search_cache"] == 0

        clock.advance(SEARCH_CACHE_TTL_MS - QUERY_CACHE_TTL_MS)
        removed = maintenance.sweep_once()
        assert removed["search_cache"] == 1
        assert removed["embedding_cache"] == 0

        clock.advance(EMBEDDING_CACHE_TTL_MS - SEARCH_CACHE_TTL_MS)
        removed = maintenance.sweep_once()
        assert removed["embedding_cache"] == 1
        assert removed["profiles"] == 1

        assert maintenance.passes == 4

    async def test_metrics_window_is_compacted(self, test_services, maintenance):
        db_pool = test_services.database_pool_manager
        for _ in range(510):
            await db_pool.read("SELECT 1 AS one")

        assert maintenance.sweep_once()["query_metrics"] == 10
        assert len(db_pool.metrics) == 500

    async def test_background_loop(self, maintenance):
        maintenance.interval = 0.01

        task = maintenance.start()
        assert maintenance.start() is task
        await asyncio.sleep(0.1)

        assert maintenance.is_running
        assert maintenance.passes >= 1

        await maintenance.stop()
        assert not maintenance.is_running
        assert task.cancelled()

    async def test_loop_exits_on_shutdown(self, test_context, maintenance):
        maintenance.interval = 0.01
        task = maintenance.start()

        test_context.mark_shutdown_started()
        await asyncio.wait_for(task, timeout=1.0)

        assert not maintenance.is_running

    async def test_stop_without_start(self, maintenance):
        await maintenance.stop()
        assert not maintenance.is_running
