"""
Cache Maintenance Service.

Periodic sweep started by the host once services are initialized. Each pass
drops expired embedding, search and query cache entries, compacts the query
metrics window and removes old request profiles. A pass never awaits, so it
cannot interleave with a request halfway through a cache update.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.services.manager import BaseCacheMaintenanceManagerService

DEFAULT_SWEEP_INTERVAL = 5 * 60  # seconds
PROFILE_MAX_AGE_MS = 24 * 60 * 60 * 1000


class CacheMaintenanceManagerService(BaseCacheMaintenanceManagerService):
    """Background sweeper for the process-local caches."""

    def __init__(
        self,
        context: Context,
        interval: float = DEFAULT_SWEEP_INTERVAL,
        profile_max_age_ms: float = PROFILE_MAX_AGE_MS,
    ):
        super().__init__(context)
        self.interval = interval
        self.profile_max_age_ms = profile_max_age_ms
        self.passes = 0
        self._sweep_task: asyncio.Task | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)
        await self.services.logging_service.info(
            f"[CacheMaintenance] Ready (interval={self.interval}s)"
        )

    async def on_close(self) -> None:
        await self.stop()
        await self.services.logging_service.info(
            f"[CacheMaintenance] Stopped after {self.passes} passes"
        )

    # -------------------------------------------------------------- #
    # Background Task
    # -------------------------------------------------------------- #

    def start(self) -> asyncio.Task:
        """Start the sweep loop; calling it again returns the running task."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
        return self._sweep_task

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        while not self.context.is_shutting_down():
            await asyncio.sleep(self.interval)
            try:
                self.sweep_once()
            except Exception as e:
                self.services.logging_service.log_nowait(
                    f"[CacheMaintenance] Sweep failed: {e}", "ERROR"
                )

    # -------------------------------------------------------------- #
    # Sweep
    # -------------------------------------------------------------- #

    def sweep_once(self) -> dict[str, int]:
        """
        Run one maintenance pass.

        Returns:
            Number of entries removed per cache / window
        """
        services = self.services
        removed = {
            "embedding_cache": services.embedding_manager.sweep_expired(),
            "search_cache": services.vector_search_manager.sweep_expired(),
            "query_cache": services.database_pool_manager.sweep_expired(),
            "query_metrics": services.database_pool_manager.compact_metrics(),
            "profiles": services.profiler_manager.cleanup(self.profile_max_age_ms),
        }
        self.passes += 1

        if any(removed.values()):
            services.logging_service.log_nowait(f"[CacheMaintenance] Swept {removed}")
        else:
            services.logging_service.log_nowait("[CacheMaintenance] Nothing to sweep", "DEBUG")
        return removed
