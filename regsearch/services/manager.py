from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from regsearch.context import Context


# -------------------------------------------------------------- #
# Services Manager Class
# -------------------------------------------------------------- #


class ServicesManager:
    """Manager for handling multiple service instances."""

    def __init__(
        self,
        context: Context,
        logging_service: BaseAsyncLoggingService,
        profiler_manager: BaseProfilerManagerService,
        database_pool_manager: BaseDatabasePoolManagerService,
        embedding_manager: BaseEmbeddingManagerService,
        vector_search_manager: BaseVectorSearchManagerService,
        ingestion_manager: BaseIngestionManagerService,
        cache_maintenance_manager: BaseCacheMaintenanceManagerService | None = None,
    ):
        self.context = context
        self.server = context.server_manager

        self.logging_service = logging_service

        # Instrumentation
        self.profiler_manager = profiler_manager

        # DB interfaces
        self.database_pool_manager = database_pool_manager

        # Retrieval
        self.embedding_manager = embedding_manager
        self.vector_search_manager = vector_search_manager
        self.ingestion_manager = ingestion_manager

        # Background maintenance
        self.cache_maintenance_manager = cache_maintenance_manager

        self._initialized = False
        self._shutdown_started = False

    async def initialize_all(self) -> None:
        """Initialize all service managers in dependency order."""

        # Logging
        await self.logging_service.on_start(self)

        # Instrumentation
        await self.profiler_manager.on_start(self)

        # DB interfaces
        await self.database_pool_manager.on_start(self)

        # Retrieval
        await self.embedding_manager.on_start(self)
        await self.vector_search_manager.on_start(self)
        await self.ingestion_manager.on_start(self)

        # Background maintenance
        if self.cache_maintenance_manager:
            await self.cache_maintenance_manager.on_start(self)

        self._initialized = True
        await self.logging_service.info("All services initialized")

    async def shutdown_all(self, timeout: float = 30.0) -> None:
        """
        Gracefully shutdown all service managers. Safe to call more than once;
        only the first call does any work.

        This method ensures that:
        1. No new work is accepted
        2. Background sweeps are cancelled
        3. Retrieval managers release their caches
        4. Pooled database connections are released
        5. Servers are disconnected and logs are flushed

        Args:
            timeout: Maximum time in seconds to wait for each phase
        """
        if self._shutdown_started:
            return
        self._shutdown_started = True

        await self.logging_service.info("=" * 60)
        await self.logging_service.info("Starting graceful shutdown of all services...")

        # Mark context as shutting down to prevent new operations
        if self.context:
            self.context.mark_shutdown_started()
            await self.logging_service.info("✓ Shutdown flag set - no new operations will start")

        try:
            # Phase 1: Stop background sweeps
            await self.logging_service.info("Phase 1: Stopping cache maintenance...")
            if self.cache_maintenance_manager:
                await asyncio.wait_for(self.cache_maintenance_manager.on_close(), timeout=timeout)
                await self.logging_service.info("✓ Cache maintenance stopped")

            # Phase 2: Close retrieval managers
            await self.logging_service.info("Phase 2: Closing retrieval managers...")
            await self.ingestion_manager.on_close()
            await self.vector_search_manager.on_close()
            await self.embedding_manager.on_close()
            await self.logging_service.info("✓ Retrieval managers closed")

            # Phase 3: Release pooled connections
            await self.logging_service.info("Phase 3: Closing database pool...")
            await asyncio.wait_for(self.database_pool_manager.on_close(), timeout=timeout)
            await self.logging_service.info("✓ Database pool closed")

            # Phase 4: Profiler
            await self.profiler_manager.on_close()

            # Phase 5: Disconnect from all servers (SQL, Vector DB, Embedding provider)
            await self.logging_service.info("Phase 5: Disconnecting from all servers...")
            if self.context and self.context.server_manager:
                await asyncio.wait_for(
                    self.context.server_manager.disconnect_all(), timeout=timeout
                )
                await self.logging_service.info("✓ All servers disconnected")

            await self.logging_service.info("✓ Graceful shutdown completed successfully")
            await self.logging_service.info("=" * 60)

        except asyncio.TimeoutError:
            await self.logging_service.error(
                f"⚠️  Shutdown timeout exceeded ({timeout}s) - forcing shutdown"
            )
        except Exception as e:
            await self.logging_service.error(f"⚠️  Error during shutdown: {e}")

        # Phase 6: Always flush and close logging (even if there were errors)
        try:
            await asyncio.wait_for(self.logging_service.on_close(), timeout=5.0)
        except asyncio.TimeoutError:
            pass  # Don't wait forever for logging to flush

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown_started


# -------------------------------------------------------------- #
# Base Service Manager Class
# -------------------------------------------------------------- #


class Manager(ABC):
    """Base class for all manager services."""

    def __init__(self, context: Context):
        self.context = context
        self.server = context.server_manager
        self.services: ServicesManager | None = None

        # check if server has been initialized
        if self.server is not None and not self.server.is_initialized:
            raise RuntimeError(
                "ServerManager must be initialized before creating Manager instances."
            )

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        """Actions to perform on manager start."""
        self.services = services

    async def on_close(self) -> None:
        """Actions to perform on manager close."""
        pass


# -------------------------------------------------------------- #
# Specialized Manager Classes
# -------------------------------------------------------------- #


class BaseAsyncLoggingService(Manager):
    """Base class for async logging service."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def log(self, message: str, level: str = "INFO") -> None:
        """Queue a log message."""
        pass

    @abstractmethod
    def log_nowait(self, message: str, level: str = "INFO") -> None:
        """Queue a log message from synchronous code."""
        pass

    @abstractmethod
    async def debug(self, message: str) -> None:
        pass

    @abstractmethod
    async def info(self, message: str) -> None:
        pass

    @abstractmethod
    async def warning(self, message: str) -> None:
        pass

    @abstractmethod
    async def error(self, message: str) -> None:
        pass

    @abstractmethod
    async def critical(self, message: str) -> None:
        pass


class BaseProfilerManagerService(Manager):
    """Base class for the request performance profiler."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    def start_profiling(self, request_id: str, route: str, method: str) -> None:
        pass

    @abstractmethod
    def end_profiling(self, request_id: str, content_length: int | None = None) -> Any:
        pass

    @abstractmethod
    def get_performance_summary(self, window_ms: float) -> dict[str, Any]:
        pass

    @abstractmethod
    def cleanup(self, max_age_ms: float | None = None) -> int:
        pass


class BaseDatabasePoolManagerService(Manager):
    """Base class for pooled relational access with a read cache."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def read(self, sql: Any, params: list | None = None, cache_options: Any = None) -> list:
        pass

    @abstractmethod
    async def write(self, sql: Any, params: list | None = None, tables: list[str] | None = None) -> list:
        pass

    @abstractmethod
    async def transaction(self, callback: Callable[[Any], Awaitable[Any]]) -> Any:
        pass

    @abstractmethod
    def get_pool_stats(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def get_detailed_metrics(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def sweep_expired(self) -> int:
        pass

    @abstractmethod
    def compact_metrics(self) -> int:
        pass


class BaseEmbeddingManagerService(Manager):
    """Base class for the cached embedding generator."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        pass

    @abstractmethod
    def sweep_expired(self) -> int:
        pass


class BaseVectorSearchManagerService(Manager):
    """Base class for vector search and ranking."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def search(self, query: str, options: Any = None) -> Any:
        pass

    @abstractmethod
    def get_stats(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def sweep_expired(self) -> int:
        pass


class BaseIngestionManagerService(Manager):
    """Base class for document ingestion."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def ingest(
        self,
        document_bytes: bytes,
        source_id: str,
        document_label: str,
        scope_id: str | None = None,
    ) -> Any:
        pass


class BaseCacheMaintenanceManagerService(Manager):
    """Base class for the periodic cache sweep."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    def sweep_once(self) -> dict[str, int]:
        pass
