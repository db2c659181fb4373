"""
Backend connections for the retrieval core.

The ServerManager owns the three backends every manager talks to: the
relational store, the vector store and the embedding provider. They are
connected in that order and released in the reverse order.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from regsearch.server.services import (
    BaseServerHandler,
    EmbeddingProviderHandler,
    SQLDatabase,
    VectorDBDatabase,
)

if TYPE_CHECKING:
    from regsearch.context import Context

logger = logging.getLogger(__name__)

# -------------------------------------------------------------- #
# Server Manager
# -------------------------------------------------------------- #


class ServerManager:
    """Connects, checks and releases the storage and embedding backends."""

    def __init__(
        self,
        context: "Context",
        sql_client: SQLDatabase,
        vector_db_client: VectorDBDatabase,
        embedding_client: EmbeddingProviderHandler,
    ):
        self.context = context
        self._initialized = False
        self._backends: dict[str, BaseServerHandler] = {
            "sql": sql_client,
            "vector_db": vector_db_client,
            "embedding": embedding_client,
        }

    # ------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------ #

    async def connect_all(self) -> None:
        """
        Connect every backend and run its startup actions (tables, collections).

        If one backend fails, the ones already connected are released again
        before the error propagates.
        """
        started: list[BaseServerHandler] = []
        try:
            for role, backend in self._backends.items():
                await backend.connect()
                started.append(backend)
                await backend.on_startup()
                logger.info(f"[ServerManager] {role} backend '{backend.name}' ready")
        except BaseException:
            logger.error("[ServerManager] Startup failed, releasing connected backends")
            await self._release(reversed(started))
            raise

        self._initialized = True
        logger.info("[ServerManager] All backends connected")

    async def disconnect_all(self) -> None:
        """Release every connected backend, last connected first."""
        await self._release(reversed(list(self._backends.values())))
        self._initialized = False
        logger.info("[ServerManager] All backends disconnected")

    async def health_check_all(self) -> dict[str, bool]:
        """Probe every backend concurrently; a check that raises counts as unhealthy."""
        roles = list(self._backends)
        outcomes = await asyncio.gather(
            *(self._backends[role].health_check() for role in roles), return_exceptions=True
        )

        health = {}
        for role, outcome in zip(roles, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"[ServerManager] {role} health check raised: {outcome}")
                outcome = False
            health[role] = bool(outcome)
        return health

    async def _release(self, backends) -> None:
        for backend in backends:
            if not backend.is_connected:
                continue
            try:
                await backend.on_close()
            finally:
                await backend.disconnect()
            logger.info(f"[ServerManager] Disconnected '{backend.name}'")

    # ------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------ #

    @property
    def sql_client(self) -> SQLDatabase:
        return self._backends["sql"]

    @property
    def vector_db_client(self) -> VectorDBDatabase:
        return self._backends["vector_db"]

    @property
    def embedding_client(self) -> EmbeddingProviderHandler:
        return self._backends["embedding"]

    @property
    def is_initialized(self) -> bool:
        return self._initialized
