"""
Embedding Manager Service.

Wraps the embedding provider with a TTL cache keyed by normalized text.
A hit returns the cached vector without touching the provider; a miss calls
the provider once and caches the result. Vectors are cached as tuples and
handed out as fresh lists. Provider failures surface as
EmbeddingError and leave the cache untouched. Nothing is retried here.

Usage:
    vector = await embedding_manager.embed("管理費とは？")
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.exceptions import EmbeddingError
from regsearch.request_context import get_request_id
from regsearch.services.common.ttl_cache import TTLCache
from regsearch.services.manager import BaseEmbeddingManagerService
from regsearch.utils import elapsed_ms, normalize_text, now_ms, truncate_for_log

EMBEDDING_CACHE_TTL_MS = 24 * 60 * 60 * 1000


class EmbeddingManagerService(BaseEmbeddingManagerService):
    """Cached embedding generator."""

    def __init__(
        self,
        context: Context,
        ttl_ms: float = EMBEDDING_CACHE_TTL_MS,
        clock: Callable[[], float] = now_ms,
    ):
        super().__init__(context)
        self.cache: TTLCache[tuple[float, ...]] = TTLCache("embedding", ttl_ms, clock=clock)

        self._hits = 0
        self._misses = 0
        self._provider_calls = 0

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)
        await self.services.logging_service.info(
            f"[EmbeddingManager] Started with provider '{self.provider.name}' "
            f"(model={self.provider.model_name})"
        )

    async def on_close(self) -> None:
        size = len(self.cache)
        self.cache.clear()
        await self.services.logging_service.info(
            f"[EmbeddingManager] Closed, dropped {size} cached embeddings"
        )

    # -------------------------------------------------------------- #
    # Embedding
    # -------------------------------------------------------------- #

    async def embed(self, text: str, request_id: str | None = None) -> list[float]:
        """
        Embed text, using the cache when possible.

        Args:
            text: Text to embed
            request_id: Request to attribute timings to (defaults to the current one)

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: If the text is empty after normalization or the provider fails
        """
        request_id = request_id or get_request_id()
        profiler = self.services.profiler_manager
        key = normalize_text(text)

        if not key:
            raise EmbeddingError("Cannot embed empty text", {"text": truncate_for_log(text)})

        lookup_start = time.perf_counter()
        cached = self.cache.get(key)
        if cached is not None:
            self._hits += 1
            profiler.record_cache_operation(request_id, "hit", key, elapsed_ms(lookup_start))
            return list(cached)

        self._misses += 1
        profiler.record_cache_operation(request_id, "miss", key, elapsed_ms(lookup_start))

        provider_start = time.perf_counter()
        self._provider_calls += 1
        try:
            vectors = await self.provider.embed([key])
        except Exception as e:
            await self.services.logging_service.error(
                f"[EmbeddingManager] Provider failed for '{truncate_for_log(key)}': {e}"
            )
            raise EmbeddingError(
                "Embedding provider failed",
                {"provider": self.provider.name, "error": str(e)},
            ) from e

        if not vectors or not vectors[0]:
            raise EmbeddingError(
                "Embedding provider returned no vector", {"provider": self.provider.name}
            )

        duration = elapsed_ms(provider_start)
        profiler.record_ai_processing(request_id, "embedding", duration)

        vector = tuple(vectors[0])
        self.cache.set(key, vector)
        profiler.record_cache_operation(request_id, "set", key, 0.0)

        await self.services.logging_service.debug(
            f"[EmbeddingManager] Generated embedding in {duration:.2f}ms "
            f"for '{truncate_for_log(key)}'"
        )
        return list(vector)

    # -------------------------------------------------------------- #
    # Maintenance
    # -------------------------------------------------------------- #

    def sweep_expired(self) -> int:
        return self.cache.sweep()

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "provider_calls": self._provider_calls,
            "hit_rate": self._hits / lookups * 100 if lookups else 0.0,
            "cache_size": len(self.cache),
        }

    # -------------------------------------------------------------- #
    # Properties
    # -------------------------------------------------------------- #

    @property
    def provider(self):
        return self.server.embedding_client
