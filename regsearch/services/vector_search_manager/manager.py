"""
Vector Search Manager Service.

Answers a query with ranked regulation chunks:

1. Search result cache lookup (30 min TTL)
2. Query embedding through the embedding manager (24 h TTL cache)
3. Broad retrieval from the vector store with a relaxed threshold and
   three times the requested number of candidates
4. Re-scoring, strict filtering and ordering (see ranking.py)
5. Cache write when at least one result survives

Store failures surface as VectorStoreError, any other failure after the
embedding step as SearchError. Partial results are never returned.

Usage:
    response = await vector_search_manager.search(
        "管理費とは？", SearchOptions(scope_id="union-1")
    )
    for result in response.results:
        print(result.score, result.text[:40])
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.exceptions import EmbeddingError, SearchError, VectorStoreError
from regsearch.request_context import get_request_id
from regsearch.server.vector_db_collections import REGULATION_CHUNKS_COLLECTION
from regsearch.services.common.ttl_cache import TTLCache
from regsearch.services.manager import BaseVectorSearchManagerService
from regsearch.services.vector_search_manager.ranking import (
    CANDIDATE_MULTIPLIER,
    SearchOptions,
    SearchResult,
    build_search_cache_key,
    compute_dynamic_threshold,
    compute_relaxed_threshold,
    rank_results,
)
from regsearch.utils import elapsed_ms, normalize_text, now_ms, truncate_for_log

SEARCH_CACHE_TTL_MS = 30 * 60 * 1000


@dataclass
class SearchMetrics:
    total_time_ms: float = 0.0
    embedding_time_ms: float = 0.0
    vector_search_time_ms: float = 0.0
    post_process_time_ms: float = 0.0
    cache_hit: bool = False
    results_count: int = 0  # raw candidates from the store
    filtered_count: int = 0  # results returned


@dataclass
class SearchResponse:
    results: list[SearchResult] = field(default_factory=list)
    metrics: SearchMetrics = field(default_factory=SearchMetrics)


def _copy_results(results: list[SearchResult]) -> list[SearchResult]:
    """Results with their own metadata dicts, so callers never share cache state."""
    return [replace(result, metadata=copy.deepcopy(result.metadata)) for result in results]


# -------------------------------------------------------------- #
# Vector Search Manager
# -------------------------------------------------------------- #


class VectorSearchManagerService(BaseVectorSearchManagerService):
    """Two-phase vector search with re-ranking and a result cache."""

    def __init__(
        self,
        context: Context,
        collection: str = REGULATION_CHUNKS_COLLECTION,
        ttl_ms: float = SEARCH_CACHE_TTL_MS,
        clock: Callable[[], float] = now_ms,
    ):
        super().__init__(context)
        self.collection = collection
        self.cache: TTLCache[list[SearchResult]] = TTLCache("search", ttl_ms, clock=clock)

        self._total_searches = 0
        self._cache_hits = 0
        self._total_search_time = 0.0

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)
        await self.services.logging_service.info(
            f"[VectorSearchManager] Started on collection '{self.collection}'"
        )

    async def on_close(self) -> None:
        self.cache.clear()
        await self.services.logging_service.info("[VectorSearchManager] Closed")

    # -------------------------------------------------------------- #
    # Search
    # -------------------------------------------------------------- #

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        request_id: str | None = None,
    ) -> SearchResponse:
        """
        Search regulation chunks.

        Args:
            query: Query text
            options: Search options (defaults: threshold 0.3, 5 results)
            request_id: Request to attribute timings to (defaults to the current one)

        Returns:
            SearchResponse with ranked results and timing metrics

        Raises:
            SearchError: Empty query or post-processing failure
            EmbeddingError: The query could not be embedded
            VectorStoreError: The vector store query failed
        """
        options = options or SearchOptions()
        request_id = request_id or get_request_id()
        profiler = self.services.profiler_manager
        overall_start = time.perf_counter()

        normalized_query = normalize_text(query)
        if not normalized_query:
            raise SearchError("Query is empty", {"query": query})

        self._total_searches += 1
        cache_key = build_search_cache_key(query, options)

        # Phase 0: result cache
        if options.enable_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                self._cache_hits += 1
                metrics = SearchMetrics(
                    total_time_ms=elapsed_ms(overall_start),
                    cache_hit=True,
                    results_count=len(cached),
                    filtered_count=len(cached),
                )
                self._total_search_time += metrics.total_time_ms
                profiler.record_cache_operation(
                    request_id, "hit", cache_key, metrics.total_time_ms
                )
                profiler.record_search_processing(
                    request_id, 0.0, 0.0, len(cached), True, [r.score for r in cached]
                )
                await self.services.logging_service.debug(
                    f"[VectorSearchManager] Cache hit for '{truncate_for_log(normalized_query)}'"
                )
                return SearchResponse(results=_copy_results(cached), metrics=metrics)

            profiler.record_cache_operation(request_id, "miss", cache_key, 0.0)

        try:
            # Phase 1: query embedding
            embedding_start = time.perf_counter()
            embedding = await self.services.embedding_manager.embed(query, request_id=request_id)
            embedding_time = elapsed_ms(embedding_start)

            # Phase 2: broad retrieval
            dynamic_threshold = compute_dynamic_threshold(normalized_query, options.threshold)
            relaxed_threshold = compute_relaxed_threshold(dynamic_threshold)

            vector_start = time.perf_counter()
            try:
                matches = await self.vector_db.query(
                    self.collection,
                    embedding,
                    threshold=relaxed_threshold,
                    n_results=options.max_results * CANDIDATE_MULTIPLIER,
                )
            except Exception as e:
                raise VectorStoreError(
                    "Vector store query failed",
                    operation="query",
                    details={"collection": self.collection, "error": str(e)},
                ) from e
            vector_search_time = elapsed_ms(vector_start)

            # Phase 3: re-scoring and strict filtering
            post_start = time.perf_counter()
            try:
                results = rank_results(
                    matches,
                    normalized_query,
                    threshold=dynamic_threshold,
                    max_results=options.max_results,
                    scope_id=options.scope_id,
                    prioritize_definitions=options.prioritize_definitions,
                )
            except Exception as e:
                raise SearchError(
                    "Post-processing of search candidates failed", {"error": str(e)}
                ) from e
            post_process_time = elapsed_ms(post_start)

        except (EmbeddingError, VectorStoreError, SearchError) as e:
            profiler.record_error(request_id, e, type(e).__name__)
            await self.services.logging_service.error(f"[VectorSearchManager] Search failed: {e}")
            raise

        metrics = SearchMetrics(
            total_time_ms=elapsed_ms(overall_start),
            embedding_time_ms=embedding_time,
            vector_search_time_ms=vector_search_time,
            post_process_time_ms=post_process_time,
            cache_hit=False,
            results_count=len(matches),
            filtered_count=len(results),
        )
        self._total_search_time += metrics.total_time_ms

        if options.enable_cache and results:
            self.cache.set(cache_key, _copy_results(results))
            profiler.record_cache_operation(request_id, "set", cache_key, 0.0)

        profiler.record_search_processing(
            request_id,
            vector_search_time,
            post_process_time,
            len(results),
            False,
            [result.score for result in results],
        )

        await self.services.logging_service.info(
            f"[VectorSearchManager] '{truncate_for_log(normalized_query)}' -> "
            f"{len(results)}/{len(matches)} results in {metrics.total_time_ms:.2f}ms "
            f"(embedding={embedding_time:.2f}ms, vector={vector_search_time:.2f}ms, "
            f"post={post_process_time:.2f}ms, threshold={dynamic_threshold})"
        )
        return SearchResponse(results=results, metrics=metrics)

    # -------------------------------------------------------------- #
    # Stats and Maintenance
    # -------------------------------------------------------------- #

    def get_stats(self) -> dict[str, Any]:
        searches = self._total_searches
        return {
            "total_searches": searches,
            "cache_hits": self._cache_hits,
            "cache_hit_rate": self._cache_hits / searches * 100 if searches else 0.0,
            "total_search_time": self._total_search_time,
            "average_search_time": self._total_search_time / searches if searches else 0.0,
            "embedding_cache_size": len(self.services.embedding_manager.cache),
            "search_cache_size": len(self.cache),
        }

    def clear_cache(self) -> None:
        """Drop cached search results and cached embeddings."""
        self.cache.clear()
        self.services.embedding_manager.clear_cache()
        self.services.logging_service.log_nowait("[VectorSearchManager] Caches cleared")

    def sweep_expired(self) -> int:
        return self.cache.sweep()

    # -------------------------------------------------------------- #
    # Properties
    # -------------------------------------------------------------- #

    @property
    def vector_db(self):
        return self.server.vector_db_client
