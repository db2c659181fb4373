"""
Unit tests for the Vector Search Manager Service.

Chunks are seeded straight into the in-memory ChromaDB collection. Queries
reuse the exact chunk text so the hashing provider yields a similarity of 1.
"""

import asyncio

import pytest

from regsearch.exceptions import SearchError, VectorStoreError
from regsearch.services.vector_search_manager.manager import SEARCH_CACHE_TTL_MS
from regsearch.services.vector_search_manager.ranking import SearchOptions

FEE_TEXT = "The management fee is paid monthly to the association account"
PARKING_TEXT = "Parking spaces are allocated by lottery every second year"
MEETING_TEXT = "The general meeting approves the annual budget of the association"


async def _seed(services, chunk_id: str, text: str, scope_id: str | None = None) -> None:
    embedding = await services.embedding_manager.embed(text)
    await services.context.server_manager.vector_db_client.upsert(
        services.vector_search_manager.collection,
        ids=[chunk_id],
        embeddings=[embedding],
        documents=[text],
        metadatas=[
            {
                "source_document_id": "rules-2024",
                "document_label": "rules.pdf",
                "scope_id": scope_id or "",
                "chunk_index": 0,
                "char_count": len(text),
                "importance": 1,
            }
        ],
    )


@pytest.mark.unit
class TestVectorSearchManagerService:
    @pytest.fixture
    async def seeded(self, test_services):
        await _seed(test_services, "fee0000000000001", FEE_TEXT)
        await _seed(test_services, "park000000000001", PARKING_TEXT)
        await _seed(test_services, "meet000000000001", MEETING_TEXT)
        return test_services

    @pytest.fixture
    def store_calls(self, seeded, monkeypatch):
        """Record every call that reaches the vector store."""
        vector_db = seeded.context.server_manager.vector_db_client
        original_query = vector_db.query
        calls = []

        async def counting_query(collection, embedding, threshold, n_results):
            calls.append({"threshold": threshold, "n_results": n_results})
            return await original_query(collection, embedding, threshold, n_results)

        monkeypatch.setattr(vector_db, "query", counting_query)
        return calls

    async def test_exact_text_ranks_first(self, seeded):
        response = await seeded.vector_search_manager.search(FEE_TEXT)

        assert response.results[0].chunk_id == "fee0000000000001"
        assert response.results[0].score == pytest.approx(1.0)
        assert response.results[0].metadata["document_label"] == "rules.pdf"
        assert response.metrics.cache_hit is False
        assert response.metrics.filtered_count == len(response.results)

    async def test_broad_phase_uses_relaxed_threshold(self, seeded, store_calls):
        # 61 characters: long query, 0.3 -> 0.2 strict -> 0.1 relaxed
        await seeded.vector_search_manager.search(FEE_TEXT)
        assert store_calls == [{"threshold": 0.1, "n_results": 15}]

    async def test_second_search_is_served_from_cache(self, seeded, store_calls):
        provider = seeded.context.server_manager.embedding_client
        first = await seeded.vector_search_manager.search(FEE_TEXT)
        provider_calls = provider.call_count

        second = await seeded.vector_search_manager.search(FEE_TEXT.upper() + "?")

        assert second.metrics.cache_hit is True
        assert second.results == first.results
        assert len(store_calls) == 1
        assert provider.call_count == provider_calls

    async def test_cached_results_expire(self, seeded, store_calls, clock):
        await seeded.vector_search_manager.search(FEE_TEXT)
        clock.advance(SEARCH_CACHE_TTL_MS + 1)

        response = await seeded.vector_search_manager.search(FEE_TEXT)

        assert response.metrics.cache_hit is False
        assert len(store_calls) == 2

    async def test_cached_results_are_isolated_from_callers(self, seeded):
        first = await seeded.vector_search_manager.search(FEE_TEXT)
        first.results[0].metadata["document_label"] = "tampered.pdf"
        first.results.clear()

        second = await seeded.vector_search_manager.search(FEE_TEXT)
        assert second.metrics.cache_hit is True
        assert second.results[0].metadata["document_label"] == "rules.pdf"

        second.results[0].metadata["document_label"] = "tampered.pdf"
        third = await seeded.vector_search_manager.search(FEE_TEXT)
        assert third.results[0].metadata["document_label"] == "rules.pdf"

    async def test_cancelled_search_caches_nothing(self, test_services, monkeypatch):
        provider = test_services.context.server_manager.embedding_client
        entered = asyncio.Event()

        async def blocked_embed(texts):
            entered.set()
            await asyncio.Event().wait()

        monkeypatch.setattr(provider, "embed", blocked_embed)
        task = asyncio.create_task(test_services.vector_search_manager.search(FEE_TEXT))
        await entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(test_services.embedding_manager.cache) == 0
        assert len(test_services.vector_search_manager.cache) == 0

    async def test_cache_can_be_bypassed(self, seeded, store_calls):
        options = SearchOptions(enable_cache=False)
        await seeded.vector_search_manager.search(FEE_TEXT, options)
        await seeded.vector_search_manager.search(FEE_TEXT, options)

        assert len(store_calls) == 2
        assert len(seeded.vector_search_manager.cache) == 0

    async def test_scope_filter(self, test_services):
        await _seed(test_services, "scope00000000001", FEE_TEXT, scope_id="union-1")
        await _seed(test_services, "scope00000000002", FEE_TEXT, scope_id="union-2")

        response = await test_services.vector_search_manager.search(
            FEE_TEXT, SearchOptions(scope_id="union-1")
        )

        assert [result.chunk_id for result in response.results] == ["scope00000000001"]

    async def test_max_results(self, seeded):
        response = await seeded.vector_search_manager.search(
            FEE_TEXT, SearchOptions(threshold=0.0, max_results=1)
        )
        assert len(response.results) == 1

    async def test_empty_query_rejected(self, seeded):
        with pytest.raises(SearchError):
            await seeded.vector_search_manager.search(" ？ ")

    async def test_store_failure_raises_and_caches_nothing(self, seeded, monkeypatch):
        vector_db = seeded.context.server_manager.vector_db_client

        async def broken_query(*args, **kwargs):
            raise ConnectionError("chroma is down")

        monkeypatch.setattr(vector_db, "query", broken_query)

        with pytest.raises(VectorStoreError) as exc_info:
            await seeded.vector_search_manager.search(FEE_TEXT)

        assert exc_info.value.details["operation"] == "query"
        assert len(seeded.vector_search_manager.cache) == 0

    async def test_no_results_are_not_cached(self, test_services):
        response = await test_services.vector_search_manager.search(FEE_TEXT)

        assert response.results == []
        assert len(test_services.vector_search_manager.cache) == 0

    async def test_concurrent_identical_misses(self, seeded):
        first, second = await asyncio.gather(
            seeded.vector_search_manager.search(FEE_TEXT),
            seeded.vector_search_manager.search(FEE_TEXT),
        )

        assert first.results == second.results
        assert len(seeded.vector_search_manager.cache) == 1

    async def test_stats_and_clear_cache(self, seeded):
        await seeded.vector_search_manager.search(FEE_TEXT)
        await seeded.vector_search_manager.search(FEE_TEXT)

        stats = seeded.vector_search_manager.get_stats()
        assert stats["total_searches"] == 2
        assert stats["cache_hits"] == 1
        assert stats["cache_hit_rate"] == 50.0
        assert stats["search_cache_size"] == 1

        seeded.vector_search_manager.clear_cache()
        assert len(seeded.vector_search_manager.cache) == 0
        assert len(seeded.embedding_manager.cache) == 0

    async def test_timings_attributed_to_profile(self, seeded):
        profiler = seeded.profiler_manager

        async with profiler.profile("req-search-1", "/api/search", "POST"):
            await seeded.vector_search_manager.search(FEE_TEXT)

        (profile,) = profiler.get_profiles_by(route="/api/search")
        assert profile.search.result_count >= 1
        assert profile.search.cache_hit is False
        assert profile.cache.misses >= 1
