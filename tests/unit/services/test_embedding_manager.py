"""
Unit tests for the Embedding Manager Service.

Runs against the hashing embedding provider; `call_count` on the provider
shows whether a lookup reached it.
"""

import asyncio

import pytest

from regsearch.exceptions import EmbeddingError
from regsearch.services.embedding_manager.manager import EMBEDDING_CACHE_TTL_MS


@pytest.mark.unit
class TestEmbeddingManagerService:
    @pytest.fixture
    def embedding_manager(self, test_services):
        return test_services.embedding_manager

    @pytest.fixture
    def provider(self, test_services):
        return test_services.context.server_manager.embedding_client

    async def test_miss_then_hit(self, embedding_manager, provider):
        first = await embedding_manager.embed("management fee")
        second = await embedding_manager.embed("management fee")

        assert first == second
        assert provider.call_count == 1
        stats = embedding_manager.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["cache_size"] == 1

    async def test_normalized_variants_share_an_entry(self, embedding_manager, provider):
        await embedding_manager.embed("Management   Fee?")
        await embedding_manager.embed("management fee")

        assert provider.call_count == 1
        assert len(embedding_manager.cache) == 1

    async def test_vector_shape(self, embedding_manager, provider):
        vector = await embedding_manager.embed("repair reserve")
        assert len(vector) == provider.dimension
        assert sum(value * value for value in vector) == pytest.approx(1.0)

    async def test_empty_text_rejected(self, embedding_manager, provider):
        with pytest.raises(EmbeddingError):
            await embedding_manager.embed("  ？ ")
        assert provider.call_count == 0

    async def test_provider_failure_is_not_cached(self, embedding_manager, provider, monkeypatch):
        async def failing_embed(texts):
            raise RuntimeError("model unavailable")

        monkeypatch.setattr(provider, "embed", failing_embed)
        with pytest.raises(EmbeddingError) as exc_info:
            await embedding_manager.embed("board meeting")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert len(embedding_manager.cache) == 0

        monkeypatch.undo()
        vector = await embedding_manager.embed("board meeting")
        assert vector
        assert provider.call_count == 1

    async def test_empty_provider_result_raises(self, embedding_manager, provider, monkeypatch):
        async def empty_embed(texts):
            return []

        monkeypatch.setattr(provider, "embed", empty_embed)
        with pytest.raises(EmbeddingError):
            await embedding_manager.embed("board meeting")
        assert len(embedding_manager.cache) == 0

    async def test_returned_vector_is_a_copy(self, embedding_manager, provider):
        first = await embedding_manager.embed("management fee")
        expected = list(first)
        first[0] = 99.0
        first.append(1.0)

        second = await embedding_manager.embed("management fee")
        assert second == expected
        assert provider.call_count == 1

        second.clear()
        assert await embedding_manager.embed("management fee") == expected

    async def test_cancelled_provider_call_caches_nothing(
        self, embedding_manager, provider, monkeypatch
    ):
        entered = asyncio.Event()

        async def blocked_embed(texts):
            entered.set()
            await asyncio.Event().wait()

        monkeypatch.setattr(provider, "embed", blocked_embed)
        task = asyncio.create_task(embedding_manager.embed("board meeting"))
        await entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(embedding_manager.cache) == 0

    async def test_entry_expires_after_ttl(self, embedding_manager, provider, clock):
        await embedding_manager.embed("quorum")
        clock.advance(EMBEDDING_CACHE_TTL_MS)
        await embedding_manager.embed("quorum")
        assert provider.call_count == 1

        clock.advance(1)
        await embedding_manager.embed("quorum")
        assert provider.call_count == 2

    async def test_sweep_expired(self, embedding_manager, clock):
        await embedding_manager.embed("alpha")
        await embedding_manager.embed("beta")
        clock.advance(EMBEDDING_CACHE_TTL_MS + 1)

        assert embedding_manager.sweep_expired() == 2
        assert len(embedding_manager.cache) == 0
