"""
Unit tests for the Async Logging Service.
"""

import pytest

from regsearch.request_context import reset_request_id, set_request_id
from regsearch.services.logger import AsyncLoggingService


@pytest.fixture
async def log_service(test_context, test_server_manager, tmp_path):
    service = AsyncLoggingService(
        test_context,
        log_dir=str(tmp_path / "logs"),
        log_file="run.log",
        console_output=False,
        min_level="INFO",
    )
    await service.on_start(None)
    yield service
    await service.on_close()


def read_lines(service) -> list[str]:
    return service.log_path.read_text(encoding="utf-8").splitlines()


@pytest.mark.unit
class TestAsyncLoggingService:
    async def test_close_flushes_queued_lines(self, log_service):
        await log_service.info("[IngestionManager] Ingested rules-2024")
        await log_service.error("[VectorSearchManager] Search failed")
        await log_service.on_close()

        lines = read_lines(log_service)
        assert "Logging to" in lines[0]
        assert lines[1].endswith("[INFO] [IngestionManager] Ingested rules-2024")
        assert lines[2].endswith("[ERROR] [VectorSearchManager] Search failed")
        assert log_service.pending == 0

    async def test_lines_below_min_level_are_dropped(self, log_service):
        await log_service.debug("cache lookup")
        log_service.log_nowait("cache cleared", "DEBUG")
        await log_service.warning("slow query")
        await log_service.critical("pool exhausted")
        await log_service.on_close()

        text = log_service.log_path.read_text(encoding="utf-8")
        assert "cache lookup" not in text
        assert "cache cleared" not in text
        assert "[WARNING] slow query" in text
        assert "[CRITICAL] pool exhausted" in text

    async def test_request_id_is_tagged(self, log_service):
        token = set_request_id("req-42")
        try:
            await log_service.info("inside request")
        finally:
            reset_request_id(token)
        await log_service.info("outside request")
        await log_service.on_close()

        lines = read_lines(log_service)
        assert lines[1].endswith("[INFO] [req=req-42] inside request")
        assert lines[2].endswith("[INFO] outside request")

    async def test_lines_queued_after_close_are_written(self, log_service):
        await log_service.on_close()
        log_service.log_nowait("[CacheMaintenance] late sweep")
        await log_service.on_close()

        assert read_lines(log_service)[-1].endswith("[INFO] [CacheMaintenance] late sweep")

    def test_default_file_name(self, test_context, test_server_manager):
        service = AsyncLoggingService(test_context, log_dir="logs", use_timestamp=False)
        assert service.log_path.name == "regsearch.log"
