"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides
fixtures and configuration that can be used across all tests.
Every fixture runs against the TESTING backend set: in-memory SQLite,
in-memory ChromaDB and the hashing embedding provider.
"""

from datetime import datetime

import pytest

from regsearch.config import Config
from regsearch.constructor import ServerManagerType
from regsearch.context import Context
from regsearch.server.constructor import construct_server_manager
from regsearch.services.constructor import construct_services_manager

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


def pytest_configure(config: pytest.Config) -> None:
    """Register markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Apply timeout to all tests except those marked as slow."""
    for item in items:
        if "slow" not in item.keywords:
            item.add_marker(pytest.mark.timeout(30))


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Logging
# ============================================================================


@pytest.fixture(scope="session")
def shared_test_log_file(tmp_path_factory) -> str:
    """
    Create a single shared log file for all tests in the session.

    Returns:
        str: Path to the shared log file
    """
    logs_dir = tmp_path_factory.mktemp("logs")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return str(logs_dir / f"test_run_{timestamp}.log")


# ============================================================================
# Context and Servers
# ============================================================================


@pytest.fixture
def test_config(tmp_path) -> Config:
    config = Config(load_env=False)
    config.server_type = ServerManagerType.TESTING
    config.log_dir = str(tmp_path / "logs")
    config.log_console = False
    return config


@pytest.fixture
def test_context(test_config) -> Context:
    return Context(test_config)


@pytest.fixture
async def test_server_manager(test_context):
    """Connected ServerManager with in-memory backends."""
    server_manager = construct_server_manager(ServerManagerType.TESTING, test_context)
    test_context.set_server_manager(server_manager)
    await server_manager.connect_all()

    yield server_manager

    await server_manager.disconnect_all()


@pytest.fixture
def test_sql_client(test_server_manager):
    return test_server_manager.sql_client


@pytest.fixture
def test_vector_db_client(test_server_manager):
    return test_server_manager.vector_db_client


@pytest.fixture
def test_embedding_client(test_server_manager):
    return test_server_manager.embedding_client


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
async def test_services(test_context, test_server_manager, clock, shared_test_log_file):
    """Initialized ServicesManager sharing the fake clock."""
    services_manager = construct_services_manager(
        ServerManagerType.TESTING,
        context=test_context,
        log_file=shared_test_log_file,
        use_timestamp_logs=False,
        clock=clock,
    )
    test_context.set_services_manager(services_manager)
    await services_manager.initialize_all()

    yield services_manager

    await services_manager.shutdown_all()
