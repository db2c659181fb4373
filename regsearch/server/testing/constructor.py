"""
Constructor for Testing Server Manager.

This module provides functions to construct a ServerManager instance
with in-memory implementations for testing purposes.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from regsearch.context import Context

from regsearch.server.server import ServerManager
from regsearch.server.testing.embedding import HashEmbeddingProvider
from regsearch.server.testing.sqlite import InMemorySQLServer
from regsearch.server.testing.vector_db import InMemoryChromaDBClient

# -------------------------------------------------------------- #
# Constructor for Testing Server Manager
# -------------------------------------------------------------- #


def load_sql_client() -> InMemorySQLServer:
    """Load and return the in-memory SQL client for testing."""
    return InMemorySQLServer(name="test_sqlite")


def load_vectordb_client(context: "Context") -> InMemoryChromaDBClient:
    """Load and return the in-memory VectorDB client for testing."""
    return InMemoryChromaDBClient(
        name="test_chromadb", default_collections=[context.config.chroma_collection]
    )


def load_embedding_client() -> HashEmbeddingProvider:
    """Load and return the deterministic embedding provider for testing."""
    return HashEmbeddingProvider(name="test_hash_embedding")


def construct_server_manager(context: "Context") -> ServerManager:
    """
    Construct and return a ServerManager instance for testing.

    This creates a ServerManager with all in-memory implementations:
    - In-memory SQLite database (mimics the PostgreSQL pool)
    - In-memory ChromaDB
    - Deterministic hashing embedding provider

    Args:
        context: Context instance to pass to ServerManager

    Returns:
        Configured ServerManager instance with test implementations
    """
    server_manager = ServerManager(
        context=context,
        sql_client=load_sql_client(),
        vector_db_client=load_vectordb_client(context),
        embedding_client=load_embedding_client(),
    )

    return server_manager
