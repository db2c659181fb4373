"""
In-memory ChromaDB client for testing.

This module provides an in-memory ChromaDB implementation for testing
without requiring a running ChromaDB server.
"""

import logging

from regsearch.server.common.chroma import ChromaDBClient

logger = logging.getLogger(__name__)


class InMemoryChromaDBClient(ChromaDBClient):
    """In-memory ChromaDB vector database client for testing."""

    def __init__(self, name: str = "test_chromadb", default_collections: list[str] | None = None):
        """
        Initialize in-memory ChromaDB client.

        Args:
            name: Name of the client
            default_collections: Collections created on startup
        """
        super().__init__(name=name, default_collections=default_collections)

    async def connect(self) -> None:
        """Establish connection to in-memory ChromaDB."""
        try:
            # Import chromadb here to avoid dependency issues if not installed
            import chromadb
            from chromadb.config import Settings

            # every EphemeralClient shares one process-wide store, so start clean
            self.client = chromadb.EphemeralClient(
                settings=Settings(anonymized_telemetry=False, allow_reset=True)
            )
            self.client.reset()
            self._connected = True
            logger.info(f"[{self.name}] Connected to in-memory ChromaDB")
        except Exception as e:
            logger.error(f"[{self.name}] Failed to connect: {e}")
            raise

    async def disconnect(self) -> None:
        """Close connection to in-memory ChromaDB."""
        self.client = None
        self._connected = False
        logger.info(f"[{self.name}] Disconnected from in-memory ChromaDB")
