# Base Vectordb database handler

import asyncio
import logging
from functools import partial
from typing import Any

from regsearch.server.services import VectorDBDatabase, VectorMatch
from regsearch.server.vector_db_collections import (
    COLLECTION_METADATA,
    DEFAULT_VECTORDB_COLLECTIONS,
)

logger = logging.getLogger(__name__)


class ChromaDBClient(VectorDBDatabase):
    """ChromaDB vector database client."""

    def __init__(
        self,
        name: str = "chromadb",
        host: str = "localhost",
        port: int = 8000,
        client: Any = None,
        default_collections: list[str] | None = None,
    ):
        """
        Initialize ChromaDB client.

        Args:
            name: Name of the client
            host: ChromaDB server host
            port: ChromaDB server port
            client: Optional pre-configured client
            default_collections: Collections created on startup
        """
        super().__init__(name, client)
        self.host = host
        self.port = port
        self.default_collections = default_collections or list(DEFAULT_VECTORDB_COLLECTIONS)

    async def connect(self) -> None:
        """Establish connection to ChromaDB server."""
        try:
            # Import chromadb here to avoid dependency issues if not installed
            import chromadb
            from chromadb.config import Settings

            self.client = chromadb.HttpClient(
                host=self.host,
                port=self.port,
                settings=Settings(anonymized_telemetry=False),
            )
            self._connected = True
            logger.info(f"[{self.name}] Connected to ChromaDB at {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"[{self.name}] Failed to connect to ChromaDB: {e}")
            raise

    async def disconnect(self) -> None:
        """Close connection to ChromaDB server."""
        # ChromaDB HTTP client doesn't require explicit disconnection
        self._connected = False
        logger.info(f"[{self.name}] Disconnected from ChromaDB")

    async def health_check(self) -> bool:
        """Check if ChromaDB server is healthy."""
        try:
            if self.client:
                await self._run(self.client.heartbeat)
                return True
            return False
        except Exception as e:
            logger.error(f"[{self.name}] ChromaDB health check failed: {e}")
            return False

    # -------------------------------------------------------------- #
    # Collections
    # -------------------------------------------------------------- #

    async def create_default_collections(self) -> None:
        """Create default collections that must exist on startup."""
        if not self.client:
            logger.error(f"[{self.name}] Cannot create collections: client not connected")
            raise RuntimeError("ChromaDB client not connected")

        logger.info(f"[{self.name}] Creating default collections: {self.default_collections}")
        for collection_name in self.default_collections:
            if not await self.collection_exists(collection_name):
                await self.create_collection(collection_name)
            else:
                logger.info(f"[{self.name}] Collection already exists: {collection_name}")

    async def collection_exists(self, name: str) -> bool:
        """
        Check if a collection exists.

        Args:
            name: Collection name

        Returns:
            True if collection exists, False otherwise
        """
        if not self.client:
            raise RuntimeError("ChromaDB client not connected")

        try:
            await self._run(self.client.get_collection, name=name)
            return True
        except Exception:
            return False

    async def create_collection(self, name: str) -> None:
        """
        Create a collection.

        Args:
            name: Collection name
        """
        if not self.client:
            raise RuntimeError("ChromaDB client not connected")

        try:
            await self._run(
                self.client.get_or_create_collection, name=name, metadata=COLLECTION_METADATA
            )
            logger.info(f"[{self.name}] Successfully created collection: {name}")
        except Exception as e:
            logger.error(f"[{self.name}] Failed to create collection {name}: {e}")
            raise

    # -------------------------------------------------------------- #
    # Vector Operations
    # -------------------------------------------------------------- #

    async def query(
        self,
        collection: str,
        embedding: list[float],
        threshold: float,
        n_results: int,
    ) -> list[VectorMatch]:
        try:
            chroma_collection = await self._get_collection(collection)
            available = await self._run(chroma_collection.count)
            n = min(n_results, available)
            if n <= 0:
                return []

            raw = await self._run(
                chroma_collection.query,
                query_embeddings=[embedding],
                n_results=n,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            logger.error(f"[{self.name}] Query on '{collection}' failed: {e}")
            raise

        ids = raw["ids"][0]
        documents = raw["documents"][0]
        metadatas = raw["metadatas"][0]
        distances = raw["distances"][0]

        matches = []
        for chunk_id, document, metadata, distance in zip(ids, documents, metadatas, distances):
            similarity = 1.0 - float(distance)
            if similarity < threshold:
                continue
            matches.append(
                VectorMatch(
                    id=chunk_id,
                    text=document or "",
                    similarity=similarity,
                    metadata=dict(metadata or {}),
                )
            )

        matches.sort(key=lambda match: match.similarity, reverse=True)
        logger.debug(
            f"[{self.name}] Query on '{collection}' returned {len(matches)}/{len(ids)} "
            f"candidates above {threshold:.2f}"
        )
        return matches

    async def upsert(
        self,
        collection: str,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        try:
            chroma_collection = await self._get_collection(collection)
            await self._run(
                chroma_collection.upsert,
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas,
            )
            logger.debug(f"[{self.name}] Upserted {len(ids)} vectors into '{collection}'")
        except Exception as e:
            logger.error(f"[{self.name}] Upsert into '{collection}' failed: {e}")
            raise

    async def delete_where(self, collection: str, where: dict[str, Any]) -> None:
        try:
            chroma_collection = await self._get_collection(collection)
            await self._run(chroma_collection.delete, where=where)
            logger.debug(f"[{self.name}] Deleted vectors from '{collection}' where {where}")
        except Exception as e:
            logger.error(f"[{self.name}] Delete from '{collection}' failed: {e}")
            raise

    # -------------------------------------------------------------- #
    # Utils
    # -------------------------------------------------------------- #

    async def _get_collection(self, name: str):
        if not self.client:
            raise RuntimeError("ChromaDB client not connected")
        return await self._run(
            self.client.get_or_create_collection, name=name, metadata=COLLECTION_METADATA
        )

    async def _run(self, func, *args, **kwargs):
        """Run a blocking chromadb call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))


def construct_vector_db_client(
    host: str = "localhost", port: int = 8000, collection: str | None = None
) -> ChromaDBClient:
    """
    Construct and return a VectorDB client.

    Args:
        host: ChromaDB server host
        port: ChromaDB server port
        collection: Collection created on startup

    Returns:
        Configured ChromaDBClient instance
    """
    default_collections = [collection] if collection else None
    return ChromaDBClient(
        name="chromadb", host=host, port=port, default_collections=default_collections
    )
