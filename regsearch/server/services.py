from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Sequence

# -------------------------------------------------------------- #
# Base Server Handler
# -------------------------------------------------------------- #


class BaseServerHandler(ABC):
    """Abstract base class for all server handlers."""

    def __init__(self, name: str):
        self.name = name
        self._connected = False

    # -------------------------------------------------------------- #
    # Handler Methods
    # -------------------------------------------------------------- #

    async def on_startup(self) -> None:
        """Actions to perform on server startup."""
        pass

    async def on_close(self) -> None:
        """Actions to perform on server close."""
        pass

    # -------------------------------------------------------------- #
    # Abstract Methods
    # -------------------------------------------------------------- #

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the server."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the server."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the server is healthy and responding."""
        pass

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to the server."""
        return self._connected


# -------------------------------------------------------------- #
# Base Service Structures
# -------------------------------------------------------------- #


# Base SQL Database Handler


class SQLConnection(ABC):
    """A single leased connection. Placeholders are `$1`, `$2`, ..."""

    @abstractmethod
    async def fetch(self, sql: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Run a statement and return its rows as dictionaries."""
        pass

    @abstractmethod
    async def execute(self, sql: str, params: Sequence[Any] | None = None) -> str:
        """Run a statement without reading rows; returns a status string."""
        pass


class SQLDatabase(BaseServerHandler):
    """SQL Database server handler."""

    def __init__(self, name: str, connection_string: str):
        super().__init__(name)
        self.connection_string = connection_string

    # -------------------------------------------------------------- #
    # Handler Methods
    # -------------------------------------------------------------- #

    async def on_startup(self) -> None:
        await self.create_tables()

    # ------------------------------------------------------ #
    # Utils
    # ------------------------------------------------------ #

    @abstractmethod
    async def create_tables(self) -> None:
        """Create database tables from models."""
        pass

    @abstractmethod
    def compile_query_object(self, stmt) -> str:
        """
        Compile a SQLAlchemy statement object into a SQL query string.

        Args:
            stmt: SQLAlchemy statement object

        Returns:
            Compiled SQL query string
        """
        pass

    @abstractmethod
    def acquire(self, timeout: float | None = None) -> AbstractAsyncContextManager[SQLConnection]:
        """
        Lease a connection from the pool for exclusive use.

        Args:
            timeout: Seconds to wait for a free connection

        Raises:
            asyncio.TimeoutError: If no connection frees up within the timeout
        """
        pass

    @abstractmethod
    def pool_status(self) -> dict[str, int]:
        """
        Report pool occupancy.

        Returns:
            Dict with 'total' and 'idle' connection counts
        """
        pass


# VectorDB Database Handler


@dataclass
class VectorMatch:
    """One nearest-neighbour candidate returned by the vector store."""

    id: str
    text: str
    similarity: float
    metadata: dict[str, Any] = field(default_factory=dict)


class VectorDBDatabase(BaseServerHandler):
    """VectorDB Database server handler."""

    def __init__(self, name: str, client: Any):
        super().__init__(name)
        self.client = client

    # -------------------------------------------------------------- #
    # Handler Methods
    # -------------------------------------------------------------- #

    async def on_startup(self) -> None:
        """Actions to perform on server startup - create default collections."""
        await self.create_default_collections()

    # ------------------------------------------------------ #
    # Utils
    # ------------------------------------------------------ #

    @abstractmethod
    async def create_default_collections(self) -> None:
        """Create default collections that must exist on startup."""
        pass

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """
        Check if a collection exists.

        Args:
            name: Collection name

        Returns:
            True if collection exists, False otherwise
        """
        pass

    @abstractmethod
    async def create_collection(self, name: str) -> None:
        """
        Create a collection.

        Args:
            name: Collection name
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        embedding: list[float],
        threshold: float,
        n_results: int,
    ) -> list[VectorMatch]:
        """
        Approximate nearest-neighbour search.

        Args:
            collection: Collection name
            embedding: Query vector
            threshold: Minimum cosine similarity to return
            n_results: Maximum candidates to return

        Returns:
            Matches ordered by similarity, highest first
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        """Insert or replace vectors with their documents and metadata."""
        pass

    @abstractmethod
    async def delete_where(self, collection: str, where: dict[str, Any]) -> None:
        """Delete every vector whose metadata matches the filter."""
        pass


# Embedding Provider Handler


class EmbeddingProviderHandler(BaseServerHandler):
    """Text to fixed-dimension vector provider."""

    def __init__(self, name: str, model_name: str):
        super().__init__(name)
        self.model_name = model_name

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Encode texts into embeddings.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in order
        """
        pass
