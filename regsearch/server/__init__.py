"""Server module for handling external server connections."""

from .server import ServerManager
from .services import (
    BaseServerHandler,
    EmbeddingProviderHandler,
    SQLConnection,
    SQLDatabase,
    VectorDBDatabase,
    VectorMatch,
)

__all__ = [
    "BaseServerHandler",
    "EmbeddingProviderHandler",
    "SQLConnection",
    "SQLDatabase",
    "VectorDBDatabase",
    "VectorMatch",
    "ServerManager",
]
