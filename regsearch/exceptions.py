"""
Exception hierarchy for the retrieval core.

Every public entry point either returns a well-formed result or raises one
of these. Each exception carries a details dict for logging.
"""

from typing import Any


class RetrievalCoreError(Exception):
    """Base exception for all retrieval core errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class EmbeddingError(RetrievalCoreError):
    """Raised when the embedding provider fails."""

    pass


class VectorStoreError(RetrievalCoreError):
    """Raised when a vector store operation fails."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Args:
            message: Error message
            operation: Operation that failed (query, upsert, delete)
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class SearchError(RetrievalCoreError):
    """Raised when the search pipeline fails outside the vector store."""

    pass


class IngestionError(RetrievalCoreError):
    """Raised when a document could not be fully ingested."""

    def __init__(
        self,
        message: str,
        source_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if source_id:
            details["source_id"] = source_id
        super().__init__(message, details)


class DatabaseError(RetrievalCoreError):
    """Raised when a relational query fails."""

    def __init__(
        self,
        message: str,
        query_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if query_type:
            details["query_type"] = query_type
        super().__init__(message, details)


class PoolAcquireTimeoutError(DatabaseError):
    """Raised when no pooled connection becomes available in time."""

    pass


class QueryTimeoutError(DatabaseError):
    """Raised when a statement exceeds the statement timeout."""

    pass


class CacheError(RetrievalCoreError):
    """Raised internally for a corrupted cache entry; treated as a miss."""

    pass
