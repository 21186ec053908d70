"""
Error types for the embedding subsystem.

Persistence failures are not wrapped: SQLAlchemy exceptions propagate as-is.
"""


class EmbeddingError(Exception):
    """Base class for embedding subsystem errors."""


class EmptyContentError(EmbeddingError, ValueError):
    """Raised when asked to embed blank text."""

    def __init__(self, message: str = "Content cannot be empty"):
        super().__init__(message)


class RemoteEmbeddingError(EmbeddingError):
    """The embedding model could not be reached or configured."""


class SearchError(EmbeddingError):
    """
    Captured failure of a semantic search.

    Never raised to search callers; carried on SearchOutcome.error so callers
    that care can tell a failed search from an empty one.
    """

    def __init__(self, message: str, cause: Exception = None):
        super().__init__(message)
        self.cause = cause
