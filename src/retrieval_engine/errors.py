"""
Exception hierarchy for the retrieval engine.

Most failures in this package degrade instead of raising (see the adapter and
store docstrings). These exceptions mark the few places where a caller has to
make a decision: bad configuration, malformed input, or an embedding that
could not be produced during indexing.
"""

from __future__ import annotations


class RetrievalEngineError(Exception):
    """Base class for all retrieval engine errors."""


class ConfigurationError(RetrievalEngineError):
    """Required configuration is missing or invalid. Raised at startup only."""

    def __init__(self, issues: list[str]):
        self.issues = issues
        super().__init__("Invalid retrieval engine configuration: " + "; ".join(issues))


class InvalidNamespaceError(RetrievalEngineError, ValueError):
    """Namespace id cannot be used as a storage partition."""


class DimensionMismatchError(RetrievalEngineError, ValueError):
    """Vector length does not match the configured embedding dimension."""

    def __init__(self, expected: int, actual: int, vector_id: str | None = None):
        self.expected = expected
        self.actual = actual
        self.vector_id = vector_id
        where = f" for vector {vector_id}" if vector_id else ""
        super().__init__(f"Expected dimension {expected}, got {actual}{where}")


class EmbeddingUnavailableError(RetrievalEngineError):
    """No embedding could be resolved for a piece of text."""


class SyncError(RetrievalEngineError):
    """A namespace synchronization run failed and should be retried."""
