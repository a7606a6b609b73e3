"""
Error taxonomy for the vector memory layer.
"""

from typing import Any, Dict, Optional


class VectorStoreError(Exception):
    """Base exception for vector memory errors."""

    code = "VECTOR_STORE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class EmbeddingUnavailable(VectorStoreError):
    """The embedding provider is missing or failed. Never replaced by a synthetic vector."""

    code = "EMBEDDING_UNAVAILABLE"


class InvalidVector(VectorStoreError, ValueError):
    """Empty vector or dimension mismatch."""

    code = "INVALID_VECTOR"


class PersistenceIOError(VectorStoreError):
    """Disk failure during save or load."""

    code = "PERSISTENCE_IO_ERROR"


class PartialLoadCorruption(VectorStoreError):
    """Some persisted records were unreadable and skipped."""

    code = "PARTIAL_LOAD_CORRUPTION"


class OperationCancelled(VectorStoreError):
    """The caller's cancellation signal was set."""

    code = "CANCELLED"


def raise_if_cancelled(cancel_event, operation: str) -> None:
    """Raise OperationCancelled when the caller's event is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled(f"{operation} cancelled")
