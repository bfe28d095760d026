"""
Error taxonomy for the vector search service.

Every error carries a ``retryable`` flag so callers can tell transient
backend failures from errors they have to fix themselves.
"""

from typing import Any, Dict, Optional


class VectorSearchError(Exception):
    """Base exception for vector search errors."""

    retryable = False

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "field": self.field,
            "message": self.message,
            "retryable": self.retryable,
        }


class DimensionMismatch(VectorSearchError):
    """A vector does not have the dimension the store was created with."""

    def __init__(self, expected: int, actual: int, field: str = "embedding") -> None:
        super().__init__(
            f"{field} has dimension {actual}, expected {expected}",
            field=field,
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class InvalidThreshold(VectorSearchError):
    """Match threshold outside [-1, 1] or not a finite number."""


class InvalidLimit(VectorSearchError):
    """Result limit that is not a non-negative integer."""


class StoreUnavailable(VectorSearchError):
    """Backend I/O failure or timeout in the vector store."""

    retryable = True


class ProviderUnavailable(VectorSearchError):
    """Network failure, timeout or server error from the embedding provider."""

    retryable = True


class ProviderRejected(VectorSearchError):
    """The embedding provider refused the request (invalid input, auth, quota)."""


class ConfigError(VectorSearchError):
    """Invalid or missing configuration detected at startup."""

    def __init__(self, issues) -> None:
        self.issues = list(issues)
        super().__init__("Invalid configuration: " + "; ".join(self.issues))
