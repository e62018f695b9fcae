"""Exceptions raised by the retrieval engine."""
from pathlib import Path
from typing import Optional


class FlatRAGError(Exception):
    """Base exception for flatrag."""


class ConfigurationError(FlatRAGError):
    """A setting is missing, unknown, or has an invalid value."""


class EmbeddingRequestFailed(FlatRAGError):
    """The embedding provider answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Embedding request failed: {status_code} {body}")


class MalformedEmbeddingResponse(FlatRAGError):
    """The embedding provider's JSON did not contain data[0].embedding."""


class DimensionMismatch(FlatRAGError):
    """Two vectors of different lengths were compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Vectors must have the same dimension ({left} != {right})")


class CompletionRequestFailed(FlatRAGError):
    """The completion provider answered with a non-success status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Completion request failed: {status_code}")


class MalformedCompletionResponse(FlatRAGError):
    """The completion response matched neither the chat nor the flat shape."""


class InvalidFilterExpression(FlatRAGError):
    """A filter expression could not be parsed."""

    def __init__(self, expression: str):
        self.expression = expression
        super().__init__(f"Invalid filter expression: '{expression}'")


class ChunkStoreCorrupt(FlatRAGError):
    """A chunk-store file holds a record that cannot be parsed."""

    def __init__(self, path: Path, line_number: int, reason: Optional[str] = None):
        self.path = path
        self.line_number = line_number
        message = f"Corrupt chunk record at {path}:{line_number}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RequestTimeout(FlatRAGError):
    """An outbound HTTP request exceeded the configured timeout."""

    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"Request to {url} timed out after {timeout}s")


class RequestFailed(FlatRAGError):
    """An outbound HTTP request failed before any response arrived."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Request to {url} failed: {reason}")
