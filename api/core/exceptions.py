"""
Typed failures for the grid pipeline and the generation workflow.

Grid errors are never retried where they are raised; retry policy belongs to
the calling workflow (see services.retry_service).
"""
from typing import Any, Optional


class ImageGridError(Exception):
    """Base class for grid and size-normalization failures."""


class DecodeError(ImageGridError):
    """Image data is malformed or cannot be decoded."""


class BoundsError(ImageGridError):
    """Grid spec exceeds the extents of the source image."""

    def __init__(self, message: str, source_size: tuple = (0, 0), required_size: tuple = (0, 0)):
        super().__init__(message)
        self.source_size = source_size
        self.required_size = required_size


class CountMismatchError(ImageGridError):
    """Wrong number of cells supplied for assembly."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected {expected} cells, got {actual}")
        self.expected = expected
        self.actual = actual


class GeometryMismatchError(ImageGridError):
    """Produced grid does not match the expected row/column/pixel contract."""

    def __init__(self, message: str, report: Optional[Any] = None):
        super().__init__(message)
        self.report = report


class GenerationError(Exception):
    """External model returned no usable image."""


class PayloadTooLargeError(Exception):
    """Inline image payload exceeds the configured limit."""

    def __init__(self, total_bytes: int, limit_bytes: int):
        super().__init__(
            f"Payload too large (~{total_bytes / 1024 / 1024:.2f}MB, limit {limit_bytes / 1024 / 1024:.2f}MB)"
        )
        self.total_bytes = total_bytes
        self.limit_bytes = limit_bytes


class InvalidStateError(Exception):
    """Action is not allowed in the current session state."""


ERROR_STATUS_CODES = (
    (DecodeError, 400),
    (BoundsError, 400),
    (CountMismatchError, 400),
    (InvalidStateError, 400),
    (PayloadTooLargeError, 413),
    (GeometryMismatchError, 422),
    (GenerationError, 502),
)


def status_code_for(error: Exception) -> int:
    """HTTP status a router should answer with for an error (500 when untyped)."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500
