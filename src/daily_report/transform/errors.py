"""Errors raised by the transform pipeline.

Backend problems are normalised into a single BackendFailure at the point the
client library's exception is first caught, so nothing downstream has to
inspect SDK-specific exception types.
"""

from enum import Enum


class FailureKind(str, Enum):
    """What went wrong at the backend boundary."""

    MISSING_CREDENTIAL = "missing_credential"  # no credential configured; no request made
    STATUS = "status"  # the backend answered with an error status
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    UNKNOWN = "unknown"


class TransformError(Exception):
    """Base class for transform pipeline errors."""

    category = "transform_error"


class EmptyInputError(TransformError):
    """The report text is empty or whitespace only."""

    category = "empty_input"


class RunRejectedError(TransformError):
    """A run was requested while another is running or a cooldown is active."""

    category = "run_rejected"


class BackendFailure(TransformError):
    """A failed generation request, tagged with its kind and any status details."""

    def __init__(self, kind: FailureKind, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.code = code

    def __repr__(self) -> str:
        return f"BackendFailure(kind={self.kind.value}, status_code={self.status_code}, code={self.code!r}, message={self.message!r})"
