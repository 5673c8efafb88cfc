"""
Error taxonomy for the gateway.

Every failure inside the core is raised as a GatewayError subclass carrying a
stable ErrorKind. The gateway facade turns them into GatewayResult errors;
nothing below it catches and logs them away.
"""
from typing import Optional

from core.enums import ErrorKind


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, partial_text: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.partial_text = partial_text

    def __str__(self):
        return f"[{self.kind.value}] {self.message}"


class InvalidInputError(GatewayError):
    """Malformed or empty request. Never retried."""
    kind = ErrorKind.INVALID_INPUT


class DimensionMismatchError(GatewayError):
    """Vector length differs from the index dimension."""
    kind = ErrorKind.DIMENSION_MISMATCH

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected a vector of dimension {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class NoHealthyBackendError(GatewayError):
    """No registered backend can serve the requested capability right now."""
    kind = ErrorKind.NO_HEALTHY_BACKEND

    def __init__(self, capability: str):
        super().__init__(f"No healthy backend supports '{capability}'")
        self.capability = capability


class BackendUnavailableError(GatewayError):
    """
    Transport-level failure talking to a backend.

    Raised when:
    - Backend is unreachable or the connection drops
    - Backend returns an error response
    - Backend returns a payload we cannot read
    """
    kind = ErrorKind.BACKEND_UNAVAILABLE

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        status_code: Optional[int] = None,
        partial_text: Optional[str] = None,
    ):
        super().__init__(message, partial_text=partial_text)
        self.backend = backend
        self.status_code = status_code


class EmbeddingUnavailableError(BackendUnavailableError):
    """The query or a document could not be embedded."""


class StreamInterruptedError(BackendUnavailableError):
    """A backend failed after emitting part of its answer."""

    def __init__(self, message: str, partial_text: str, backend: Optional[str] = None):
        super().__init__(message, backend=backend, partial_text=partial_text)


class GatewayTimeoutError(GatewayError):
    """The caller-supplied deadline passed. Partial output is dropped."""
    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout: float):
        super().__init__(f"Request exceeded its {timeout:g}s timeout")
        self.timeout = timeout


class InternalError(GatewayError):
    """An invariant inside the gateway was violated."""
    kind = ErrorKind.INTERNAL


def error_from_info(info) -> GatewayError:
    """Rebuild an exception from a GatewayErrorInfo (see GatewayResult.unwrap)."""
    error = GatewayError(info.message, partial_text=info.partial_text)
    error.kind = info.kind
    return error
