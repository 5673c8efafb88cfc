"""Shared enumerations used across the application."""
from enum import Enum


class ErrorKind(str, Enum):
    """Stable error kinds returned to gateway callers."""
    INVALID_INPUT = "InvalidInput"
    DIMENSION_MISMATCH = "DimensionMismatch"
    NO_HEALTHY_BACKEND = "NoHealthyBackend"
    BACKEND_UNAVAILABLE = "BackendUnavailable"
    TIMEOUT = "Timeout"
    INTERNAL = "Internal"


class Capability(str, Enum):
    """What a completion backend can do."""
    CHAT = "chat"
    STREAM = "stream"
    EMBED = "embed"


class HealthStatus(str, Enum):
    """Backend health as seen by the pool."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNREACHABLE = "unreachable"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
