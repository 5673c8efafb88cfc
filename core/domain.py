"""Domain models for the gateway."""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Generic, List, Optional, Sequence, Tuple, TypeVar

from core.enums import Capability, ErrorKind, HealthStatus, Role
from core.exceptions import InvalidInputError, error_from_info

# ============= Documents & Retrieval =============

@dataclass(frozen=True)
class Document:
    """A piece of text owned by the vector index once embedded."""
    id: str
    content: str
    embedding: Optional[Tuple[float, ...]] = None


@dataclass(frozen=True)
class SearchHit:
    """A document with its cosine similarity to the query."""
    document: Document
    score: float


# ============= Backends =============

@dataclass(frozen=True)
class BackendDescriptor:
    """Pool-side view of a backend. Replaced, never mutated."""
    name: str
    model: str
    capabilities: FrozenSet[Capability]
    status: HealthStatus = HealthStatus.HEALTHY
    last_checked: Optional[datetime] = None
    last_error: Optional[str] = None

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


# ============= Completions =============

@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def __post_init__(self):
        try:
            object.__setattr__(self, "role", Role(self.role))
        except ValueError:
            raise InvalidInputError(f"Unknown message role: {self.role!r}")
        if not isinstance(self.content, str) or not self.content.strip():
            raise InvalidInputError("Message content must be a non-empty string")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class CompletionOptions:
    """Sampling options. None means the backend default."""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None

    def __post_init__(self):
        if self.temperature is not None and not (0.0 <= self.temperature <= 2.0):
            raise InvalidInputError("temperature must be between 0 and 2")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise InvalidInputError("max_tokens must be positive")
        if self.top_p is not None and not (0.0 < self.top_p <= 1.0):
            raise InvalidInputError("top_p must be in (0, 1]")


@dataclass(frozen=True)
class CompletionRequest:
    """An ordered conversation plus options. Immutable once built."""
    messages: Tuple[ChatMessage, ...]
    options: CompletionOptions = field(default_factory=CompletionOptions)

    def __post_init__(self):
        object.__setattr__(self, "messages", tuple(self.messages))
        if not self.messages:
            raise InvalidInputError("A completion request needs at least one message")

    @classmethod
    def from_prompt(
        cls,
        prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[CompletionOptions] = None,
    ) -> "CompletionRequest":
        messages = []
        if system_prompt:
            messages.append(ChatMessage(Role.SYSTEM, system_prompt))
        messages.append(ChatMessage(Role.USER, prompt))
        return cls(messages=tuple(messages), options=options or CompletionOptions())

    def message_dicts(self) -> List[Dict[str, str]]:
        return [m.to_dict() for m in self.messages]


@dataclass(frozen=True)
class CompletionChunk:
    sequence: int
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class CompletionResponse:
    """Single-shot backend answer."""
    text: str
    model: str


@dataclass(frozen=True)
class CompletionResult:
    """A stream driven to its end."""
    text: str
    model: str
    backend: str
    chunk_count: int


# ============= Gateway payloads =============

@dataclass
class ChatReply:
    response: str
    model: str
    backend: str
    timestamp: datetime
    context: List[SearchHit] = field(default_factory=list)


@dataclass
class IngestReport:
    count: int
    document_ids: List[str]


@dataclass
class DocumentAnalysis:
    summary: str
    key_points: List[str]
    sentiment: str
    document_count: int


@dataclass
class StructuredExtraction:
    extracted: str
    data: Optional[Dict[str, Any]]
    timestamp: datetime


# ============= Result type =============

T = TypeVar("T")


@dataclass(frozen=True)
class GatewayErrorInfo:
    kind: ErrorKind
    message: str
    partial_text: Optional[str] = None


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    """Ok(payload) or Err(kind, message). Returned by non-streaming operations."""
    payload: Optional[T] = None
    error: Optional[GatewayErrorInfo] = None

    @classmethod
    def success(cls, payload: T) -> "GatewayResult[T]":
        return cls(payload=payload)

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str, partial_text: Optional[str] = None
    ) -> "GatewayResult[T]":
        return cls(error=GatewayErrorInfo(kind=kind, message=message, partial_text=partial_text))

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Payload of an Ok result; raises the matching GatewayError otherwise."""
        if self.error is not None:
            raise error_from_info(self.error)
        return self.payload


# ============= Vector helpers =============

def as_vector(values: Sequence[float]) -> Tuple[float, ...]:
    """Convert to a tuple of floats, rejecting empty or non-finite input."""
    try:
        vector = tuple(float(v) for v in values)
    except (TypeError, ValueError):
        raise InvalidInputError("Embedding must be a sequence of numbers")
    if not vector:
        raise InvalidInputError("Embedding must not be empty")
    if not all(math.isfinite(v) for v in vector):
        raise InvalidInputError("Embedding contains non-finite values")
    return vector
