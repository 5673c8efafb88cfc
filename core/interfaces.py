# core/interfaces.py
"""Core interfaces for the gateway"""
from abc import ABC, abstractmethod
from typing import AsyncIterator, FrozenSet, List, Optional, Sequence, Tuple

from core.domain import (
    Capability, CompletionRequest, CompletionResponse, Document, HealthStatus, SearchHit
)

# ============= Completion Backend Interface =============
class ICompletionBackend(ABC):
    """
    Opaque client for one LLM provider endpoint.

    Implementations translate every transport failure into
    BackendUnavailableError. Provider-specific exception types must not
    escape these methods.
    """

    name: str
    model: str
    capabilities: FrozenSet[Capability]

    @abstractmethod
    async def call(self, request: CompletionRequest) -> CompletionResponse:
        """Single-shot completion."""
        pass

    @abstractmethod
    def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        """
        Stream the completion as text deltas.

        Returns an async generator; closing it must release the underlying
        connection.
        """
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embedding of a single text (only for backends with Capability.EMBED)."""
        pass

    @abstractmethod
    async def probe(self) -> HealthStatus:
        """
        Lightweight no-op request used by the pool's health check.

        Returns HEALTHY or DEGRADED; raises BackendUnavailableError when the
        backend cannot be reached.
        """
        pass

    async def aclose(self) -> None:
        """Release network resources."""
        pass

# ============= Embedder Interface =============
class IEmbedder(ABC):
    """Interface for embedding generation"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """
        Embed one text.

        Raises:
            InvalidInputError: text is empty
            BackendUnavailableError: the underlying model call failed
        """
        pass

# ============= Vector Index Interface =============
class IVectorIndex(ABC):
    """Interface for in-memory nearest-neighbour storage"""

    @property
    @abstractmethod
    def dimension(self) -> Optional[int]:
        """Established vector dimension, None while empty and unconfigured."""
        pass

    @abstractmethod
    async def insert(self, document: Document, vector: Sequence[float]) -> Document:
        """Store a document with its embedding; returns the stored copy."""
        pass

    @abstractmethod
    async def insert_many(self, items: Sequence[Tuple[Document, Sequence[float]]]) -> List[Document]:
        """All-or-nothing batch insert."""
        pass

    @abstractmethod
    async def search(self, query_vector: Sequence[float], k: int) -> List[SearchHit]:
        """Top-k documents by cosine similarity."""
        pass

    @abstractmethod
    async def get(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of documents"""
        pass
