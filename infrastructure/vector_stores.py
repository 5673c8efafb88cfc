# infrastructure/vector_stores.py
"""In-memory vector index with brute-force cosine similarity"""
import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from core.domain import Document, SearchHit, as_vector
from core.exceptions import DimensionMismatchError, InvalidInputError
from core.interfaces import IVectorIndex
from config import settings
from utils.locks import AsyncReadWriteLock

logger = logging.getLogger(settings.LOGGER_NAME)

class InMemoryVectorIndex(IVectorIndex):
    """
    Exact nearest-neighbour index over unit-normalised rows.

    - Rows live in a capacity-doubling float64 matrix, so appends are
      amortised O(1) and row order equals insertion order
    - search() is a full scan: one matrix-vector product, then a stable sort
      so equal scores keep insertion order
    - Zero vectors are stored as zero rows and score 0 against everything
    - Searches share a read section; inserts take the write section and
      validate everything before touching state

    Placeholder for an approximate structure (HNSW/IVF) once the corpus
    outgrows a linear scan.
    """

    _INITIAL_CAPACITY = 64

    def __init__(self, dimension: Optional[int] = None):
        if dimension is not None and dimension <= 0:
            raise InvalidInputError("Index dimension must be positive")
        self._dimension = dimension
        self._matrix: Optional[np.ndarray] = None
        self._size = 0
        self._documents: List[Document] = []
        self._positions: Dict[str, int] = {}
        self._lock = AsyncReadWriteLock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    # ---------- Writes ----------

    async def insert(self, document: Document, vector: Sequence[float]) -> Document:
        stored = await self.insert_many([(document, vector)])
        return stored[0]

    async def insert_many(self, items: Sequence[Tuple[Document, Sequence[float]]]) -> List[Document]:
        """Validate every pair, then append them all in one write section."""
        if not items:
            return []

        async with self._lock.write():
            prepared = self._prepare_locked(items)
            dimension = len(prepared[0][1])
            self._ensure_capacity_locked(dimension, self._size + len(prepared))

            stored = []
            for document, vector in prepared:
                row = np.asarray(vector, dtype=np.float64)
                norm = np.linalg.norm(row)
                self._matrix[self._size] = row / norm if norm > 0 else row
                embedded = replace(document, embedding=vector)
                self._documents.append(embedded)
                self._positions[document.id] = self._size
                self._size += 1
                stored.append(embedded)

            if self._dimension is None:
                self._dimension = dimension
                logger.info(f"[INDEX] Established dimension {dimension}")

        logger.debug(f"[INDEX] Inserted {len(stored)} documents (total {self._size})")
        return stored

    def _prepare_locked(self, items) -> List[Tuple[Document, Tuple[float, ...]]]:
        expected = self._dimension
        seen = set()
        prepared = []
        for document, raw_vector in items:
            vector = as_vector(raw_vector)
            if expected is None:
                expected = len(vector)
            elif len(vector) != expected:
                raise DimensionMismatchError(expected, len(vector))

            if not document.id:
                raise InvalidInputError("Document id must not be empty")
            if document.id in self._positions or document.id in seen:
                raise InvalidInputError(f"Document '{document.id}' is already indexed")
            if document.embedding is not None and tuple(document.embedding) != vector:
                raise InvalidInputError(f"Document '{document.id}' is already embedded differently")

            seen.add(document.id)
            prepared.append((document, vector))
        return prepared

    def _ensure_capacity_locked(self, dimension: int, required: int) -> None:
        if self._matrix is None:
            capacity = max(self._INITIAL_CAPACITY, required)
            self._matrix = np.zeros((capacity, dimension), dtype=np.float64)
            return

        capacity = self._matrix.shape[0]
        if required <= capacity:
            return
        while capacity < required:
            capacity *= 2
        grown = np.zeros((capacity, dimension), dtype=np.float64)
        grown[:self._size] = self._matrix[:self._size]
        self._matrix = grown

    # ---------- Reads ----------

    async def search(self, query_vector: Sequence[float], k: int) -> List[SearchHit]:
        """
        Return up to k documents by non-increasing cosine similarity.

        Ties keep insertion order, k is clamped to the index size and an
        empty index returns []. Nothing is mutated.
        """
        if k < 0:
            raise InvalidInputError("k must be non-negative")
        query = as_vector(query_vector)

        async with self._lock.read():
            if self._size == 0 or k == 0:
                return []
            if len(query) != self._dimension:
                raise DimensionMismatchError(self._dimension, len(query))

            return await asyncio.to_thread(self._rank_locked, query, k)

    def _rank_locked(self, query: Tuple[float, ...], k: int) -> List[SearchHit]:
        q = np.asarray(query, dtype=np.float64)
        norm = np.linalg.norm(q)
        if norm > 0:
            q = q / norm

        scores = self._matrix[:self._size] @ q
        order = np.argsort(-scores, kind="stable")[:min(k, self._size)]
        return [SearchHit(document=self._documents[i], score=float(scores[i])) for i in order]

    async def get(self, document_id: str) -> Optional[Document]:
        async with self._lock.read():
            position = self._positions.get(document_id)
            return self._documents[position] if position is not None else None

    async def count(self) -> int:
        return self._size
