# infrastructure/embedding_services.py
"""Embedder adapter over the embedding call of a pooled backend"""
import logging
from typing import List

from core.domain import Capability, as_vector
from core.exceptions import BackendUnavailableError, InvalidInputError
from core.interfaces import IEmbedder
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class BackendEmbedder(IEmbedder):
    """
    Embeds text with whichever pooled backend currently serves Capability.EMBED.

    Stateless apart from the pool reference: every call selects afresh, so a
    degraded embedding backend is skipped until a health check restores it.
    Failures are reported back to the pool before being raised.
    """

    def __init__(self, pool):
        self._pool = pool

    async def embed(self, text: str) -> List[float]:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Cannot embed empty text")

        backend = self._pool.select(Capability.EMBED)
        try:
            raw = await backend.embed(text)
        except BackendUnavailableError as e:
            self._pool.report_failure(backend.name, e)
            raise
        except Exception as e:
            # backend bug; still a failed call from the caller's point of view
            logger.error(f"[EMBED] {backend.name} raised {type(e).__name__}: {e}", exc_info=True)
            self._pool.report_failure(backend.name, e)
            raise BackendUnavailableError(f"Embedding call failed on {backend.name}", backend=backend.name) from e

        try:
            return list(as_vector(raw))
        except InvalidInputError as e:
            self._pool.report_failure(backend.name, e)
            raise BackendUnavailableError(
                f"{backend.name} returned an unusable embedding: {e.message}", backend=backend.name
            ) from e
