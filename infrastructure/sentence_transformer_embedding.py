# infrastructure/sentence_transformer_embedding.py
"""Local embedding model with L2 normalization"""
import asyncio
import logging
from typing import List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from core.exceptions import BackendUnavailableError, InvalidInputError
from core.interfaces import IEmbedder
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class SentenceTransformerEmbedding(IEmbedder):
    """
    Sentence transformer producing unit vectors.

    For unit vectors cosine similarity is the dot product, which is what the
    in-memory index computes after its own normalization, so scores from this
    embedder and from remote backends live on the same [-1, 1] scale.
    """

    _model: Optional[SentenceTransformer] = None  # Singleton cache
    _model_name: Optional[str] = None

    def __init__(self, model_name: str = settings.EMBEDDING_MODEL_NAME):
        """Initializes the service, loading the heavy model only once."""
        if SentenceTransformerEmbedding._model is None or SentenceTransformerEmbedding._model_name != model_name:
            try:
                logger.info(f"Attempting to load model {model_name} from local cache...")
                SentenceTransformerEmbedding._model = SentenceTransformer(
                    model_name,
                    local_files_only=True
                )
                logger.info(f"Successfully loaded {model_name} from local cache.")

            except Exception as e:
                logger.warning(
                    f"Model {model_name} not found in cache. Attempting online download. "
                    f"This may take a few minutes. Error: {e}"
                )
                SentenceTransformerEmbedding._model = SentenceTransformer(model_name)
                logger.info(f"Successfully downloaded and loaded {model_name}.")
            SentenceTransformerEmbedding._model_name = model_name

        self.model = SentenceTransformerEmbedding._model

    def _l2_normalize(self, arr: np.ndarray) -> np.ndarray:
        """L2 normalize (N, D) vectors to unit length; zero rows stay zero."""
        norms = np.linalg.norm(arr, axis=1, keepdims=True)
        norms[norms == 0] = 1e-12  # Avoid division by zero
        return arr / norms

    async def embed(self, text: str) -> List[float]:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Cannot embed empty text")
        try:
            raw = await asyncio.to_thread(
                self.model.encode,
                text,
                convert_to_tensor=False
            )
        except Exception as e:
            logger.error(f"Local embedding failed: {e}", exc_info=True)
            raise BackendUnavailableError(f"Local embedding model failed: {e}", backend="sentence-transformers") from e

        normalized = self._l2_normalize(
            np.array(raw, dtype="float32").reshape(1, -1)
        )
        return normalized[0].tolist()
