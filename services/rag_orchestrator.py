# services/rag_orchestrator.py
import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from core.domain import (
    ChatMessage, CompletionOptions, CompletionRequest, Document, Role, SearchHit
)
from core.exceptions import (
    BackendUnavailableError, EmbeddingUnavailableError, InvalidInputError, NoHealthyBackendError
)
from core.interfaces import IEmbedder, IVectorIndex
from config import settings
from utils.common import new_document_id

logger = logging.getLogger(settings.LOGGER_NAME)

CONTEXT_TEMPLATE = """Context information:
{context}

User question: {query}

Please answer based on the context provided."""

NO_CONTEXT = "(no matching documents)"

class RAGOrchestrator:
    def __init__(
        self,
        embedder: IEmbedder,
        index: IVectorIndex,
        preamble: str = settings.RAG_PREAMBLE,
        default_k: int = settings.RAG_TOP_K,
    ):
        self.embedder = embedder
        self.index = index
        self.preamble = preamble
        self.default_k = default_k

    async def _embed(self, text: str) -> List[float]:
        try:
            return await self.embedder.embed(text)
        except (BackendUnavailableError, NoHealthyBackendError) as e:
            raise EmbeddingUnavailableError(f"Embedding unavailable: {e.message}") from e

    async def ingest(self, texts: Sequence[str]) -> List[Document]:
        """Embed every text concurrently, then insert the batch atomically."""
        if not texts:
            raise InvalidInputError("No documents provided")
        for position, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise InvalidInputError(f"Document {position} is empty")

        vectors = await asyncio.gather(*(self._embed(text) for text in texts))
        documents = [Document(id=new_document_id(), content=text) for text in texts]
        stored = await self.index.insert_many(list(zip(documents, vectors)))
        logger.info(f"[RAG] Ingested {len(stored)} documents")
        return stored

    async def retrieve(self, query: str, k: Optional[int] = None) -> List[SearchHit]:
        if not isinstance(query, str) or not query.strip():
            raise InvalidInputError("Query must not be empty")
        k = self.default_k if k is None else k
        query_vector = await self._embed(query)
        return await self.index.search(query_vector, k)

    async def answer_with_context(
        self,
        query: str,
        k: Optional[int] = None,
        options: Optional[CompletionOptions] = None,
    ) -> Tuple[CompletionRequest, List[SearchHit]]:
        """
        Build a context-augmented request for the completion engine.

        Layout: the fixed preamble as the system message, then one user
        message holding the retrieved contents (verbatim, blank-line
        separated, best match first) followed by the query.
        """
        hits = await self.retrieve(query, k)
        context = "\n\n".join(hit.document.content for hit in hits) or NO_CONTEXT
        logger.info(f"[RAG] Built context from {len(hits)} documents")

        request = CompletionRequest(
            messages=(
                ChatMessage(Role.SYSTEM, self.preamble),
                ChatMessage(Role.USER, CONTEXT_TEMPLATE.format(context=context, query=query)),
            ),
            options=options or CompletionOptions(),
        )
        return request, hits
