# services/factory.py
"""Explicit composition of the gateway from configuration"""
import logging
from typing import List, Optional

from config import Settings, settings as default_settings
from core.domain import CompletionOptions
from core.interfaces import ICompletionBackend, IEmbedder, IVectorIndex
from infrastructure.embedding_services import BackendEmbedder
from infrastructure.ollama_backend import OllamaBackend
from infrastructure.openai_backend import OpenAICompatibleBackend
from infrastructure.vector_stores import InMemoryVectorIndex
from services.backend_pool import BackendPool
from services.completion_engine import StreamingCompletionEngine
from services.gateway import Gateway
from services.rag_orchestrator import RAGOrchestrator

logger = logging.getLogger(default_settings.LOGGER_NAME)

# Provider functions for each component
def get_backends(settings: Settings = default_settings) -> List[ICompletionBackend]:
    """Create completion backends in BACKEND_ORDER; unconfigured ones are skipped."""
    backends: List[ICompletionBackend] = []
    for name in settings.BACKEND_ORDER:
        if name == "ollama":
            if settings.OLLAMA_ENABLED:
                backends.append(OllamaBackend(
                    base_url=settings.OLLAMA_BASE_URL,
                    model=settings.OLLAMA_MODEL,
                    embed_model=settings.OLLAMA_EMBED_MODEL or None,
                    timeout=settings.REQUEST_TIMEOUT,
                ))
        elif name == "openai":
            if settings.OPENAI_API_KEY:
                backends.append(OpenAICompatibleBackend(
                    api_key=settings.OPENAI_API_KEY,
                    base_url=settings.OPENAI_BASE_URL,
                    model=settings.OPENAI_MODEL,
                    embed_model=settings.OPENAI_EMBED_MODEL or None,
                    timeout=settings.REQUEST_TIMEOUT,
                ))
            else:
                logger.info("OpenAI backend skipped: OPENAI_API_KEY is not set")
        else:
            raise ValueError(f"Unknown backend type: {name}")
    return backends

def get_backend_pool(
    settings: Settings = default_settings,
    backends: Optional[List[ICompletionBackend]] = None,
) -> BackendPool:
    pool = BackendPool(probe_timeout=settings.HEALTH_CHECK_TIMEOUT)
    for backend in (get_backends(settings) if backends is None else backends):
        pool.register(backend)
    return pool

def get_embedder(pool: BackendPool, settings: Settings = default_settings) -> IEmbedder:
    """Create embedder based on configuration."""
    if settings.EMBEDDER_PROVIDER == "backend":
        return BackendEmbedder(pool)
    if settings.EMBEDDER_PROVIDER == "sentence-transformers":
        # heavy import, only when configured
        from infrastructure.sentence_transformer_embedding import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(settings.EMBEDDING_MODEL_NAME)
    raise ValueError(f"Unknown embedder provider: {settings.EMBEDDER_PROVIDER}")

def get_vector_index(settings: Settings = default_settings) -> IVectorIndex:
    return InMemoryVectorIndex(dimension=settings.EMBEDDING_DIMENSION)

def build_gateway(
    settings: Settings = default_settings,
    backends: Optional[List[ICompletionBackend]] = None,
    embedder: Optional[IEmbedder] = None,
    index: Optional[IVectorIndex] = None,
) -> Gateway:
    """
    Wire pool, index, embedder, engine and orchestrator into a Gateway.

    Any component can be passed in ready-made (tests pass fakes); the rest is
    built from `settings`.
    """
    pool = get_backend_pool(settings, backends)
    index = index if index is not None else get_vector_index(settings)
    embedder = embedder if embedder is not None else get_embedder(pool, settings)

    engine = StreamingCompletionEngine(
        on_failure=pool.report_failure,
        cancel_timeout=settings.STREAM_CANCEL_TIMEOUT,
    )
    orchestrator = RAGOrchestrator(
        embedder=embedder,
        index=index,
        preamble=settings.RAG_PREAMBLE,
        default_k=settings.RAG_TOP_K,
    )
    gateway = Gateway(
        pool=pool,
        index=index,
        engine=engine,
        orchestrator=orchestrator,
        system_prompt=settings.SYSTEM_PROMPT,
        default_timeout=settings.REQUEST_TIMEOUT,
        default_options=CompletionOptions(
            temperature=settings.DEFAULT_TEMPERATURE,
            max_tokens=settings.DEFAULT_MAX_TOKENS,
            top_p=settings.DEFAULT_TOP_P,
        ),
    )
    logger.info(
        f"Gateway ready: backends={[d.name for d in pool.descriptors()]}, "
        f"embedder={type(embedder).__name__}"
    )
    return gateway
