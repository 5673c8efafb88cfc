# config.py
"""Gateway configuration loaded from the environment and .env"""
from typing import List, Optional
from pydantic_settings import BaseSettings
from utils.common import get_log_file_path

class Settings(BaseSettings):
    """Application configuration"""

    # Logger configuration
    LOGGER_NAME: str = "ai_gateway"
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True
    LOG_FILE_PATH: str = get_log_file_path()
    LOG_MAX_BYTES: int = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT: int = 5

    # App metadata
    APP_TITLE: str = "AI Gateway"
    APP_VERSION: str = "1.0.0"

    # Backends, tried in this order by the pool
    BACKEND_ORDER: List[str] = ["ollama", "openai"]

    # Ollama
    OLLAMA_ENABLED: bool = True
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    OLLAMA_EMBED_MODEL: str = "nomic-embed-text"

    # OpenAI-compatible endpoint (registered only when an API key is set)
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_EMBED_MODEL: str = "text-embedding-3-small"

    # Embeddings
    EMBEDDER_PROVIDER: str = "backend"  # Options: backend, sentence-transformers
    EMBEDDING_MODEL_NAME: str = "paraphrase-multilingual-mpnet-base-v2"
    EMBEDDING_DIMENSION: Optional[int] = None  # None: fixed by the first insert

    # Health checks
    HEALTH_CHECK_INTERVAL: float = 30.0
    HEALTH_CHECK_TIMEOUT: float = 5.0

    # Requests and streaming
    CONNECT_TIMEOUT: float = 10.0
    REQUEST_TIMEOUT: float = 120.0
    STREAM_CANCEL_TIMEOUT: float = 1.0

    # Completion defaults
    DEFAULT_TEMPERATURE: float = 0.7
    DEFAULT_MAX_TOKENS: Optional[int] = None
    DEFAULT_TOP_P: Optional[float] = None

    # RAG
    RAG_TOP_K: int = 4
    MAX_SEARCH_RESULTS: int = 20
    SYSTEM_PROMPT: str = (
        "You are a helpful AI assistant. "
        "Provide clear, concise, and accurate responses."
    )
    RAG_PREAMBLE: str = (
        "You are a helpful AI assistant with access to a knowledge base. "
        "Answer using the context supplied with the question. If the context "
        "does not contain the answer, say so clearly."
    )

    # Caller-side retry for non-streaming chat (1 = no retry)
    RETRY_MAX_ATTEMPTS: int = 1
    RETRY_INITIAL_DELAY_MS: float = 250.0
    RETRY_MAX_DELAY_MS: float = 2000.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
