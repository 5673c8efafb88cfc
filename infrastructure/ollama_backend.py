# infrastructure/ollama_backend.py
"""Ollama completion backend (native /api endpoints)"""
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from core.domain import (
    Capability, CompletionOptions, CompletionRequest, CompletionResponse, HealthStatus
)
from core.exceptions import BackendUnavailableError
from infrastructure.http_backend import HTTPCompletionBackend
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class OllamaBackend(HTTPCompletionBackend):
    """
    Talks to a local or remote Ollama server.

    - /api/chat for completions (NDJSON lines when streaming)
    - /api/embed for embeddings
    - /api/tags as the health probe; a reachable server that has not pulled
      the configured model reports DEGRADED
    """

    def __init__(
        self,
        base_url: str = settings.OLLAMA_BASE_URL,
        model: str = settings.OLLAMA_MODEL,
        embed_model: Optional[str] = settings.OLLAMA_EMBED_MODEL,
        name: str = "ollama",
        timeout: float = settings.REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        capabilities = {Capability.CHAT, Capability.STREAM}
        if embed_model:
            capabilities.add(Capability.EMBED)
        super().__init__(
            name=name,
            base_url=base_url,
            model=model,
            capabilities=frozenset(capabilities),
            timeout=timeout,
            transport=transport,
        )
        self.embed_model = embed_model

    def _payload(self, request: CompletionRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": request.message_dicts(),
            "stream": stream,
        }
        options = _ollama_options(request.options)
        if options:
            payload["options"] = options
        return payload

    async def call(self, request: CompletionRequest) -> CompletionResponse:
        data = await self._post_json("/api/chat", self._payload(request, stream=False))
        if "error" in data:
            raise BackendUnavailableError(f"{self.name} error: {data['error']}", backend=self.name)
        content = (data.get("message") or {}).get("content")
        if content is None:
            raise BackendUnavailableError(f"{self.name} returned no message content", backend=self.name)
        return CompletionResponse(text=content, model=data.get("model", self.model))

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        async with self._stream_lines("/api/chat", self._payload(request, stream=True)) as lines:
            async for line in lines:
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"[{self.name}] skipping non-JSON line: {line[:80]}")
                    continue

                if "error" in data:
                    raise BackendUnavailableError(
                        f"{self.name} error: {data['error']}", backend=self.name
                    )
                delta = (data.get("message") or {}).get("content")
                if delta:
                    yield delta
                if data.get("done", False):
                    return

        # connection closed without a done marker
        raise BackendUnavailableError(f"{self.name} stream ended unexpectedly", backend=self.name)

    async def embed(self, text: str) -> List[float]:
        if not self.embed_model:
            raise self._unsupported(Capability.EMBED)
        data = await self._post_json("/api/embed", {"model": self.embed_model, "input": text})
        embeddings = data.get("embeddings") or []
        if not embeddings or not embeddings[0]:
            raise BackendUnavailableError(f"{self.name} returned no embedding", backend=self.name)
        return embeddings[0]

    async def probe(self) -> HealthStatus:
        data = await self._get_json("/api/tags", timeout=settings.HEALTH_CHECK_TIMEOUT)
        available = {m.get("name") or m.get("model") for m in data.get("models", [])}
        wanted = {self.model} | ({self.embed_model} if self.embed_model else set())
        missing = [m for m in wanted if not _model_available(m, available)]
        if missing:
            logger.warning(f"[{self.name}] reachable but models not pulled: {', '.join(sorted(missing))}")
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY


def _ollama_options(options: CompletionOptions) -> Dict[str, Any]:
    mapped: Dict[str, Any] = {}
    if options.temperature is not None:
        mapped["temperature"] = options.temperature
    if options.max_tokens is not None:
        mapped["num_predict"] = options.max_tokens
    if options.top_p is not None:
        mapped["top_p"] = options.top_p
    return mapped


def _model_available(model: str, available: set) -> bool:
    # Ollama lists "name:tag"; an untagged name means ":latest"
    if model in available:
        return True
    return ":" not in model and f"{model}:latest" in available
