# infrastructure/openai_backend.py
"""OpenAI-compatible completion backend (/v1 chat completions, SSE streaming)"""
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from core.domain import Capability, CompletionRequest, CompletionResponse, HealthStatus
from core.exceptions import BackendUnavailableError
from infrastructure.http_backend import HTTPCompletionBackend
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

_SSE_DATA = "data:"
_SSE_DONE = "[DONE]"

class OpenAICompatibleBackend(HTTPCompletionBackend):
    """Works against OpenAI, Azure-style proxies, vLLM or Ollama's /v1 shim."""

    def __init__(
        self,
        api_key: Optional[str] = settings.OPENAI_API_KEY,
        base_url: str = settings.OPENAI_BASE_URL,
        model: str = settings.OPENAI_MODEL,
        embed_model: Optional[str] = settings.OPENAI_EMBED_MODEL,
        name: str = "openai",
        timeout: float = settings.REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        capabilities = {Capability.CHAT, Capability.STREAM}
        if embed_model:
            capabilities.add(Capability.EMBED)
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        super().__init__(
            name=name,
            base_url=base_url,
            model=model,
            capabilities=frozenset(capabilities),
            headers=headers,
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
        options = request.options
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        return payload

    async def call(self, request: CompletionRequest) -> CompletionResponse:
        data = await self._post_json("/chat/completions", self._payload(request, stream=False))
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise BackendUnavailableError(f"{self.name} returned a malformed completion", backend=self.name)
        return CompletionResponse(text=content or "", model=data.get("model", self.model))

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        async with self._stream_lines("/chat/completions", self._payload(request, stream=True)) as lines:
            async for line in lines:
                if not line.startswith(_SSE_DATA):
                    continue  # comments, event names, keep-alives
                data = line[len(_SSE_DATA):].strip()
                if data == _SSE_DONE:
                    return
                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"[{self.name}] skipping malformed SSE payload: {data[:80]}")
                    continue

                if "error" in event:
                    error = event["error"]
                    message = error.get("message", error) if isinstance(error, dict) else error
                    raise BackendUnavailableError(f"{self.name} error: {message}", backend=self.name)
                for choice in event.get("choices", []):
                    delta = (choice.get("delta") or {}).get("content")
                    if delta:
                        yield delta

        raise BackendUnavailableError(f"{self.name} stream ended without [DONE]", backend=self.name)

    async def embed(self, text: str) -> List[float]:
        if not self.embed_model:
            raise self._unsupported(Capability.EMBED)
        data = await self._post_json("/embeddings", {"model": self.embed_model, "input": text})
        try:
            return data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            raise BackendUnavailableError(f"{self.name} returned no embedding", backend=self.name)

    async def probe(self) -> HealthStatus:
        data = await self._get_json("/models", timeout=settings.HEALTH_CHECK_TIMEOUT)
        models = {m.get("id") for m in data.get("data", [])}
        if models and self.model not in models:
            logger.warning(f"[{self.name}] model '{self.model}' not listed by /models")
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY
