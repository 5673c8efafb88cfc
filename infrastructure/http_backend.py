# infrastructure/http_backend.py
"""Shared httpx plumbing for HTTP completion backends"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, FrozenSet, Optional

import httpx

from core.domain import Capability
from core.exceptions import BackendUnavailableError
from core.interfaces import ICompletionBackend
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class HTTPCompletionBackend(ICompletionBackend):
    """
    Base class owning one httpx.AsyncClient per backend.

    Every httpx failure is translated into BackendUnavailableError so that no
    transport exception type leaves the infrastructure layer.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        model: str,
        capabilities: FrozenSet[Capability],
        headers: Optional[Dict[str, str]] = None,
        timeout: float = settings.REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.model = model
        self.capabilities = frozenset(capabilities)
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=settings.CONNECT_TIMEOUT),
            transport=transport,
        )
        logger.debug(f"Initialized {type(self).__name__}: name={name}, base_url={self.base_url}, model={model}")

    async def _get_json(self, path: str, timeout: Optional[float] = None) -> Any:
        try:
            response = await self._client.get(path, timeout=timeout or httpx.USE_CLIENT_DEFAULT)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise self._translate(e, path)
        except json.JSONDecodeError as e:
            raise BackendUnavailableError(f"Invalid JSON from {self.name}: {e}", backend=self.name)

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise self._translate(e, path)
        except json.JSONDecodeError as e:
            raise BackendUnavailableError(f"Invalid JSON from {self.name}: {e}", backend=self.name)

    @asynccontextmanager
    async def _stream_lines(self, path: str, payload: Dict[str, Any]) -> AsyncIterator[AsyncIterator[str]]:
        """
        POST and expose the response body line by line.

        Leaving the context closes the connection, including when the consumer
        is cancelled halfway through.
        """
        try:
            async with self._client.stream("POST", path, json=payload) as response:
                if response.is_error:
                    await response.aread()
                    response.raise_for_status()
                yield self._lines(response, path)
        except httpx.HTTPError as e:
            raise self._translate(e, path)

    async def _lines(self, response: httpx.Response, path: str) -> AsyncIterator[str]:
        try:
            async for line in response.aiter_lines():
                if line:
                    yield line
        except httpx.HTTPError as e:
            raise self._translate(e, path)

    def _translate(self, error: httpx.HTTPError, path: str) -> BackendUnavailableError:
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            body = error.response.text[:200]
            logger.warning(f"[{self.name}] {path} returned {status}: {body}")
            return BackendUnavailableError(
                f"{self.name} returned HTTP {status}", backend=self.name, status_code=status
            )
        if isinstance(error, httpx.TimeoutException):
            logger.warning(f"[{self.name}] {path} timed out")
            return BackendUnavailableError(f"{self.name} timed out", backend=self.name)
        if isinstance(error, httpx.ConnectError):
            logger.warning(f"[{self.name}] cannot connect to {self.base_url}")
            return BackendUnavailableError(
                f"Cannot connect to {self.name} at {self.base_url}", backend=self.name
            )
        logger.warning(f"[{self.name}] {path} failed: {error}")
        return BackendUnavailableError(f"{self.name} request failed: {error}", backend=self.name)

    def _unsupported(self, capability: Capability) -> BackendUnavailableError:
        return BackendUnavailableError(
            f"{self.name} does not support '{capability.value}'", backend=self.name
        )

    async def aclose(self) -> None:
        await self._client.aclose()
