# services/completion_engine.py
"""
Streaming completion engine.

complete() exposes a backend's answer as an async generator of
CompletionChunk with two suspension points:

1. the producer task waits on the backend for the next delta
2. the producer waits for the consumer to take the previous delta
   (asyncio.Queue(maxsize=1), so at most one chunk is ever buffered)

Closing the generator, breaking out of `async with aclosing(...)`, or
cancelling the consuming task cancels the producer, which closes the backend
stream. Shutdown waits at most `cancel_timeout` seconds.
"""
import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from core.domain import Capability, CompletionChunk, CompletionRequest, CompletionResult
from core.exceptions import (
    BackendUnavailableError, GatewayError, GatewayTimeoutError, InvalidInputError,
    StreamInterruptedError,
)
from core.interfaces import ICompletionBackend
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

FailureCallback = Callable[[str, Exception], None]


@dataclass(frozen=True)
class _StreamItem:
    text: str = ""
    error: Optional[Exception] = None
    done: bool = False


class StreamingCompletionEngine:
    """Runs one completion request against one backend. Never retries."""

    def __init__(
        self,
        on_failure: Optional[FailureCallback] = None,
        cancel_timeout: float = settings.STREAM_CANCEL_TIMEOUT,
    ):
        self._on_failure = on_failure
        self._cancel_timeout = cancel_timeout

    async def complete(
        self,
        request: CompletionRequest,
        backend: ICompletionBackend,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[CompletionChunk]:
        """
        Yield chunks until a final chunk (is_final=True, empty text).

        Raises:
            StreamInterruptedError: backend failed after partial output
                (partial_text holds everything yielded so far)
            BackendUnavailableError: backend failed before any output
            GatewayTimeoutError: `timeout` seconds elapsed first
        """
        if not isinstance(request, CompletionRequest):
            raise InvalidInputError("complete() expects a CompletionRequest")
        if timeout is not None and timeout <= 0:
            raise InvalidInputError("timeout must be positive")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        producer = asyncio.create_task(
            self._produce(request, backend, queue), name=f"completion:{backend.name}"
        )

        received = []
        sequence = 0
        try:
            while True:
                item = await self._next_item(queue, deadline, timeout)
                if item.error is not None:
                    raise self._failed(backend, item.error, "".join(received))
                if item.done:
                    yield CompletionChunk(sequence=sequence, text="", is_final=True)
                    return
                received.append(item.text)
                yield CompletionChunk(sequence=sequence, text=item.text)
                sequence += 1
        finally:
            await self._shutdown(producer, backend)

    async def chat(
        self,
        request: CompletionRequest,
        backend: ICompletionBackend,
        timeout: Optional[float] = None,
    ) -> CompletionResult:
        """complete() driven to the end and concatenated."""
        parts = []
        async with aclosing(self.complete(request, backend, timeout)) as chunks:
            async for chunk in chunks:
                parts.append(chunk.text)
        return CompletionResult(
            text="".join(parts),
            model=backend.model,
            backend=backend.name,
            chunk_count=len(parts) - 1,
        )

    # ---------- Internals ----------

    async def _produce(self, request: CompletionRequest, backend: ICompletionBackend, queue: asyncio.Queue) -> None:
        try:
            if Capability.STREAM in backend.capabilities:
                async with aclosing(backend.stream(request)) as deltas:
                    async for delta in deltas:
                        if delta:
                            await queue.put(_StreamItem(text=delta))
            else:
                response = await backend.call(request)
                if response.text:
                    await queue.put(_StreamItem(text=response.text))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put(_StreamItem(error=e))
        else:
            await queue.put(_StreamItem(done=True))

    async def _next_item(self, queue: asyncio.Queue, deadline: Optional[float], timeout: Optional[float]) -> _StreamItem:
        if deadline is None:
            return await queue.get()
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise GatewayTimeoutError(timeout)
        try:
            return await asyncio.wait_for(queue.get(), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(f"[ENGINE] Request timed out after {timeout:g}s")
            raise GatewayTimeoutError(timeout)

    def _failed(self, backend: ICompletionBackend, error: Exception, partial_text: str) -> GatewayError:
        if self._on_failure is not None:
            self._on_failure(backend.name, error)

        if partial_text:
            logger.warning(
                f"[ENGINE] {backend.name} failed after {len(partial_text)} chars: {error}"
            )
            return StreamInterruptedError(
                f"{backend.name} stream interrupted: {_describe(error)}",
                partial_text=partial_text,
                backend=backend.name,
            )
        if isinstance(error, GatewayError):
            return error
        logger.error(f"[ENGINE] {backend.name} raised {type(error).__name__}: {error}")
        return BackendUnavailableError(f"{backend.name} failed: {error}", backend=backend.name)

    async def _shutdown(self, producer: asyncio.Task, backend: ICompletionBackend) -> None:
        if producer.done():
            return
        producer.cancel()
        done, _ = await asyncio.wait({producer}, timeout=self._cancel_timeout)
        if not done:
            logger.warning(
                f"[ENGINE] {backend.name} stream did not close within {self._cancel_timeout:g}s"
            )


def _describe(error: Exception) -> str:
    return error.message if isinstance(error, GatewayError) else str(error)
