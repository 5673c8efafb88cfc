# services/gateway.py
"""
Gateway facade: the single entry point for callers.

Non-streaming operations return GatewayResult. Internal failures become
Err(kind, message) here and nowhere else; unexpected exceptions are logged
with their traceback and surfaced as Err(Internal).
"""
import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from core.domain import (
    Capability, ChatReply, CompletionChunk, CompletionOptions, CompletionRequest,
    DocumentAnalysis, ErrorKind, GatewayResult, IngestReport, SearchHit, StructuredExtraction,
)
from core.exceptions import (
    GatewayError, GatewayTimeoutError, InternalError, InvalidInputError, NoHealthyBackendError,
)
from core.interfaces import ICompletionBackend, IVectorIndex
from services.backend_pool import BackendPool
from services.completion_engine import StreamingCompletionEngine
from services.rag_orchestrator import RAGOrchestrator
from config import settings
from utils.common import utc_now
from utils.helpers import extract_section, parse_json_object, split_key_points

logger = logging.getLogger(settings.LOGGER_NAME)

ANALYSIS_TEMPLATE = """Analyze the following documents and provide:
1. A brief summary (2-3 sentences)
2. 3-5 key points
3. Overall sentiment (positive/negative/neutral)

Documents:
{documents}

Format your response as:
SUMMARY: [your summary]
KEY_POINTS: [point1]|[point2]|[point3]
SENTIMENT: [sentiment]"""

EXTRACTION_TEMPLATE = """Extract information from the following text according to this schema:
{schema}

Text:
{text}

Provide the output as a valid JSON object."""

class Gateway:
    """Chat, streaming chat, RAG chat, ingest, analysis and extraction."""

    def __init__(
        self,
        pool: BackendPool,
        index: IVectorIndex,
        engine: StreamingCompletionEngine,
        orchestrator: RAGOrchestrator,
        system_prompt: str = settings.SYSTEM_PROMPT,
        default_timeout: Optional[float] = settings.REQUEST_TIMEOUT,
        default_options: Optional[CompletionOptions] = None,
    ):
        self.pool = pool
        self.index = index
        self.engine = engine
        self.orchestrator = orchestrator
        self.system_prompt = system_prompt
        self.default_timeout = default_timeout
        self.default_options = default_options or CompletionOptions()

    # ---------- Error translation ----------

    async def _guard(self, operation: str, action: Callable[[], Awaitable[Any]]) -> GatewayResult:
        try:
            return GatewayResult.success(await action())
        except GatewayError as e:
            logger.warning(f"[GATEWAY] {operation} failed: {e}")
            return GatewayResult.failure(e.kind, _user_message(e), partial_text=e.partial_text)
        except Exception as e:
            logger.exception(f"[GATEWAY] {operation} hit an unexpected error: {e}")
            return GatewayResult.failure(ErrorKind.INTERNAL, "Internal error, see server logs")

    # ---------- Helpers ----------

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.default_timeout if timeout is None else timeout

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        """Loop time by which the whole operation must finish, None for no bound."""
        timeout = self._timeout(timeout)
        if timeout is None:
            return None
        if timeout <= 0:
            raise InvalidInputError("timeout must be positive")
        return asyncio.get_running_loop().time() + timeout

    def _remaining(self, deadline: Optional[float], timeout: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise GatewayTimeoutError(self._timeout(timeout))
        return remaining

    async def _within(self, step: Callable[[], Awaitable[Any]], deadline: Optional[float], timeout: Optional[float]) -> Any:
        """Run a pre-completion step (embedding, search) inside the deadline."""
        if deadline is None:
            return await step()
        remaining = self._remaining(deadline, timeout)
        try:
            return await asyncio.wait_for(step(), remaining)
        except asyncio.TimeoutError:
            logger.warning(f"[GATEWAY] Request timed out after {self._timeout(timeout):g}s before completion")
            raise GatewayTimeoutError(self._timeout(timeout)) from None

    async def _run(self, request: CompletionRequest, timeout: Optional[float], context: Optional[List[SearchHit]] = None) -> ChatReply:
        backend = self.pool.select(Capability.CHAT)
        result = await self.engine.chat(request, backend, self._timeout(timeout))
        return ChatReply(
            response=result.text,
            model=result.model,
            backend=result.backend,
            timestamp=utc_now(),
            context=context or [],
        )

    def _select_streaming(self) -> ICompletionBackend:
        try:
            return self.pool.select(Capability.STREAM)
        except NoHealthyBackendError:
            # chat-only backends still stream, as a single chunk
            return self.pool.select(Capability.CHAT)

    # ---------- Operations ----------

    async def chat(
        self,
        message: str,
        options: Optional[CompletionOptions] = None,
        timeout: Optional[float] = None,
    ) -> GatewayResult[ChatReply]:
        async def action():
            request = CompletionRequest.from_prompt(
                message, system_prompt=self.system_prompt, options=options or self.default_options
            )
            logger.info("[GATEWAY] Processing chat request")
            return await self._run(request, timeout)

        return await self._guard("chat", action)

    async def chat_stream(
        self,
        message: str,
        options: Optional[CompletionOptions] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[CompletionChunk]:
        """
        Yield chunks of the answer; the last one has is_final=True.

        Failures are raised as GatewayError (StreamInterruptedError keeps the
        partial text). Close the generator to cancel the backend call.
        """
        try:
            request = CompletionRequest.from_prompt(
                message, system_prompt=self.system_prompt, options=options or self.default_options
            )
            backend = self._select_streaming()
            logger.info(f"[GATEWAY] Streaming chat via '{backend.name}'")
            async with aclosing(self.engine.complete(request, backend, self._timeout(timeout))) as chunks:
                async for chunk in chunks:
                    yield chunk
        except GatewayError as e:
            logger.warning(f"[GATEWAY] chat_stream failed: {e}")
            raise
        except Exception as e:
            logger.exception(f"[GATEWAY] chat_stream hit an unexpected error: {e}")
            raise InternalError("Internal error, see server logs") from e

    async def chat_with_context(
        self,
        message: str,
        k: Optional[int] = None,
        options: Optional[CompletionOptions] = None,
        timeout: Optional[float] = None,
    ) -> GatewayResult[ChatReply]:
        async def action():
            logger.info("[GATEWAY] Processing context-aware chat")
            deadline = self._deadline(timeout)
            request, hits = await self._within(
                lambda: self.orchestrator.answer_with_context(
                    message, k, options=options or self.default_options
                ),
                deadline,
                timeout,
            )
            # the engine gets whatever is left of the same deadline
            return await self._run(request, self._remaining(deadline, timeout), context=hits)

        return await self._guard("chat_with_context", action)

    async def ingest_documents(self, texts: Sequence[str]) -> GatewayResult[IngestReport]:
        async def action():
            logger.info(f"[GATEWAY] Adding {len(texts)} documents to the index")
            stored = await self.orchestrator.ingest(list(texts))
            return IngestReport(count=len(stored), document_ids=[d.id for d in stored])

        return await self._guard("ingest_documents", action)

    async def search(
        self,
        query: str,
        k: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> GatewayResult[List[SearchHit]]:
        async def action():
            deadline = self._deadline(timeout)
            return await self._within(lambda: self.orchestrator.retrieve(query, k), deadline, timeout)

        return await self._guard("search", action)

    async def analyze_documents(
        self,
        texts: Sequence[str],
        timeout: Optional[float] = None,
    ) -> GatewayResult[DocumentAnalysis]:
        async def action():
            if not texts or not any(isinstance(t, str) and t.strip() for t in texts):
                raise InvalidInputError("No documents to analyze")
            logger.info(f"[GATEWAY] Analyzing {len(texts)} documents")

            prompt = ANALYSIS_TEMPLATE.format(documents="\n\n".join(texts))
            request = CompletionRequest.from_prompt(prompt, options=self.default_options)
            reply = await self._run(request, timeout)

            content = reply.response
            return DocumentAnalysis(
                summary=extract_section(content, "SUMMARY:"),
                key_points=split_key_points(extract_section(content, "KEY_POINTS:")),
                sentiment=extract_section(content, "SENTIMENT:"),
                document_count=len(texts),
            )

        return await self._guard("analyze_documents", action)

    async def extract_structured(
        self,
        text: str,
        schema: str,
        timeout: Optional[float] = None,
    ) -> GatewayResult[StructuredExtraction]:
        """
        Ask the model for a JSON object following `schema`.

        The schema is only shown to the model, never enforced. `data` is the
        answer parsed as a JSON object when that succeeds, else None.
        """
        async def action():
            if not isinstance(text, str) or not text.strip():
                raise InvalidInputError("Text to extract from must not be empty")
            if not isinstance(schema, str) or not schema.strip():
                raise InvalidInputError("Schema must not be empty")
            logger.info("[GATEWAY] Extracting structured data")

            prompt = EXTRACTION_TEMPLATE.format(schema=schema, text=text)
            request = CompletionRequest.from_prompt(prompt, options=self.default_options)
            reply = await self._run(request, timeout)
            return StructuredExtraction(
                extracted=reply.response,
                data=parse_json_object(reply.response),
                timestamp=reply.timestamp,
            )

        return await self._guard("extract_structured", action)

    async def status(self) -> Dict[str, Any]:
        descriptors = self.pool.descriptors()
        return {
            "backends": descriptors,
            "documents_indexed": await self.index.count(),
            "index_dimension": self.index.dimension,
            "health_checks_running": self.pool.running,
        }

    async def aclose(self) -> None:
        await self.pool.aclose()


def _user_message(error: GatewayError) -> str:
    messages = {
        ErrorKind.NO_HEALTHY_BACKEND: "No model backend is available right now, try again later",
        ErrorKind.TIMEOUT: "The model did not answer in time",
    }
    return messages.get(error.kind, error.message)
