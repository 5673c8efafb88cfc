# api/endpoints.py
"""
HTTP surface of the gateway.

Thin layer: each route calls one Gateway operation and turns an Err result
into an HTTPException whose detail carries the stable error kind.
"""
import json
import logging
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from api.schemas import (
    BackendStatus, ChatRequest, ChatResponse, ContextChatRequest, DocumentAnalysisResponse,
    ErrorDetail, ExtractRequest, ExtractResponse, HealthResponse, IngestResponse,
    SearchRequest, SearchResponse, SearchResult,
)
from config import settings
from core.domain import CompletionChunk, ErrorKind, GatewayErrorInfo, GatewayResult, HealthStatus
from core.exceptions import GatewayError
from services.gateway import Gateway
from utils.common import utc_now
from utils.retry import RetryConfig, retry_result

logger = logging.getLogger(settings.LOGGER_NAME)

router = APIRouter(prefix="/api/ai")

STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.DIMENSION_MISMATCH: 422,
    ErrorKind.NO_HEALTHY_BACKEND: 503,
    ErrorKind.BACKEND_UNAVAILABLE: 502,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.INTERNAL: 500,
}


# ---------- Dependencies & helpers ----------
def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def _http_error(error: GatewayErrorInfo) -> HTTPException:
    detail = ErrorDetail(kind=error.kind, message=error.message, partial_text=error.partial_text)
    return HTTPException(status_code=STATUS_BY_KIND[error.kind], detail=detail.model_dump(mode="json"))


def _unwrap(result: GatewayResult):
    if not result.is_ok:
        raise _http_error(result.error)
    return result.payload


def _sse(data: str, event: Optional[str] = None) -> str:
    """One server-sent event; multi-line data becomes several data: fields."""
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


# ---------- Chat ----------
@router.post("/chat", response_model=ChatResponse)
async def chat(
    chat_request: ChatRequest,
    gateway: Gateway = Depends(get_gateway),
) -> ChatResponse:
    logger.info("Received chat request")
    result = await retry_result(
        lambda: gateway.chat(chat_request.message, options=chat_request.options()),
        RetryConfig.from_settings(),
        operation_name="chat",
    )
    return ChatResponse.from_reply(_unwrap(result))


@router.get("/chat/stream")
async def chat_stream(
    message: str = Query(...),
    gateway: Gateway = Depends(get_gateway),
) -> StreamingResponse:
    """
    Server-sent events: one `data:` event per delta, then `event: end`.
    A failure mid-stream ends with `event: error` carrying kind, message and
    the partial text.
    """
    logger.info("Received streaming chat request")
    stream = gateway.chat_stream(message)

    # Pull the first chunk before committing to a 200 so that invalid input
    # or a missing backend is still reported as a plain HTTP error.
    try:
        first = await anext(stream)
    except GatewayError as e:
        await stream.aclose()
        raise _http_error(GatewayErrorInfo(e.kind, e.message, e.partial_text))

    async def events(first: CompletionChunk, rest: AsyncIterator[CompletionChunk]):
        chunk = first
        try:
            while True:
                if chunk.is_final:
                    yield _sse("", event="end")
                    return
                yield _sse(chunk.text)
                chunk = await anext(rest)
        except GatewayError as e:
            detail = ErrorDetail(kind=e.kind, message=e.message, partial_text=e.partial_text)
            yield _sse(json.dumps(detail.model_dump(mode="json")), event="error")
        finally:
            await rest.aclose()

    return StreamingResponse(events(first, stream), media_type="text/event-stream")


@router.post("/chat/context", response_model=ChatResponse)
async def chat_with_context(
    chat_request: ContextChatRequest,
    gateway: Gateway = Depends(get_gateway),
) -> ChatResponse:
    logger.info("Received context-aware chat request")
    result = await retry_result(
        lambda: gateway.chat_with_context(
            chat_request.message, k=chat_request.top_k, options=chat_request.options()
        ),
        RetryConfig.from_settings(),
        operation_name="chat_with_context",
    )
    return ChatResponse.from_reply(_unwrap(result))


# ---------- Documents ----------
@router.post("/documents", response_model=IngestResponse)
async def add_documents(
    documents: List[str],
    gateway: Gateway = Depends(get_gateway),
) -> IngestResponse:
    logger.info("Adding documents to knowledge base")
    report = _unwrap(await gateway.ingest_documents(documents))
    return IngestResponse(
        status="success",
        message=f"Successfully added {report.count} documents",
        count=report.count,
        document_ids=report.document_ids,
    )


@router.post("/documents/search", response_model=SearchResponse)
async def search_documents(
    search_request: SearchRequest,
    gateway: Gateway = Depends(get_gateway),
) -> SearchResponse:
    top_k = settings.RAG_TOP_K if search_request.top_k is None else search_request.top_k
    top_k = min(top_k, settings.MAX_SEARCH_RESULTS)
    hits = _unwrap(await gateway.search(search_request.query, top_k))
    results = [
        SearchResult(document_id=h.document.id, content=h.document.content, score=h.score)
        for h in hits
    ]
    return SearchResponse(
        status="success",
        query=search_request.query,
        results=results,
        total_results=len(results),
    )


@router.post("/documents/analyze", response_model=DocumentAnalysisResponse)
async def analyze_documents(
    documents: List[str],
    gateway: Gateway = Depends(get_gateway),
) -> DocumentAnalysisResponse:
    logger.info("Analyzing documents")
    analysis = _unwrap(await gateway.analyze_documents(documents))
    return DocumentAnalysisResponse(
        summary=analysis.summary,
        key_points=analysis.key_points,
        sentiment=analysis.sentiment,
        document_count=analysis.document_count,
    )


@router.post("/extract", response_model=ExtractResponse)
async def extract_structured_data(
    extract_request: ExtractRequest,
    gateway: Gateway = Depends(get_gateway),
) -> ExtractResponse:
    logger.info("Extracting structured data")
    extraction = _unwrap(await gateway.extract_structured(extract_request.text, extract_request.schema_))
    return ExtractResponse(
        extracted=extraction.extracted,
        data=extraction.data,
        timestamp=extraction.timestamp,
    )


# ---------- Health & providers ----------
@router.get("/health", response_model=HealthResponse)
async def health(gateway: Gateway = Depends(get_gateway)) -> HealthResponse:
    """
    Gateway health.

    status is "healthy" when some backend is healthy, "degraded" when only
    degraded backends remain and "unavailable" otherwise.
    """
    status = await gateway.status()
    statuses = {d.status for d in status["backends"]}
    if HealthStatus.HEALTHY in statuses:
        overall = "healthy"
    elif HealthStatus.DEGRADED in statuses:
        overall = "degraded"
    else:
        overall = "unavailable"

    return HealthResponse(
        status=overall,
        service=settings.APP_TITLE,
        version=settings.APP_VERSION,
        timestamp=utc_now(),
        documents_indexed=status["documents_indexed"],
        backends=[
            BackendStatus(
                name=d.name,
                model=d.model,
                capabilities=sorted(c.value for c in d.capabilities),
                status=d.status,
                last_checked=d.last_checked,
                last_error=d.last_error,
            )
            for d in status["backends"]
        ],
    )


@router.get("/provider/info")
async def provider_info(gateway: Gateway = Depends(get_gateway)):
    """Which providers are configured, in failover order."""
    return {
        "message": "Provider-agnostic gateway",
        "failover_order": [d.name for d in gateway.pool.descriptors()],
        "providers": {
            d.name: {"model": d.model, "capabilities": sorted(c.value for c in d.capabilities)}
            for d in gateway.pool.descriptors()
        },
        "embedder": settings.EMBEDDER_PROVIDER,
    }
