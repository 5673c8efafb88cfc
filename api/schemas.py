from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.domain import ChatReply, CompletionOptions, ErrorKind, HealthStatus, SearchHit
from utils.helpers import truncate

class ChatRequest(BaseModel):
    message: str
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    top_p: Optional[float] = Field(default=None, gt=0.0, le=1.0)

    def options(self) -> Optional[CompletionOptions]:
        if self.temperature is None and self.max_tokens is None and self.top_p is None:
            return None
        return CompletionOptions(
            temperature=self.temperature, max_tokens=self.max_tokens, top_p=self.top_p
        )

class ContextChatRequest(ChatRequest):
    top_k: Optional[int] = Field(default=None, ge=0)

class ContextDocument(BaseModel):
    id: str
    snippet: str
    score: float

    @classmethod
    def from_hit(cls, hit: SearchHit, snippet_length: int = 300) -> "ContextDocument":
        return cls(
            id=hit.document.id,
            snippet=truncate(hit.document.content, snippet_length),
            score=hit.score,
        )

class ChatResponse(BaseModel):
    response: str
    model: str
    backend: str
    timestamp: datetime
    context: List[ContextDocument] = []

    @classmethod
    def from_reply(cls, reply: ChatReply) -> "ChatResponse":
        return cls(
            response=reply.response,
            model=reply.model,
            backend=reply.backend,
            timestamp=reply.timestamp,
            context=[ContextDocument.from_hit(h) for h in reply.context],
        )

class IngestResponse(BaseModel):
    status: str
    message: str
    count: int
    document_ids: List[str]

class SearchRequest(BaseModel):
    query: str
    top_k: Optional[int] = Field(default=None, ge=0)

class SearchResult(BaseModel):
    document_id: str
    content: str
    score: float

class SearchResponse(BaseModel):
    status: str
    query: str
    results: List[SearchResult]
    total_results: int

class DocumentAnalysisResponse(BaseModel):
    summary: str
    key_points: List[str]
    sentiment: str
    document_count: int

class ExtractRequest(BaseModel):
    text: str
    # "schema" shadows a BaseModel attribute
    schema_: str = Field(alias="schema")

    model_config = {"populate_by_name": True}

class ExtractResponse(BaseModel):
    extracted: str
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime

class BackendStatus(BaseModel):
    name: str
    model: str
    capabilities: List[str]
    status: HealthStatus
    last_checked: Optional[datetime] = None
    last_error: Optional[str] = None

class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: datetime
    documents_indexed: int
    backends: List[BackendStatus]

class ErrorDetail(BaseModel):
    kind: ErrorKind
    message: str
    partial_text: Optional[str] = None
