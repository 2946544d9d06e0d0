"""
Schemas for the API layer and for the per-message metadata stored
alongside every assistant answer.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from dataroom_rag.schemas.intent import (
    ComplexityAnalysis,
    QueryExtraction,
    QueryIntent,
    SearchStrategy,
)
from dataroom_rag.schemas.retrieval import IndexedDocument


# ── Conversation ────────────────────────────────────────────────────
class ChatMessage(BaseModel):
    role: str  # user | assistant | system
    content: str


# ── Chat metadata (tracked per request, stored with the answer) ─────
class TokenUsage(BaseModel):
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


class ErrorInfo(BaseModel):
    type: str
    message: str
    is_retryable: bool = False


class QueryAnalysisInfo(BaseModel):
    query_type: str = "document_question"
    intent: str | None = None
    complexity_level: str | None = None


class SearchStrategyInfo(BaseModel):
    strategy: str
    confidence: float = 1.0


class ChatMetadata(BaseModel):
    """Diagnostic metadata attached to every stored assistant message."""
    query_analysis: QueryAnalysisInfo | None = None
    search_strategy: SearchStrategyInfo | None = None
    token_usage: TokenUsage | None = None
    error: ErrorInfo | None = None
    timings_ms: dict[str, float] = Field(default_factory=dict)
    total_time_ms: float | None = None


# ── External API schemas ────────────────────────────────────────────
class ChatRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=4000)
    documents: list[IndexedDocument] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)
    strategy: SearchStrategy | str = SearchStrategy.STANDARD
    intent: QueryIntent = QueryIntent.GENERAL_INQUIRY
    complexity_analysis: ComplexityAnalysis | None = None
    query_extraction: QueryExtraction | None = None
    chat_session_id: str | None = None
    timeout_ms: int | None = None


def as_event_payload(obj: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """JSON-safe dict for SSE payloads."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", exclude_none=True)
    return obj
