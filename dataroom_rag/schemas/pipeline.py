"""
PipelineContext carries the immutable per-request inputs through every
stage of one orchestrator run.

It is built once in ``RAGOrchestrator.process_query`` and never shared
between requests.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from dataroom_rag.schemas.intent import (
    ComplexityAnalysis,
    QueryExtraction,
    QueryIntent,
)
from dataroom_rag.schemas.response import ChatMessage
from dataroom_rag.schemas.retrieval import IndexedDocument
from dataroom_rag.utils.cancellation import CancellationSignal


class PipelineContext(BaseModel):
    """Frozen request context threaded through all pipeline stages."""

    # ── Inputs ───────────────────────────────────────────────────────
    query: str
    dataroom_id: str
    indexed_documents: list[IndexedDocument] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)
    intent: QueryIntent = QueryIntent.GENERAL_INQUIRY
    complexity_analysis: ComplexityAnalysis | None = None
    query_extraction: QueryExtraction | None = None

    # ── Cross-cutting ────────────────────────────────────────────────
    signal: CancellationSignal
    correlation_id: str = ""
    chat_session_id: str | None = None
    # ChatMetadataTracker; typed loosely because the tracker module imports
    # these schemas
    metadata_tracker: Any = None

    class Config:
        arbitrary_types_allowed = True
        frozen = True

    @property
    def document_ids(self) -> list[str]:
        return [doc.document_id for doc in self.indexed_documents]

    @property
    def page_numbers(self) -> list[int]:
        if self.query_extraction is None:
            return []
        return list(self.query_extraction.page_numbers)
