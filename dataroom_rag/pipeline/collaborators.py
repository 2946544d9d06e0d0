"""
Call contracts of the collaborators the orchestrator drives.

The orchestrator only depends on these protocols; default
implementations live in ``dataroom_rag.services``.
"""

from __future__ import annotations

from typing import Any, Protocol

from dataroom_rag.schemas.intent import ComplexityAnalysis
from dataroom_rag.schemas.response import ChatMessage
from dataroom_rag.schemas.retrieval import (
    CompressedContext,
    GradedDocument,
    GradingResult,
    IndexedDocument,
    MetadataFilter,
    SearchOptions,
    SearchResult,
    Source,
)
from dataroom_rag.services.streaming import StreamingAnswer
from dataroom_rag.utils.cancellation import CancellationSignal


class SearchService(Protocol):
    async def search(
        self,
        query: str,
        dataroom_id: str,
        document_ids: list[str],
        signal: CancellationSignal,
        options: SearchOptions,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SearchResult]:
        ...


class Reranker(Protocol):
    async def rerank(
        self,
        query: str,
        results: list[SearchResult],
        signal: CancellationSignal,
    ) -> list[SearchResult]:
        ...


class ContextCompressor(Protocol):
    async def compress(
        self,
        results: list[SearchResult],
        query: str,
        signal: CancellationSignal,
        complexity_analysis: ComplexityAnalysis | None = None,
    ) -> CompressedContext:
        ...


class DocumentGrader(Protocol):
    async def grade_and_filter(
        self,
        query: str,
        results: list[SearchResult],
        complexity_analysis: ComplexityAnalysis | None = None,
    ) -> GradingResult:
        ...


class SourceBuilder(Protocol):
    def build_sources(
        self,
        graded: list[GradedDocument],
        raw: list[SearchResult],
        indexed_documents: list[IndexedDocument],
    ) -> list[Source]:
        ...


class ResponseGenerator(Protocol):
    """Answer generation; every entry point returns a live StreamingAnswer."""

    async def generate_answer(
        self,
        context_text: str,
        messages: list[ChatMessage],
        query: str,
        sources: list[Source],
        signal: CancellationSignal | None,
        chat_session_id: str | None = None,
        metadata_tracker: Any = None,
        page_numbers: list[int] | None = None,
    ) -> StreamingAnswer:
        ...

    async def create_fallback_response(
        self,
        reason_or_query: str,
        chat_session_id: str | None = None,
        metadata_tracker: Any = None,
    ) -> StreamingAnswer:
        ...

    async def generate_simple_response(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        signal: CancellationSignal | None = None,
        chat_session_id: str | None = None,
        metadata_tracker: Any = None,
    ) -> StreamingAnswer:
        ...


class MessageStore(Protocol):
    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        ...
