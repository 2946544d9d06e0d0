"""
Pytest configuration and shared fixtures.

Fake collaborators record their calls so tests can assert on what the
orchestrator asked for, and can be told to fail or stall.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from dataroom_rag.core.config import RAGConfig, SearchConfig
from dataroom_rag.pipeline.events import RecordingEventSink, StageReporter
from dataroom_rag.pipeline.orchestrator import RAGOrchestrator
from dataroom_rag.schemas.intent import QueryExtraction, QueryRewriting
from dataroom_rag.schemas.pipeline import PipelineContext
from dataroom_rag.schemas.retrieval import (
    CompressedContext,
    GradedDocument,
    GradingResult,
    IndexedDocument,
    SearchResult,
)
from dataroom_rag.services.source_building import DocumentSourceBuilder
from dataroom_rag.services.streaming import StreamingAnswer
from dataroom_rag.utils.cancellation import CancellationSignal


# =============================================================================
# Builders
# =============================================================================

def make_result(chunk_id, document_id="doc-1", content=None, similarity=0.8, page=None):
    metadata = {"document_id": document_id}
    if page is not None:
        metadata["page_number"] = page
    return SearchResult(
        document_id=document_id,
        chunk_id=chunk_id,
        content=content if content is not None else f"content of {chunk_id}",
        similarity=similarity,
        metadata=metadata,
    )


def make_documents():
    return [
        IndexedDocument(document_id="doc-1", document_name="Lease Agreement", num_pages=12),
        IndexedDocument(document_id="doc-2", document_name="Financials", num_pages=8),
    ]


def make_extraction(rewrites=(), pages=(), hyde=None):
    return QueryExtraction(
        page_numbers=list(pages),
        query_rewriting=QueryRewriting(
            rewritten_queries=list(rewrites),
            hyde_answer=hyde,
            requires_hyde=hyde is not None,
        ),
    )


def make_context(query="What is the rent?", pages=(), signal=None, tracker=None, extraction=None):
    return PipelineContext(
        query=query,
        dataroom_id="room-1",
        indexed_documents=make_documents(),
        query_extraction=extraction or make_extraction(pages=pages),
        signal=signal or CancellationSignal(),
        correlation_id="rag_test",
        metadata_tracker=tracker,
    )


def make_config(timeout_ms=1000):
    search = SearchConfig(top_k=5, similarity_threshold=0.1, timeout_ms=timeout_ms)
    return RAGConfig(fast=search, standard=search, expanded=search, page_query=search)


# =============================================================================
# Fake collaborators
# =============================================================================

@dataclass
class SearchCall:
    query: str
    dataroom_id: str
    document_ids: list
    options: Any
    metadata_filter: Any


class FakeSearchService:
    def __init__(self, results=None, by_query=None, delays=None, fail_queries=()):
        self.results = results if results is not None else []
        self.by_query = by_query or {}
        self.delays = delays or {}
        self.fail_queries = set(fail_queries)
        self.calls: list[SearchCall] = []

    async def search(self, query, dataroom_id, document_ids, signal, options, metadata_filter=None):
        self.calls.append(SearchCall(query, dataroom_id, list(document_ids), options, metadata_filter))
        delay = self.delays.get(query, self.delays.get("*", 0))
        if delay:
            await asyncio.sleep(delay)
        if query in self.fail_queries:
            raise RuntimeError(f"search failed for {query}")
        return list(self.by_query.get(query, self.results))


class FakeReranker:
    """Reverses the order so tests can tell reranked from search order."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    async def rerank(self, query, results, signal):
        self.calls += 1
        if self.fail:
            raise RuntimeError("reranker down")
        return list(reversed(results))


class FakeCompressor:
    def __init__(self, fail=False, content="COMPRESSED"):
        self.fail = fail
        self.content = content
        self.calls = 0

    async def compress(self, results, query, signal, complexity_analysis=None):
        self.calls += 1
        if self.fail:
            raise RuntimeError("compressor down")
        return CompressedContext(content=self.content, original_tokens=100, compressed_tokens=10)


class FakeGrader:
    """Marks chunks relevant unless their id is listed in ``irrelevant``."""

    def __init__(self, fail=False, irrelevant=()):
        self.fail = fail
        self.irrelevant = set(irrelevant)
        self.calls = 0

    async def grade_and_filter(self, query, results, complexity_analysis=None):
        self.calls += 1
        if self.fail:
            raise RuntimeError("grader down")
        relevant = [
            GradedDocument(
                document_id=r.document_id,
                chunk_id=r.chunk_id,
                relevance_score=0.9,
                confidence=0.95,
                reasoning="graded",
                is_relevant=True,
                original_content=r.content,
                metadata=r.metadata,
            )
            for r in results
            if r.chunk_id not in self.irrelevant
        ]
        return GradingResult(relevant_documents=relevant, total_graded=len(results))


@dataclass
class GenerateCall:
    context_text: str
    query: str
    sources: list
    signal: Any
    chat_session_id: Any
    metadata_tracker: Any
    page_numbers: Any


async def _text_deltas(text):
    yield text


class FakeResponseGenerator:
    """``open_delay`` stalls before the answer stream is handed back."""

    def __init__(self, fail_answer=False, fail_fallback=False, open_delay=0):
        self.fail_answer = fail_answer
        self.fail_fallback = fail_fallback
        self.open_delay = open_delay
        self.answers: list[StreamingAnswer] = []
        self.answer_calls: list[GenerateCall] = []
        self.fallback_calls: list[str] = []

    async def generate_answer(self, context_text, messages, query, sources, signal,
                              chat_session_id=None, metadata_tracker=None, page_numbers=None):
        self.answer_calls.append(GenerateCall(
            context_text, query, list(sources), signal, chat_session_id, metadata_tracker, page_numbers,
        ))
        if self.fail_answer:
            raise RuntimeError("model unavailable")
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        answer = StreamingAnswer(_text_deltas(f"answer to {query}"), kind="answer", signal=signal)
        self.answers.append(answer)
        return answer

    async def create_fallback_response(self, reason_or_query, chat_session_id=None, metadata_tracker=None):
        self.fallback_calls.append(reason_or_query)
        if self.fail_fallback:
            raise RuntimeError("model unavailable")
        return StreamingAnswer.from_text(f"fallback: {reason_or_query}", kind="fallback")

    async def generate_simple_response(self, system_prompt, messages, signal=None,
                                       chat_session_id=None, metadata_tracker=None):
        return StreamingAnswer.from_text("simple", kind="simple")


@dataclass
class Collaborators:
    search: FakeSearchService = field(default_factory=FakeSearchService)
    reranker: FakeReranker = field(default_factory=FakeReranker)
    compressor: FakeCompressor = field(default_factory=FakeCompressor)
    grader: FakeGrader = field(default_factory=FakeGrader)
    generator: FakeResponseGenerator = field(default_factory=FakeResponseGenerator)
    events: RecordingEventSink = field(default_factory=RecordingEventSink)

    def build(self, timeout_ms=1000) -> RAGOrchestrator:
        return RAGOrchestrator(
            search_service=self.search,
            reranker=self.reranker,
            compressor=self.compressor,
            grader=self.grader,
            source_builder=DocumentSourceBuilder(),
            response_generator=self.generator,
            config=make_config(timeout_ms),
            event_sink=self.events,
        )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def collaborators():
    return Collaborators()


@pytest.fixture
def documents():
    return make_documents()


@pytest.fixture
def recorder():
    sink = RecordingEventSink()
    return sink, StageReporter(sink, "rag_test")
