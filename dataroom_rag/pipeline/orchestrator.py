"""
Pipeline Orchestrator: top-level entry point.

Validates page requests, then runs one of four strategy pipelines:

  FastVectorSearch      retrieval -> sources -> generation
  StandardVectorSearch  retrieval -> rerank ∥ compress -> grade -> sources -> generation
  ExpandedSearch        as standard, with more query variants (+ HyDE)
  PageQueryStrategy     raw-query retrieval on the requested pages -> sources -> generation

Every failure except disposal and caller cancellation is converted
into a fallback answer: the product always answers something.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from dataroom_rag.core.config import RAGConfig, Settings
from dataroom_rag.core.errors import (
    PipelineDisposedError,
    is_cancellation,
    is_timeout,
)
from dataroom_rag.pipeline.collaborators import (
    ContextCompressor,
    DocumentGrader,
    Reranker,
    ResponseGenerator,
    SearchService,
    SourceBuilder,
)
from dataroom_rag.pipeline.events import EventSink, LoggingEventSink, StageReporter
from dataroom_rag.pipeline.page_validation import validate_pages_against_documents
from dataroom_rag.pipeline.query_variants import build_queries_for_strategy
from dataroom_rag.pipeline.refinement import (
    join_contents,
    refine_results,
    synthesize_fast_path,
    synthesize_page_matches,
)
from dataroom_rag.pipeline.retrieval import perform_vector_search
from dataroom_rag.schemas.intent import (
    ComplexityAnalysis,
    QueryExtraction,
    QueryIntent,
    SearchStrategy,
)
from dataroom_rag.schemas.pipeline import PipelineContext
from dataroom_rag.schemas.response import ChatMessage
from dataroom_rag.schemas.retrieval import (
    GradedDocument,
    IndexedDocument,
    SearchResult,
    Source,
)
from dataroom_rag.services.metadata_tracker import ChatMetadataTracker
from dataroom_rag.services.streaming import StreamingAnswer
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.logging import get_logger
from dataroom_rag.utils.timing import Timer

logger = get_logger("dataroom_rag.pipeline.orchestrator")

TIMEOUT_MESSAGE = (
    "The request took too long to process. "
    "Please try a simpler query or try again later."
)
UNAVAILABLE_MESSAGE = (
    "I wasn't able to answer that right now. "
    "Please try again in a moment."
)


class RAGOrchestrator:
    """
    Owns strategy dispatch, degradation and cancellation for one
    process.  Collaborators and configuration are injected; the only
    state mutated after construction is the disposed flag.
    """

    def __init__(
        self,
        search_service: SearchService,
        reranker: Reranker,
        compressor: ContextCompressor,
        grader: DocumentGrader,
        source_builder: SourceBuilder,
        response_generator: ResponseGenerator,
        config: RAGConfig,
        event_sink: EventSink | None = None,
    ):
        self._search_service = search_service
        self._reranker = reranker
        self._compressor = compressor
        self._grader = grader
        self._source_builder = source_builder
        self._response_generator = response_generator
        self._config = config
        self._event_sink = event_sink or LoggingEventSink()
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        logger.info("RAGOrchestrator disposed; new queries will be rejected")

    # ── Entry point ─────────────────────────────────────────────────

    async def process_query(
        self,
        query: str,
        dataroom_id: str,
        indexed_documents: list[IndexedDocument],
        messages: list[ChatMessage],
        strategy: SearchStrategy | str = SearchStrategy.STANDARD,
        intent: QueryIntent | str = QueryIntent.GENERAL_INQUIRY,
        complexity_analysis: ComplexityAnalysis | None = None,
        query_extraction: QueryExtraction | None = None,
        timeout_ms: int = 50000,
        abort_signal: CancellationSignal | None = None,
        chat_session_id: str | None = None,
        metadata_tracker: ChatMetadataTracker | None = None,
    ) -> StreamingAnswer:
        """
        Run the RAG pipeline and return a live answer stream.

        Raises ``PipelineDisposedError`` after ``dispose()`` and re-raises
        cancellation when the caller aborted; every other failure comes
        back as a fallback answer.
        """
        if self._disposed:
            raise PipelineDisposedError(
                "RAGOrchestrator has been disposed", {"service": "RAGOrchestrator"},
            )

        correlation_id = f"rag_{uuid.uuid4()}"
        report = StageReporter(self._event_sink, correlation_id)
        strategy = SearchStrategy.parse(strategy)
        intent = QueryIntent.parse(intent)
        tracker = metadata_tracker

        if tracker is not None:
            tracker.start_total()
            tracker.set_query_analysis(
                query_type="document_question",
                intent=intent.value,
                complexity_level=complexity_analysis.complexity_level if complexity_analysis else None,
            )
            tracker.set_search_strategy(strategy.value, confidence=1.0)

        report("STARTING", f'RAG Pipeline: {strategy.value} | "{query[:80]}"')

        timer = Timer().start()
        deadline = CancellationSignal.timeout(timeout_ms / 1000)
        signal = CancellationSignal.any(abort_signal, deadline)
        # The deadline keeps bounding a grounded answer until its stream
        # closes; every other exit releases it immediately.
        keep_deadline = False

        try:
            if abort_signal is not None:
                abort_signal.raise_if_aborted()

            page_numbers = query_extraction.page_numbers if query_extraction else []
            if page_numbers:
                validation = validate_pages_against_documents(page_numbers, indexed_documents)
                if not validation.is_valid and validation.error_message:
                    report(
                        "INVALID_PAGES", validation.error_message, logging.WARNING,
                        invalid_pages=validation.invalid_pages,
                        max_pages=validation.max_pages,
                    )
                    if tracker is not None:
                        tracker.set_error(
                            type="InvalidPageRequest",
                            message=validation.error_message,
                            is_retryable=False,
                        )
                    return await self._fallback(
                        validation.error_message,
                        static_text=validation.error_message,
                        chat_session_id=chat_session_id,
                        tracker=tracker,
                    )

            context = PipelineContext(
                query=query,
                dataroom_id=dataroom_id,
                indexed_documents=indexed_documents,
                messages=messages,
                intent=intent,
                complexity_analysis=complexity_analysis,
                query_extraction=query_extraction,
                signal=signal,
                correlation_id=correlation_id,
                chat_session_id=chat_session_id,
                metadata_tracker=tracker,
            )

            answer = await self._execute_strategy_pipeline(strategy, context, report)
            if answer.kind == "answer":
                answer.add_close_callback(deadline.close)
                keep_deadline = True

            elapsed = timer.stop()
            report(
                "COMPLETE", f"{strategy.value} | {elapsed * 1000:.0f}ms",
                duration_ms=round(elapsed * 1000, 1),
                strategy=strategy.value,
                answer_kind=answer.kind,
            )
            return answer

        except Exception as error:
            cancelled = is_cancellation(error) or (abort_signal is not None and abort_signal.aborted)
            if tracker is not None:
                tracker.set_error(
                    type=getattr(error, "error_type", type(error).__name__),
                    message=str(error),
                    is_retryable=not cancelled,
                )

            if cancelled:
                report("ABORTED", "Pipeline aborted by user")
                raise

            if is_timeout(error):
                report("TIMEOUT", f"Pipeline exceeded {timeout_ms}ms limit", logging.WARNING)
                return await self._fallback(
                    TIMEOUT_MESSAGE,
                    static_text=TIMEOUT_MESSAGE,
                    chat_session_id=chat_session_id,
                    tracker=tracker,
                )

            logger.error("RAG pipeline failed [%s]: %s", correlation_id, error, exc_info=True)
            report("FAILED", str(error) or type(error).__name__, logging.ERROR)
            return await self._fallback(query, chat_session_id=chat_session_id, tracker=tracker)

        finally:
            if not keep_deadline:
                deadline.close()
            if tracker is not None:
                tracker.end_total()

    # ── Strategy pipelines ──────────────────────────────────────────

    async def _execute_strategy_pipeline(
        self,
        strategy: SearchStrategy,
        context: PipelineContext,
        report: StageReporter,
    ) -> StreamingAnswer:
        if strategy == SearchStrategy.PAGE_QUERY:
            return await self._execute_page_query_pipeline(context, report)
        return await self._execute_vector_pipeline(strategy, context, report)

    async def _execute_vector_pipeline(
        self,
        strategy: SearchStrategy,
        context: PipelineContext,
        report: StageReporter,
    ) -> StreamingAnswer:
        """Fast, standard and expanded search share everything but refinement."""
        search_queries = build_queries_for_strategy(
            context.query, context.query_extraction, strategy,
        )
        report("QUERIES", f"Using {len(search_queries)} queries", strategy=strategy.value)

        with _tracked_stage(context, "retrieval"):
            search_results = await self._search(search_queries, context, strategy, report)
        context.signal.raise_if_aborted()

        if not search_results:
            report("NO_RESULTS", "No results found, generating fallback response...", logging.WARNING)
            return await self._fallback_for(context)

        if strategy == SearchStrategy.FAST:
            report("FAST_PATH_OPTIMIZATION", "Skipping rerank, compression and grading")
            graded = synthesize_fast_path(search_results)
            ranked = search_results
            context_text = join_contents(search_results)
        else:
            with _tracked_stage(context, "refinement"):
                outcome = await refine_results(
                    context,
                    search_results,
                    self._reranker,
                    self._compressor,
                    self._grader,
                    report,
                )
            graded = outcome.graded
            ranked = outcome.reranked
            context_text = outcome.context_text

        sources = self._build_sources(context, graded, ranked, report)
        return await self._generate(
            context,
            context_text,
            sources,
            context.page_numbers or None,
            report,
        )

    async def _execute_page_query_pipeline(
        self,
        context: PipelineContext,
        report: StageReporter,
    ) -> StreamingAnswer:
        report("PAGE_QUERY_PIPELINE", "Starting page-specific pipeline...")

        with _tracked_stage(context, "retrieval"):
            search_results = await self._search(
                [context.query], context, SearchStrategy.PAGE_QUERY, report,
            )
        context.signal.raise_if_aborted()

        if not search_results:
            report("NO_PAGE_RESULTS", "No results found for requested page", logging.WARNING)
            return await self._fallback_for(context)

        graded = synthesize_page_matches(search_results)
        sources = self._build_sources(context, graded, search_results, report)
        context_text = join_contents(search_results)
        report(
            "PAGE_CONTEXT",
            f"Context length: {len(context_text)}, Sources: {len(sources)}",
            pages=context.page_numbers,
        )
        return await self._generate(
            context, context_text, sources, context.page_numbers, report,
        )

    # ── Shared steps ────────────────────────────────────────────────

    async def _search(
        self,
        search_queries: list[str],
        context: PipelineContext,
        strategy: SearchStrategy,
        report: StageReporter,
    ) -> list[SearchResult]:
        return await perform_vector_search(
            search_queries,
            context,
            strategy,
            self._search_service,
            self._config,
            report,
        )

    def _build_sources(
        self,
        context: PipelineContext,
        graded: list[GradedDocument],
        raw: list[SearchResult],
        report: StageReporter,
    ) -> list[Source]:
        report("BUILDING_SOURCES", "Building source references...")
        with _tracked_stage(context, "source_building"):
            return self._source_builder.build_sources(graded, raw, context.indexed_documents)

    async def _generate(
        self,
        context: PipelineContext,
        context_text: str,
        sources: list[Source],
        page_numbers: list[int] | None,
        report: StageReporter,
    ) -> StreamingAnswer:
        report("PHASE_5", "Generating AI response...", sources=len(sources))
        try:
            with _tracked_stage(context, "generation_start"):
                answer = await self._response_generator.generate_answer(
                    context_text,
                    context.messages,
                    context.query,
                    sources,
                    context.signal,
                    context.chat_session_id,
                    context.metadata_tracker,
                    page_numbers,
                )
        except Exception as e:
            context.signal.raise_if_aborted()
            if is_cancellation(e) or is_timeout(e):
                raise
            logger.error("Response generation failed: %s", e, exc_info=True)
            report("RESPONSE_GENERATION_FAILED", str(e), logging.ERROR)
            return await self._fallback_for(context)

        # The signal may have fired while the stream was being opened
        if context.signal.aborted:
            await answer.aclose()
            context.signal.raise_if_aborted()

        report("RESPONSE_GENERATION_STARTED", f"Streaming response with {len(sources)} sources")
        return answer

    async def _fallback_for(self, context: PipelineContext) -> StreamingAnswer:
        return await self._fallback(
            context.query,
            chat_session_id=context.chat_session_id,
            tracker=context.metadata_tracker,
        )

    async def _fallback(
        self,
        reason_or_query: str,
        *,
        static_text: str | None = None,
        chat_session_id: str | None = None,
        tracker: ChatMetadataTracker | None = None,
    ) -> StreamingAnswer:
        """
        Ungrounded fallback answer.  If even that call cannot be made, a
        fixed text is streamed instead so the caller still gets an answer.
        """
        try:
            return await self._response_generator.create_fallback_response(
                reason_or_query, chat_session_id, tracker,
            )
        except Exception as e:
            logger.error("Fallback response generation failed: %s", e, exc_info=True)
            return StreamingAnswer.from_text(static_text or UNAVAILABLE_MESSAGE)


@contextmanager
def _tracked_stage(context: PipelineContext, name: str) -> Iterator[None]:
    tracker: Any = context.metadata_tracker
    if tracker is None:
        yield
        return
    tracker.start_stage(name)
    try:
        yield
    finally:
        tracker.end_stage(name)


def create_orchestrator(s: Settings, event_sink: EventSink | None = None) -> RAGOrchestrator:
    """Wire the default collaborators from settings (called once at startup)."""
    from dataroom_rag.services.chat_storage import ChatStorageService
    from dataroom_rag.services.context_compression import TokenBudgetCompressor
    from dataroom_rag.services.document_grading import LLMDocumentGrader
    from dataroom_rag.services.reranker import ScoreReranker
    from dataroom_rag.services.source_building import DocumentSourceBuilder
    from dataroom_rag.services.text_generation import TextGenerationService
    from dataroom_rag.services.vector_store import ChromaSearchService

    return RAGOrchestrator(
        search_service=ChromaSearchService(s),
        reranker=ScoreReranker(),
        compressor=TokenBudgetCompressor.from_settings(s),
        grader=LLMDocumentGrader(s),
        source_builder=DocumentSourceBuilder(),
        response_generator=TextGenerationService(s, ChatStorageService()),
        config=RAGConfig.from_settings(s),
        event_sink=event_sink,
    )
