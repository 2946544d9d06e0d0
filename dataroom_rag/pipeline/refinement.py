"""
Refinement stage: rerank ∥ compress, then grade.

Every step degrades on its own:
  - rerank failure      -> keep search order
  - compression failure -> raw concatenation of the reranked chunks
  - grading failure     -> every reranked chunk treated as relevant
The run always reaches source building when retrieval found anything.

Also holds the synthesised GradedDocument builders for the fast and
page-query paths, which skip refinement altogether.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from dataroom_rag.pipeline.collaborators import ContextCompressor, DocumentGrader, Reranker
from dataroom_rag.pipeline.events import StageReporter
from dataroom_rag.schemas.pipeline import PipelineContext
from dataroom_rag.schemas.retrieval import CompressedContext, GradedDocument, SearchResult
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.pipeline.refinement")

FAST_PATH_CONFIDENCE = 0.8
PAGE_MATCH_CONFIDENCE = 0.9
GRADING_BYPASS_CONFIDENCE = 0.5


def join_contents(results: list[SearchResult]) -> str:
    return "\n\n".join(r.content for r in results)


def synthesize_fast_path(results: list[SearchResult]) -> list[GradedDocument]:
    return [
        GradedDocument.from_search_result(
            r,
            default_score=FAST_PATH_CONFIDENCE,
            confidence=FAST_PATH_CONFIDENCE,
            reasoning="Fast path optimization",
            suggested_weight=0.8,
        )
        for r in results
    ]


def synthesize_page_matches(results: list[SearchResult]) -> list[GradedDocument]:
    return [
        GradedDocument.from_search_result(
            r,
            default_score=PAGE_MATCH_CONFIDENCE,
            confidence=PAGE_MATCH_CONFIDENCE,
            reasoning="Direct page match",
            suggested_weight=1.0,
        )
        for r in results
    ]


def synthesize_ungraded(results: list[SearchResult]) -> list[GradedDocument]:
    return [
        GradedDocument.from_search_result(
            r,
            default_score=0.0,
            confidence=GRADING_BYPASS_CONFIDENCE,
            reasoning="Grading bypassed",
            suggested_weight=1.0,
        )
        for r in results
    ]


@dataclass
class RefinementOutcome:
    reranked: list[SearchResult]
    context_text: str
    graded: list[GradedDocument] = field(default_factory=list)
    degraded_stages: list[str] = field(default_factory=list)


async def refine_results(
    context: PipelineContext,
    results: list[SearchResult],
    reranker: Reranker,
    compressor: ContextCompressor,
    grader: DocumentGrader,
    report: StageReporter,
) -> RefinementOutcome:
    degraded: list[str] = []

    async def _rerank() -> list[SearchResult]:
        try:
            return await reranker.rerank(context.query, results, context.signal)
        except Exception as e:
            logger.warning("Reranking failed, keeping search order: %s", e)
            report("RERANK_FAILED", "Using search order due to reranking error", logging.WARNING)
            degraded.append("rerank")
            return list(results)

    async def _compress() -> CompressedContext | None:
        try:
            return await compressor.compress(
                results, context.query, context.signal, context.complexity_analysis,
            )
        except Exception as e:
            logger.warning("Context compression failed, using uncompressed results: %s", e)
            report("COMPRESSION_FAILED", "Using uncompressed context due to compression error", logging.WARNING)
            degraded.append("compression")
            return None

    report("PHASE_3", "Reranking and context compression...")
    reranked, compressed = await asyncio.gather(_rerank(), _compress())
    context.signal.raise_if_aborted()

    if compressed is None:
        context_text = join_contents(reranked)
    else:
        context_text = compressed.content
    report("RERANKING_COMPRESSION_COMPLETE", f"Reranked {len(reranked)} results")

    report("PHASE_4", "Grading document relevance...")
    try:
        grading = await grader.grade_and_filter(
            context.query, reranked, context.complexity_analysis,
        )
        graded = grading.relevant_documents
        report("GRADING_COMPLETE", f"{len(graded)} relevant documents")
    except Exception as e:
        logger.warning("Document grading failed, using all results: %s", e)
        report("GRADING_FAILED", "Using all results due to grading error", logging.WARNING)
        degraded.append("grading")
        graded = synthesize_ungraded(reranked)
    context.signal.raise_if_aborted()

    return RefinementOutcome(
        reranked=reranked,
        context_text=context_text,
        graded=graded,
        degraded_stages=degraded,
    )
