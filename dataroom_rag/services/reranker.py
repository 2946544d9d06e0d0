"""
Score-based reranking.

Orders chunks by vector similarity blended with keyword overlap against
the question.  Pure CPU work, no model call.
"""

from __future__ import annotations

from dataroom_rag.schemas.retrieval import SearchResult
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.logging import get_logger
from dataroom_rag.utils.text import extract_keywords, keyword_overlap

logger = get_logger("dataroom_rag.services.reranker")


class ScoreReranker:
    def __init__(self, similarity_weight: float = 0.7, keyword_weight: float = 0.3):
        self.similarity_weight = similarity_weight
        self.keyword_weight = keyword_weight

    def score(self, query_keywords: set[str], result: SearchResult) -> float:
        similarity = result.similarity if result.similarity is not None else 0.0
        overlap = keyword_overlap(query_keywords, result.content)
        return self.similarity_weight * similarity + self.keyword_weight * overlap

    async def rerank(
        self,
        query: str,
        results: list[SearchResult],
        signal: CancellationSignal,
    ) -> list[SearchResult]:
        signal.raise_if_aborted()
        if len(results) < 2:
            return list(results)

        query_keywords = extract_keywords(query)
        # sorted() is stable: ties keep search order
        ranked = sorted(results, key=lambda r: self.score(query_keywords, r), reverse=True)
        logger.debug("Reranked %d results for %d query keywords", len(ranked), len(query_keywords))
        return ranked
