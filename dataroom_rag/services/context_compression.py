"""
Token-budget context compression.

Keeps the highest-similarity chunks that fit the budget for the query's
complexity level and joins them back in retrieval order.  A chunk that
alone exceeds the remaining budget is truncated when nothing has been
kept yet, otherwise skipped.
"""

from __future__ import annotations

from dataroom_rag.core.config import Settings
from dataroom_rag.schemas.intent import ComplexityAnalysis
from dataroom_rag.schemas.retrieval import CompressedContext, SearchResult
from dataroom_rag.services.llm import count_tokens, truncate_to_tokens
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.logging import get_logger
from dataroom_rag.utils.timing import timed

logger = get_logger("dataroom_rag.services.context_compression")

# Tokens reserved for the "\n\n" separator between chunks
SEPARATOR_TOKENS = 1


class TokenBudgetCompressor:
    def __init__(self, budgets: dict[str, int], default_level: str = "medium"):
        self.budgets = budgets
        self.default_level = default_level

    @classmethod
    def from_settings(cls, s: Settings) -> "TokenBudgetCompressor":
        return cls({
            "low": s.compression_budget_low,
            "medium": s.compression_budget_medium,
            "high": s.compression_budget_high,
        })

    def budget_for(self, complexity_analysis: ComplexityAnalysis | None) -> int:
        level = complexity_analysis.complexity_level if complexity_analysis else self.default_level
        return self.budgets.get(level, self.budgets[self.default_level])

    @timed("context_compression")
    async def compress(
        self,
        results: list[SearchResult],
        query: str,
        signal: CancellationSignal,
        complexity_analysis: ComplexityAnalysis | None = None,
    ) -> CompressedContext:
        signal.raise_if_aborted()
        budget = self.budget_for(complexity_analysis)

        token_counts = [count_tokens(r.content) for r in results]
        original_tokens = sum(token_counts)
        if original_tokens <= budget:
            return CompressedContext(
                content="\n\n".join(r.content for r in results),
                original_tokens=original_tokens,
                compressed_tokens=original_tokens,
            )

        by_relevance = sorted(
            range(len(results)),
            key=lambda i: results[i].similarity if results[i].similarity is not None else 0.0,
            reverse=True,
        )

        kept: dict[int, str] = {}
        used = 0
        for i in by_relevance:
            cost = token_counts[i] + SEPARATOR_TOKENS
            if used + cost <= budget:
                kept[i] = results[i].content
                used += cost
            elif not kept:
                kept[i] = truncate_to_tokens(results[i].content, budget)
                used = budget
                break

        content = "\n\n".join(kept[i] for i in sorted(kept))
        compressed_tokens = count_tokens(content)
        logger.info(
            "Token budget: compressed %d -> %d tokens (%d/%d chunks, budget=%d)",
            original_tokens, compressed_tokens, len(kept), len(results), budget,
        )
        return CompressedContext(
            content=content,
            original_tokens=original_tokens,
            compressed_tokens=compressed_tokens,
        )
