"""
Schemas for the upstream query-analysis output.

The orchestrator does not classify queries itself: strategy, intent,
complexity and page/rewrite extraction arrive already decided.  These
models pin down exactly what it reads from them.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


# ── Intent enum ─────────────────────────────────────────────────────
class QueryIntent(str, Enum):
    EXTRACTION = "extraction"
    SUMMARIZATION = "summarization"
    COMPARISON = "comparison"
    CONCEPT_EXPLANATION = "concept_explanation"
    ANALYSIS = "analysis"
    VERIFICATION = "verification"
    GENERAL_INQUIRY = "general_inquiry"

    @classmethod
    def parse(cls, value: "QueryIntent | str | None") -> "QueryIntent":
        """Unknown or missing values fall back to general_inquiry."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.GENERAL_INQUIRY


# ── Strategy enum (processing depth) ────────────────────────────────
class SearchStrategy(str, Enum):
    FAST = "FastVectorSearch"
    STANDARD = "StandardVectorSearch"
    EXPANDED = "ExpandedSearch"
    PAGE_QUERY = "PageQueryStrategy"

    @classmethod
    def parse(cls, value: "SearchStrategy | str | None") -> "SearchStrategy":
        """Unknown or missing values fall back to StandardVectorSearch."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.STANDARD


class ComplexityAnalysis(BaseModel):
    complexity_score: float = 0.0
    complexity_level: str = "medium"  # low | medium | high
    word_count: int = 0


class QueryRewriting(BaseModel):
    rewritten_queries: list[str | None] = Field(default_factory=list)
    hyde_answer: str | None = None
    requires_hyde: bool = False


class QueryExtraction(BaseModel):
    """Explicit page references and rewrites pulled out of the question."""
    page_numbers: list[int] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    query_rewriting: QueryRewriting | None = None
