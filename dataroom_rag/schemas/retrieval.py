"""
Per-stage records for retrieval and refinement.

SearchResult comes out of the search collaborator, GradedDocument out
of grading (or is synthesised on fast/degraded paths), Source is the
citation record handed to answer generation.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class IndexedDocument(BaseModel):
    """One allow-listed, indexed document of the dataroom."""
    document_id: str
    document_name: str = ""
    num_pages: int | None = None

    @property
    def display_name(self) -> str:
        return self.document_name or "Unknown Document"


class SearchOptions(BaseModel):
    top_k: int
    similarity_threshold: float


class MetadataFilter(BaseModel):
    dataroom_id: str
    document_ids: list[str] = Field(default_factory=list)
    page_ranges: list[str] | None = None


class SearchResult(BaseModel):
    """One chunk returned by the vector search collaborator."""
    document_id: str
    chunk_id: str
    content: str
    similarity: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class GradedDocument(BaseModel):
    document_id: str
    chunk_id: str
    relevance_score: float
    confidence: float
    reasoning: str
    is_relevant: bool
    suggested_weight: float = 1.0
    original_content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_search_result(
        cls,
        result: SearchResult,
        *,
        default_score: float,
        confidence: float,
        reasoning: str,
        suggested_weight: float,
    ) -> "GradedDocument":
        """Synthesise a graded record without running the grader."""
        return cls(
            document_id=result.document_id,
            chunk_id=result.chunk_id,
            relevance_score=result.similarity or default_score,
            confidence=confidence,
            reasoning=reasoning,
            is_relevant=True,
            suggested_weight=suggested_weight,
            original_content=result.content,
            metadata=result.metadata,
        )


class GradingResult(BaseModel):
    relevant_documents: list[GradedDocument] = Field(default_factory=list)
    total_graded: int = 0


class CompressedContext(BaseModel):
    content: str
    original_tokens: int | None = None
    compressed_tokens: int | None = None


class Source(BaseModel):
    """Citation record consumed by answer generation."""
    document_id: str
    document_name: str
    chunk_id: str
    page_number: int | None = None
    location_info: str | None = None
    relevance_score: float = 0.0
    confidence: float = 0.0
    excerpt: str = ""


class PageValidation(BaseModel):
    is_valid: bool
    error_message: str | None = None
    invalid_pages: list[int] = Field(default_factory=list)
    max_pages: int = 0
