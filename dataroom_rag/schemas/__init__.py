"""
Pydantic schemas for every pipeline boundary.
Each module covers one pipeline stage or cross-cutting concern.
"""

from dataroom_rag.schemas.intent import (
    ComplexityAnalysis,
    QueryExtraction,
    QueryIntent,
    QueryRewriting,
    SearchStrategy,
)
from dataroom_rag.schemas.retrieval import (
    CompressedContext,
    GradedDocument,
    GradingResult,
    IndexedDocument,
    MetadataFilter,
    PageValidation,
    SearchOptions,
    SearchResult,
    Source,
)
from dataroom_rag.schemas.response import (
    ChatMessage,
    ChatMetadata,
    ChatRequest,
    ErrorInfo,
    TokenUsage,
)
from dataroom_rag.schemas.pipeline import PipelineContext

__all__ = [
    # Query analysis
    "ComplexityAnalysis",
    "QueryExtraction",
    "QueryIntent",
    "QueryRewriting",
    "SearchStrategy",
    # Retrieval
    "CompressedContext",
    "GradedDocument",
    "GradingResult",
    "IndexedDocument",
    "MetadataFilter",
    "PageValidation",
    "SearchOptions",
    "SearchResult",
    "Source",
    # Response
    "ChatMessage",
    "ChatMetadata",
    "ChatRequest",
    "ErrorInfo",
    "TokenUsage",
    # Pipeline
    "PipelineContext",
]
