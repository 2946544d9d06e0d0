"""
Error taxonomy for the RAG pipeline.

Only ``PipelineDisposedError`` and ``PipelineCancelledError`` ever leave
``RAGOrchestrator.process_query``; every other failure is turned into a
degraded (fallback) answer by the orchestrator.
"""

from __future__ import annotations

from typing import Any


class RAGError(Exception):
    """Base class for every error raised by the pipeline or its collaborators."""

    error_type: str = "RAGError"
    is_retryable: bool = True

    def __init__(self, message: str = "", context: dict[str, Any] | None = None):
        super().__init__(message or self.error_type)
        self.message = message or self.error_type
        self.context: dict[str, Any] = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.error_type,
            "message": self.message,
            "is_retryable": self.is_retryable,
            "context": self.context,
        }


class PipelineDisposedError(RAGError):
    """The orchestrator was shut down; no new work is accepted."""

    error_type = "ServiceDisposed"
    is_retryable = False


class PipelineCancelledError(RAGError):
    """The caller cancelled the request (e.g. the user pressed stop)."""

    error_type = "AbortError"
    is_retryable = False


class PipelineTimeoutError(RAGError):
    """The request-wide deadline elapsed."""

    error_type = "TimeoutError"


class LLMUnavailableError(RAGError):
    """The language-model client could not be created (missing key, etc.)."""

    error_type = "LLMUnavailable"
    is_retryable = False


class SearchIndexUnavailableError(RAGError):
    """The dataroom has no vector collection yet, or the index is unreadable."""

    error_type = "SearchIndexUnavailable"


def is_cancellation(error: BaseException) -> bool:
    return isinstance(error, PipelineCancelledError)


def is_timeout(error: BaseException) -> bool:
    # asyncio.TimeoutError is an alias of TimeoutError on current interpreters
    return isinstance(error, (PipelineTimeoutError, TimeoutError))
