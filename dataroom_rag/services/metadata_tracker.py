"""
Per-request metadata tracker.

Created by the caller, started when the pipeline is entered and
finalised on every exit path.  Its snapshot is stored next to the
assistant message by the text generation service.
"""

from __future__ import annotations

from typing import Any

from dataroom_rag.schemas.response import (
    ChatMetadata,
    ErrorInfo,
    QueryAnalysisInfo,
    SearchStrategyInfo,
    TokenUsage,
)
from dataroom_rag.utils.logging import get_logger
from dataroom_rag.utils.timing import Timer

logger = get_logger("dataroom_rag.services.metadata_tracker")


class ChatMetadataTracker:
    """Accumulates timings, strategy choice, token usage and terminal error."""

    def __init__(self) -> None:
        self._metadata = ChatMetadata()
        self._total = Timer()
        self._total_running = False
        self._stages: dict[str, Timer] = {}

    # ── Timers ──────────────────────────────────────────────────────
    def start_total(self) -> None:
        self._total.start()
        self._total_running = True

    def end_total(self) -> None:
        if not self._total_running:
            return
        self._total.stop()
        self._total_running = False
        self._metadata.total_time_ms = round(self._total.elapsed_ms, 1)

    def start_stage(self, name: str) -> None:
        self._stages[name] = Timer().start()

    def end_stage(self, name: str) -> None:
        timer = self._stages.pop(name, None)
        if timer is None:
            return
        timer.stop()
        self._metadata.timings_ms[name] = round(timer.elapsed_ms, 1)

    # ── Setters ─────────────────────────────────────────────────────
    def set_query_analysis(
        self,
        query_type: str = "document_question",
        intent: str | None = None,
        complexity_level: str | None = None,
    ) -> None:
        self._metadata.query_analysis = QueryAnalysisInfo(
            query_type=query_type,
            intent=intent,
            complexity_level=complexity_level,
        )

    def set_search_strategy(self, strategy: str, confidence: float = 1.0) -> None:
        self._metadata.search_strategy = SearchStrategyInfo(
            strategy=strategy, confidence=confidence,
        )

    def set_error(self, type: str, message: str, is_retryable: bool) -> None:
        self._metadata.error = ErrorInfo(
            type=type, message=message, is_retryable=is_retryable,
        )
        logger.debug("Tracked error %s: %s", type, message)

    def set_token_usage(
        self,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        total_tokens: int | None = None,
    ) -> None:
        self._metadata.token_usage = TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
        )

    # ── Read ────────────────────────────────────────────────────────
    @property
    def metadata(self) -> ChatMetadata:
        return self._metadata

    @property
    def is_running(self) -> bool:
        return self._total_running

    def get_metadata(self) -> dict[str, Any]:
        return self._metadata.model_dump(mode="json", exclude_none=True)
