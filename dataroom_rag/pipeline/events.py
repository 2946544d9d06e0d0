"""
Structured stage events.

The orchestrator reports progress as ``PipelineEvent`` records (stage,
correlation id, message, payload) handed to an ``EventSink``.  The
default sink writes them to the pipeline logger; tests and external
observability plug in their own sink.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from dataroom_rag.utils.logging import get_logger


@dataclass(frozen=True)
class PipelineEvent:
    stage: str
    correlation_id: str
    message: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    level: int = logging.INFO
    timestamp: float = field(default_factory=time.time)


class EventSink(Protocol):
    def emit(self, event: PipelineEvent) -> None:
        ...


class LoggingEventSink:
    """Write every event as one log line: ``[STAGE] message | payload``."""

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or get_logger("dataroom_rag.pipeline.events")

    def emit(self, event: PipelineEvent) -> None:
        payload = ""
        if event.payload:
            payload = " | " + json.dumps(event.payload, default=str)
        self._logger.log(
            event.level,
            "[%s] %s [%s]%s",
            event.stage, event.message, event.correlation_id, payload,
        )


class RecordingEventSink:
    """Keeps events in memory; handy for tests and debugging endpoints."""

    def __init__(self) -> None:
        self.events: list[PipelineEvent] = []

    def emit(self, event: PipelineEvent) -> None:
        self.events.append(event)

    @property
    def stages(self) -> list[str]:
        return [e.stage for e in self.events]


class StageReporter:
    """Binds a sink to one correlation id so stages can emit tersely."""

    def __init__(self, sink: EventSink, correlation_id: str):
        self.sink = sink
        self.correlation_id = correlation_id

    def __call__(
        self,
        stage: str,
        message: str = "",
        level: int = logging.INFO,
        **payload: Any,
    ) -> None:
        self.sink.emit(PipelineEvent(
            stage=stage,
            correlation_id=self.correlation_id,
            message=message,
            payload=payload,
            level=level,
        ))
