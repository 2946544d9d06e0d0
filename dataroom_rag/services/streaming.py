"""
StreamingAnswer: the object every answer-producing path returns.

Wraps an async iterator of text deltas.  The caller starts receiving
tokens immediately; only once the stream has completed normally is the
``on_finish`` hook awaited (best effort, failures are logged and
swallowed).  An aborted stream ends quietly and skips ``on_finish``.
Close callbacks run once when the stream ends or is closed unread.

    answer = await generator.generate_answer(...)
    async for delta in answer:
        ...
    # or, inside a FastAPI route:
    return answer.to_streaming_response()
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from dataroom_rag.schemas.response import as_event_payload
from dataroom_rag.schemas.retrieval import Source
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.services.streaming")

FinishHook = Callable[[str], Awaitable[None]]


class StreamingAnswer:
    """Single-use async stream of answer text."""

    def __init__(
        self,
        deltas: AsyncIterator[str],
        *,
        kind: str = "answer",
        sources: list[Source] | None = None,
        signal: CancellationSignal | None = None,
        on_finish: FinishHook | None = None,
    ):
        self.kind = kind
        self.sources = list(sources or [])
        self._deltas = deltas
        self._signal = signal
        self._on_finish = on_finish
        self._close_callbacks: list[Callable[[], None]] = []
        self._closed = False
        self._parts: list[str] = []
        self._started = False
        self.completed = False
        self.aborted = False

    @classmethod
    def from_text(cls, text: str, *, kind: str = "fallback") -> "StreamingAnswer":
        """Stream a fixed text (used when no model call is possible)."""

        async def _single() -> AsyncIterator[str]:
            yield text

        return cls(_single(), kind=kind)

    @property
    def text(self) -> str:
        """Text streamed so far."""
        return "".join(self._parts)

    async def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("StreamingAnswer can only be consumed once")
        self._started = True

        try:
            async for delta in self._deltas:
                if self._signal is not None and self._signal.aborted:
                    self.aborted = True
                    logger.info(
                        "%s stream aborted after %d chars", self.kind, len(self.text),
                    )
                    break
                if not delta:
                    continue
                self._parts.append(delta)
                yield delta
        finally:
            await self.aclose()

        if self.aborted:
            return
        self.completed = True
        await self._finish()

    def add_close_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback()`` once the stream has ended or been closed."""
        if self._closed:
            callback()
        else:
            self._close_callbacks.append(callback)

    async def aclose(self) -> None:
        """Release the underlying delta stream without consuming it."""
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._deltas, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            callbacks, self._close_callbacks = self._close_callbacks, []
            for callback in callbacks:
                callback()

    async def _finish(self) -> None:
        if self._on_finish is None:
            return
        try:
            await self._on_finish(self.text)
        except Exception as e:
            logger.error("Post-stream hook failed for %s answer: %s", self.kind, e, exc_info=True)

    async def collect(self) -> str:
        """Drain the stream and return the full text."""
        async for _ in self:
            pass
        return self.text

    # ── Server-sent events ──────────────────────────────────────────
    async def iter_events(self) -> AsyncIterator[str]:
        """
        Render the stream as SSE frames: ``start`` (with sources),
        ``text-delta`` per chunk, then ``finish`` or ``error``.
        """
        yield _sse({
            "type": "start",
            "kind": self.kind,
            "sources": [as_event_payload(s) for s in self.sources],
        })
        try:
            async for delta in self:
                yield _sse({"type": "text-delta", "delta": delta})
        except Exception as e:
            logger.error("Stream error in %s answer: %s", self.kind, e, exc_info=True)
            yield _sse({"type": "error", "message": "The answer stream was interrupted."})
            return
        yield _sse({"type": "finish", "aborted": self.aborted})

    def to_streaming_response(
        self,
        headers: dict[str, str] | None = None,
        background: BackgroundTask | None = None,
    ) -> StreamingResponse:
        merged = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
        merged.update(headers or {})
        return StreamingResponse(
            self.iter_events(),
            media_type="text/event-stream",
            headers=merged,
            background=background,
        )


def _sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"
