"""
Cooperative cancellation signal threaded through the whole call tree.

A signal is aborted at most once, with a reason exception.  Collaborators
observe it (``aborted`` / ``raise_if_aborted()`` / ``wait()``) and stop
promptly; nothing is force-terminated.

    caller = CancellationSignal()
    deadline = CancellationSignal.timeout(50.0)
    signal = CancellationSignal.any(caller, deadline)
    ...
    caller.abort()          # user pressed stop -> PipelineCancelledError
"""

from __future__ import annotations

import asyncio
from typing import Callable

from dataroom_rag.core.errors import PipelineCancelledError, PipelineTimeoutError


class CancellationSignal:
    """One-shot abort flag with a reason and abort callbacks."""

    def __init__(self) -> None:
        self._reason: BaseException | None = None
        self._callbacks: list[Callable[["CancellationSignal"], None]] = []
        self._event: asyncio.Event | None = None
        self._timer: asyncio.TimerHandle | None = None

    # ── State ───────────────────────────────────────────────────────
    @property
    def aborted(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> BaseException | None:
        return self._reason

    def abort(self, reason: BaseException | None = None) -> None:
        """Abort the signal.  Later calls are ignored."""
        if self._reason is not None:
            return
        self._reason = reason or PipelineCancelledError("The operation was aborted")
        self._cancel_timer()
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def raise_if_aborted(self) -> None:
        if self._reason is not None:
            raise self._reason

    def add_callback(self, callback: Callable[["CancellationSignal"], None]) -> Callable[[], None]:
        """
        Register ``callback(signal)`` to run on abort (immediately if
        already aborted).  Returns a function that unregisters it.
        """
        if self._reason is not None:
            callback(self)
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    async def wait(self) -> BaseException:
        """Suspend until the signal aborts; return the reason."""
        if self._reason is None:
            if self._event is None:
                self._event = asyncio.Event()
            await self._event.wait()
        assert self._reason is not None
        return self._reason

    def close(self) -> None:
        """Release a pending timer without aborting."""
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ── Constructors ────────────────────────────────────────────────
    @classmethod
    def timeout(cls, seconds: float) -> "CancellationSignal":
        """
        Signal that aborts with ``PipelineTimeoutError`` after ``seconds``.
        Must be created from inside a running event loop.
        """
        signal = cls()
        loop = asyncio.get_running_loop()
        signal._timer = loop.call_later(
            seconds,
            signal.abort,
            PipelineTimeoutError(
                f"Pipeline exceeded {int(seconds * 1000)}ms limit",
                {"timeout_ms": int(seconds * 1000)},
            ),
        )
        return signal

    @classmethod
    def any(cls, *sources: "CancellationSignal | None") -> "CancellationSignal":
        """Signal that aborts as soon as any source aborts, with its reason."""
        combined = cls()
        removers: list[Callable[[], None]] = []

        def forward(source: CancellationSignal) -> None:
            for remove in removers:
                remove()
            combined.abort(source.reason)

        for source in sources:
            if source is None:
                continue
            if source.aborted:
                forward(source)
                break
            removers.append(source.add_callback(forward))
        return combined
