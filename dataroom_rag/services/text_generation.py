"""
Answer generation over the OpenAI streaming chat API.

Every entry point opens the model stream before returning, so request
errors (auth, quota, bad model) surface to the caller while it can
still fall back; tokens are then pulled lazily by whoever consumes the
returned StreamingAnswer.  After a stream completes the token usage is
recorded on the tracker and the answer is stored with the tracker's
metadata.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable

from openai import AsyncOpenAI

from dataroom_rag.core.config import Settings
from dataroom_rag.pipeline.collaborators import MessageStore
from dataroom_rag.prompts.answer_generator import (
    build_fallback_system_prompt,
    build_rag_system_prompt,
)
from dataroom_rag.schemas.response import ChatMessage
from dataroom_rag.schemas.retrieval import Source
from dataroom_rag.services.llm import get_openai_client
from dataroom_rag.services.metadata_tracker import ChatMetadataTracker
from dataroom_rag.services.streaming import StreamingAnswer
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.services.text_generation")

_CHAT_ROLES = {"system", "user", "assistant"}


def to_openai_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
    """Conversation history in OpenAI format; unknown roles and empty turns are dropped."""
    return [
        {"role": m.role, "content": m.content}
        for m in messages
        if m.role in _CHAT_ROLES and m.content
    ]


class TextGenerationService:
    def __init__(
        self,
        s: Settings,
        message_store: MessageStore | None = None,
        client_factory: Callable[[Settings], AsyncOpenAI] = get_openai_client,
    ):
        self._settings = s
        self._message_store = message_store
        self._client_factory = client_factory

    # ── Entry points ────────────────────────────────────────────────

    async def generate_answer(
        self,
        context_text: str,
        messages: list[ChatMessage],
        query: str,
        sources: list[Source],
        signal: CancellationSignal | None,
        chat_session_id: str | None = None,
        metadata_tracker: ChatMetadataTracker | None = None,
        page_numbers: list[int] | None = None,
    ) -> StreamingAnswer:
        """Grounded answer with citations over ``context_text``."""
        system_content = build_rag_system_prompt(context_text, sources, page_numbers)
        chat = [
            {"role": "system", "content": system_content},
            *to_openai_messages(messages),
            {"role": "user", "content": query},
        ]
        return await self._stream(
            chat,
            kind="answer",
            sources=sources,
            signal=signal,
            temperature=self._settings.generation_temperature,
            max_tokens=self._settings.generation_max_tokens,
            chat_session_id=chat_session_id,
            metadata_tracker=metadata_tracker,
        )

    async def create_fallback_response(
        self,
        reason_or_query: str,
        chat_session_id: str | None = None,
        metadata_tracker: ChatMetadataTracker | None = None,
    ) -> StreamingAnswer:
        """Ungrounded reply used whenever the pipeline has nothing to answer from."""
        chat = [
            {"role": "system", "content": build_fallback_system_prompt(reason_or_query)},
            {"role": "user", "content": f"Question: {reason_or_query}"},
        ]
        return await self._stream(
            chat,
            kind="fallback",
            chat_session_id=chat_session_id,
            metadata_tracker=metadata_tracker,
        )

    async def generate_simple_response(
        self,
        system_prompt: str,
        messages: list[ChatMessage],
        signal: CancellationSignal | None = None,
        chat_session_id: str | None = None,
        metadata_tracker: ChatMetadataTracker | None = None,
    ) -> StreamingAnswer:
        chat = [{"role": "system", "content": system_prompt}, *to_openai_messages(messages)]
        return await self._stream(
            chat,
            kind="simple",
            signal=signal,
            temperature=self._settings.generation_temperature,
            chat_session_id=chat_session_id,
            metadata_tracker=metadata_tracker,
        )

    # ── Streaming ───────────────────────────────────────────────────

    async def _stream(
        self,
        chat: list[dict[str, str]],
        *,
        kind: str,
        sources: list[Source] | None = None,
        signal: CancellationSignal | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        chat_session_id: str | None = None,
        metadata_tracker: ChatMetadataTracker | None = None,
    ) -> StreamingAnswer:
        client = self._client_factory(self._settings)

        params: dict[str, Any] = {
            "model": self._settings.generation_model,
            "messages": chat,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        try:
            stream = await client.chat.completions.create(**params)
        except Exception as e:
            logger.error("Error opening %s stream: %s", kind, e)
            raise

        usage: dict[str, Any] = {}

        async def deltas() -> AsyncIterator[str]:
            try:
                async for chunk in stream:
                    if getattr(chunk, "usage", None) is not None:
                        usage["usage"] = chunk.usage
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        yield content
            except Exception as e:
                logger.error("Stream error in %s response: %s", kind, e)
                raise
            finally:
                await stream.close()

        async def on_finish(text: str) -> None:
            await self._store_assistant_message(
                text, usage.get("usage"), chat_session_id, metadata_tracker,
            )

        return StreamingAnswer(
            deltas(),
            kind=kind,
            sources=sources,
            signal=signal,
            on_finish=on_finish,
        )

    async def _store_assistant_message(
        self,
        text: str,
        total_usage: Any,
        chat_session_id: str | None,
        metadata_tracker: ChatMetadataTracker | None,
    ) -> None:
        if not chat_session_id or metadata_tracker is None:
            return
        try:
            if total_usage is not None:
                metadata_tracker.set_token_usage(
                    input_tokens=total_usage.prompt_tokens,
                    output_tokens=total_usage.completion_tokens,
                    total_tokens=total_usage.total_tokens,
                )
            if self._message_store is None:
                return
            await self._message_store.add_message(
                session_id=chat_session_id,
                role="assistant",
                content=text,
                metadata=metadata_tracker.get_metadata(),
            )
        except Exception as e:
            logger.error("Failed to store assistant message: %s", e, exc_info=True)
