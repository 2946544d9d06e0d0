"""
OpenAI client singleton and token counting.

Every model call in the service (generation, fallback, grading) goes
through ``get_openai_client()`` so there is one connection pool per
process.
"""

from __future__ import annotations

import threading
from typing import Any

import tiktoken
from openai import AsyncOpenAI

from dataroom_rag.core.config import Settings, settings
from dataroom_rag.core.errors import LLMUnavailableError
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.services.llm")


# ── Singleton OpenAI client ─────────────────────────────────────────
_client_lock = threading.Lock()
_client_instance: AsyncOpenAI | None = None


def get_openai_client(s: Settings | None = None) -> AsyncOpenAI:
    """
    Return a module-level AsyncOpenAI client.

    Raises LLMUnavailableError when the API key is missing.
    """
    global _client_instance
    if _client_instance is not None:
        return _client_instance

    s = s or settings
    with _client_lock:
        if _client_instance is not None:
            return _client_instance
        if not s.openai_api_key:
            raise LLMUnavailableError("OpenAI API key not configured (OPENAI_API_KEY).")

        _client_instance = AsyncOpenAI(api_key=s.openai_api_key)
        logger.info("OpenAI client singleton initialized.")
        return _client_instance


# ── Token counting ──────────────────────────────────────────────────
_encoder_lock = threading.Lock()
_encoder: Any | None = None


def _get_encoder() -> Any:
    global _encoder
    if _encoder is not None:
        return _encoder
    with _encoder_lock:
        if _encoder is None:
            _encoder = tiktoken.get_encoding("cl100k_base")
        return _encoder


def count_tokens(text: str) -> int:
    """Count cl100k tokens in ``text``."""
    if not text:
        return 0
    return len(_get_encoder().encode(text))


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Cut ``text`` to at most ``max_tokens`` tokens."""
    enc = _get_encoder()
    tokens = enc.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return enc.decode(tokens[:max_tokens])
