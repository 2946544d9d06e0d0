"""
Embedding model singleton.

The SentenceTransformer model is loaded once per process on first use;
encoding is CPU-bound and synchronous, callers on the event loop run it
in an executor.
"""

from __future__ import annotations

import threading

from sentence_transformers import SentenceTransformer

from dataroom_rag.core.config import settings
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.services.embedding")

_model_lock = threading.Lock()
_models: dict[str, SentenceTransformer] = {}


def get_embedding_model(model_name: str | None = None) -> SentenceTransformer:
    """Return the cached SentenceTransformer model."""
    name = model_name or settings.embedding_model_name
    model = _models.get(name)
    if model is not None:
        return model
    with _model_lock:
        if name not in _models:
            logger.info("Loading embedding model %s", name)
            _models[name] = SentenceTransformer(name)
        return _models[name]


def embed_query(text: str, model_name: str | None = None) -> list[float]:
    """Generate an embedding vector for a single query string."""
    # show_progress_bar=False keeps tqdm off stderr
    return get_embedding_model(model_name).encode(text, show_progress_bar=False).tolist()
