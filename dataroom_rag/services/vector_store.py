"""
ChromaDB-backed search service.

One collection per dataroom (``dataroom_<id>``).  Each chunk carries
``document_id`` and ``page_number`` metadata; queries are always scoped
to the allow-listed documents and, when pages were requested, to those
pages.  The Chroma client is synchronous, so queries run in the default
executor.
"""

from __future__ import annotations

import asyncio
import functools
import re
import threading
from pathlib import Path
from typing import Any

import chromadb

from dataroom_rag.core.config import Settings
from dataroom_rag.core.errors import SearchIndexUnavailableError
from dataroom_rag.schemas.retrieval import MetadataFilter, SearchOptions, SearchResult
from dataroom_rag.services.embedding import embed_query
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.logging import get_logger
from dataroom_rag.utils.timing import timed

logger = get_logger("dataroom_rag.services.vector_store")

_RANGE_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
# Upper bound on pages expanded from a single "a-b" range
MAX_RANGE_PAGES = 500


def collection_name_for(dataroom_id: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]", "_", str(dataroom_id))
    return f"dataroom_{safe}"


def expand_page_ranges(page_ranges: list[str] | None) -> list[int]:
    """``["3", "5-7"]`` -> ``[3, 5, 6, 7]``; unparseable entries are skipped."""
    pages: list[int] = []
    for entry in page_ranges or []:
        match = _RANGE_RE.match(entry)
        if match:
            start, end = int(match.group(1)), int(match.group(2))
            if start > end:
                start, end = end, start
            pages.extend(range(start, min(end, start + MAX_RANGE_PAGES - 1) + 1))
        elif entry.strip().isdigit():
            pages.append(int(entry.strip()))
    return sorted(set(pages))


def build_where_clause(
    document_ids: list[str],
    metadata_filter: MetadataFilter | None,
) -> dict[str, Any] | None:
    clauses: list[dict[str, Any]] = []
    if document_ids:
        clauses.append({"document_id": {"$in": list(document_ids)}})
    if metadata_filter is not None:
        pages = expand_page_ranges(metadata_filter.page_ranges)
        if pages:
            clauses.append({"page_number": {"$in": pages}})
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def distance_to_similarity(distance: float | None) -> float | None:
    """Cosine distance (0..2) -> similarity (1..-1)."""
    if distance is None:
        return None
    return 1.0 - float(distance)


# ── Client ──────────────────────────────────────────────────────────
_thread_local = threading.local()


def _get_persist_directory(s: Settings) -> str:
    if s.chromadb_persist_directory:
        return s.chromadb_persist_directory
    base_dir = Path(__file__).resolve().parents[1]
    return str(base_dir / "vector_db" / "chroma_db")


def get_chroma_client(s: Settings) -> chromadb.ClientAPI:
    """
    Thread-local persistent client.  Queries run on executor threads and
    the SQLite-backed client must not be shared across them.
    """
    path = _get_persist_directory(s)
    if getattr(_thread_local, "persist_path", None) != path:
        _thread_local.client = chromadb.PersistentClient(
            path=path,
            settings=chromadb.Settings(anonymized_telemetry=False),
        )
        _thread_local.persist_path = path
    return _thread_local.client


class ChromaSearchService:
    def __init__(self, s: Settings):
        self._settings = s

    async def search(
        self,
        query: str,
        dataroom_id: str,
        document_ids: list[str],
        signal: CancellationSignal,
        options: SearchOptions,
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SearchResult]:
        signal.raise_if_aborted()
        if not document_ids:
            logger.info("No allow-listed documents for dataroom %s; skipping search", dataroom_id)
            return []

        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(
            None,
            functools.partial(
                self._query_sync, query, dataroom_id, document_ids, options, metadata_filter,
            ),
        )
        signal.raise_if_aborted()
        return results

    @timed("chroma_query")
    def _query_sync(
        self,
        query: str,
        dataroom_id: str,
        document_ids: list[str],
        options: SearchOptions,
        metadata_filter: MetadataFilter | None,
    ) -> list[SearchResult]:
        name = collection_name_for(dataroom_id)
        client = get_chroma_client(self._settings)
        try:
            collection = client.get_collection(name=name)
        except Exception as e:
            raise SearchIndexUnavailableError(
                f"No search index for dataroom {dataroom_id}",
                {"collection": name, "cause": str(e)},
            ) from e

        embedding = embed_query(query, self._settings.embedding_model_name)
        raw = collection.query(
            query_embeddings=[embedding],
            n_results=options.top_k,
            where=build_where_clause(document_ids, metadata_filter),
            include=["documents", "metadatas", "distances"],
        )
        return self._to_results(raw, options.similarity_threshold)

    @staticmethod
    def _to_results(raw: dict[str, Any], threshold: float) -> list[SearchResult]:
        ids = (raw.get("ids") or [[]])[0]
        documents = (raw.get("documents") or [[]])[0]
        metadatas = (raw.get("metadatas") or [[]])[0]
        distances = (raw.get("distances") or [[]])[0]

        results: list[SearchResult] = []
        for i, chunk_id in enumerate(ids):
            metadata = dict(metadatas[i] or {}) if i < len(metadatas) else {}
            similarity = distance_to_similarity(distances[i] if i < len(distances) else None)
            if similarity is not None and similarity < threshold:
                continue
            results.append(SearchResult(
                document_id=str(metadata.get("document_id", "")),
                chunk_id=str(chunk_id),
                content=documents[i] if i < len(documents) and documents[i] else "",
                similarity=similarity,
                metadata=metadata,
            ))
        return results
