"""
Citation source building.

Pure mapping from graded chunks to ``Source`` records: relevant and
allow-listed only, one source per chunk, in graded order.
"""

from __future__ import annotations

from typing import Any

from dataroom_rag.schemas.retrieval import GradedDocument, IndexedDocument, SearchResult, Source
from dataroom_rag.utils.logging import get_logger
from dataroom_rag.utils.text import humanize_title, truncate_excerpt

logger = get_logger("dataroom_rag.services.source_building")

_PAGE_KEYS = ("page_number", "pageNumber", "page")
_SECTION_KEYS = ("section", "section_title", "heading")


def page_from_metadata(metadata: dict[str, Any]) -> int | None:
    for key in _PAGE_KEYS:
        value = metadata.get(key)
        if value is None or value == "":
            continue
        try:
            page = int(value)
        except (TypeError, ValueError):
            continue
        if page > 0:
            return page
    return None


def location_from_metadata(metadata: dict[str, Any]) -> str | None:
    for key in _SECTION_KEYS:
        value = metadata.get(key)
        if value:
            return f"Section: {value}"
    return None


class DocumentSourceBuilder:
    def __init__(self, excerpt_chars: int = 300):
        self.excerpt_chars = excerpt_chars

    def build_sources(
        self,
        graded: list[GradedDocument],
        raw: list[SearchResult],
        indexed_documents: list[IndexedDocument],
    ) -> list[Source]:
        documents = {doc.document_id: doc for doc in indexed_documents}
        raw_by_chunk = {r.chunk_id: r for r in raw}

        sources: list[Source] = []
        seen: set[str] = set()
        for doc in graded:
            if not doc.is_relevant or doc.chunk_id in seen:
                continue
            indexed = documents.get(doc.document_id)
            if indexed is None:
                logger.debug("Dropping source for non-allow-listed document %s", doc.document_id)
                continue
            seen.add(doc.chunk_id)

            result = raw_by_chunk.get(doc.chunk_id)
            metadata = {**(result.metadata if result else {}), **doc.metadata}
            content = doc.original_content or (result.content if result else "")

            sources.append(Source(
                document_id=doc.document_id,
                document_name=humanize_title(indexed.display_name) or indexed.display_name,
                chunk_id=doc.chunk_id,
                page_number=page_from_metadata(metadata),
                location_info=location_from_metadata(metadata),
                relevance_score=doc.relevance_score,
                confidence=doc.confidence,
                excerpt=truncate_excerpt(content, self.excerpt_chars),
            ))
        return sources
