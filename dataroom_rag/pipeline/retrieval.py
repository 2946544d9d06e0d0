"""
Pipeline retrieval stage: concurrent multi-query vector search.

1. Build the metadata filter (dataroom + allow-list, pages only when asked)
2. Fan out one search call per query variant, each raced against the
   strategy's per-query timeout
3. Fan in, concatenate in variant order
4. Deduplicate by chunk id (first occurrence wins)

A failing or slow variant contributes an empty list; it never aborts
its siblings or the batch.
"""

from __future__ import annotations

import asyncio

from dataroom_rag.core.config import RAGConfig, SearchConfig
from dataroom_rag.pipeline.collaborators import SearchService
from dataroom_rag.pipeline.events import StageReporter
from dataroom_rag.schemas.intent import SearchStrategy
from dataroom_rag.schemas.pipeline import PipelineContext
from dataroom_rag.schemas.retrieval import MetadataFilter, SearchOptions, SearchResult
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.pipeline.retrieval")


def search_config_for(config: RAGConfig, strategy: SearchStrategy | str) -> SearchConfig:
    strategy = SearchStrategy.parse(strategy)
    return {
        SearchStrategy.FAST: config.fast,
        SearchStrategy.STANDARD: config.standard,
        SearchStrategy.EXPANDED: config.expanded,
        SearchStrategy.PAGE_QUERY: config.page_query,
    }[strategy]


def build_metadata_filter(context: PipelineContext) -> MetadataFilter:
    """Scope by dataroom and allow-list; add page ranges only for explicit pages."""
    page_ranges = None
    if context.page_numbers:
        page_ranges = [str(page) for page in context.page_numbers]
    return MetadataFilter(
        dataroom_id=context.dataroom_id,
        document_ids=context.document_ids,
        page_ranges=page_ranges,
    )


def remove_duplicate_results(results: list[SearchResult]) -> list[SearchResult]:
    """Keep the first occurrence of every chunk id, preserving order."""
    seen: set[str] = set()
    unique: list[SearchResult] = []
    for result in results:
        if result.chunk_id in seen:
            continue
        seen.add(result.chunk_id)
        unique.append(result)
    return unique


async def perform_vector_search(
    search_queries: list[str],
    context: PipelineContext,
    strategy: SearchStrategy,
    search_service: SearchService,
    config: RAGConfig,
    report: StageReporter,
) -> list[SearchResult]:
    search_config = search_config_for(config, strategy)
    options = SearchOptions(
        top_k=search_config.top_k,
        similarity_threshold=search_config.similarity_threshold,
    )
    document_ids = context.document_ids

    metadata_filter: MetadataFilter | None = None
    if context.page_numbers:
        metadata_filter = build_metadata_filter(context)
        report("PAGE_FILTER", "Applied page filtering", page_ranges=metadata_filter.page_ranges)
    else:
        report("NO_PAGE_FILTER", "No page-specific filtering applied")

    report("VECTOR_SEARCH", f"Searching with {len(search_queries)} queries", strategy=strategy.value)

    timeout_s = search_config.timeout_ms / 1000

    async def _search_one(index: int, query: str) -> list[SearchResult]:
        try:
            results = await asyncio.wait_for(
                search_service.search(
                    query,
                    context.dataroom_id,
                    document_ids,
                    context.signal,
                    options,
                    metadata_filter,
                ),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Query %d timed out after %dms: %s",
                index + 1, search_config.timeout_ms, query[:80],
            )
            return []
        except Exception as e:
            logger.error("Query %d failed: %s", index + 1, e)
            return []
        report(f"QUERY_{index + 1}", f"Found {len(results)} results")
        return results

    per_query = await asyncio.gather(
        *(_search_one(i, q) for i, q in enumerate(search_queries))
    )

    all_results: list[SearchResult] = []
    for results in per_query:
        all_results.extend(results)

    unique = remove_duplicate_results(all_results)
    report(
        "SEARCH_COMPLETE",
        f"Combined {len(all_results)} results -> {len(unique)} unique results",
        strategy=strategy.value,
    )
    return unique
