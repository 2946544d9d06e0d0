"""
Search query-variant construction.

The raw query always comes first; upstream rewrites (and, for expanded
search, the HyDE answer) are appended within the strategy's budget.
"""

from __future__ import annotations

from dataroom_rag.schemas.intent import QueryExtraction, SearchStrategy

MAX_FAST_QUERIES = 3
MAX_STANDARD_QUERIES = 15
MAX_EXPANDED_QUERIES = 20

_MAX_QUERIES = {
    SearchStrategy.FAST: MAX_FAST_QUERIES,
    SearchStrategy.STANDARD: MAX_STANDARD_QUERIES,
    SearchStrategy.EXPANDED: MAX_EXPANDED_QUERIES,
    SearchStrategy.PAGE_QUERY: 1,
}


def max_queries_for_strategy(strategy: SearchStrategy | str) -> int:
    return _MAX_QUERIES.get(SearchStrategy.parse(strategy), MAX_STANDARD_QUERIES)


def build_queries_for_strategy(
    query: str,
    query_extraction: QueryExtraction | None,
    strategy: SearchStrategy | str,
) -> list[str]:
    """
    Return the ordered, de-duplicated list of search strings for one run.

    PageQueryStrategy only ever searches the raw query.
    """
    strategy = SearchStrategy.parse(strategy)
    if strategy == SearchStrategy.PAGE_QUERY:
        return [query]

    max_queries = max_queries_for_strategy(strategy)
    queries: list[str] = [query]

    rewriting = query_extraction.query_rewriting if query_extraction else None
    if rewriting and rewriting.rewritten_queries:
        # Reserve 1 slot for the original query
        rewritten = [q for q in rewriting.rewritten_queries[: max_queries - 1] if q is not None]
        queries.extend(rewritten)

    if (
        strategy == SearchStrategy.EXPANDED
        and rewriting is not None
        and rewriting.requires_hyde
        and rewriting.hyde_answer
    ):
        queries.append(rewriting.hyde_answer)

    seen: set[str] = set()
    unique: list[str] = []
    for q in queries:
        q = q.strip()
        if q and q not in seen:
            seen.add(q)
            unique.append(q)

    return unique[:max_queries]
