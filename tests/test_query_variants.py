"""
Tests for search query-variant construction
"""
from dataroom_rag.pipeline.query_variants import (
    MAX_EXPANDED_QUERIES,
    MAX_FAST_QUERIES,
    MAX_STANDARD_QUERIES,
    build_queries_for_strategy,
    max_queries_for_strategy,
)
from dataroom_rag.schemas.intent import SearchStrategy

from tests.conftest import make_extraction


class TestBuildQueries:
    """Raw query first, rewrites within budget, HyDE only for expanded search"""

    def test_no_extraction_returns_raw_query(self):
        assert build_queries_for_strategy("rent?", None, SearchStrategy.STANDARD) == ["rent?"]

    def test_page_query_ignores_rewrites(self):
        extraction = make_extraction(rewrites=["a", "b"], pages=[3], hyde="h")
        assert build_queries_for_strategy("rent?", extraction, SearchStrategy.PAGE_QUERY) == ["rent?"]

    def test_fast_is_capped(self):
        extraction = make_extraction(rewrites=[f"q{i}" for i in range(10)])
        queries = build_queries_for_strategy("rent?", extraction, SearchStrategy.FAST)
        assert queries == ["rent?", "q0", "q1"]
        assert len(queries) == MAX_FAST_QUERIES

    def test_standard_is_capped(self):
        extraction = make_extraction(rewrites=[f"q{i}" for i in range(40)])
        queries = build_queries_for_strategy("rent?", extraction, SearchStrategy.STANDARD)
        assert len(queries) == MAX_STANDARD_QUERIES
        assert queries[0] == "rent?"

    def test_none_and_duplicate_rewrites_are_dropped(self):
        extraction = make_extraction(rewrites=[None, "rent?", "  monthly rent ", "monthly rent"])
        queries = build_queries_for_strategy("rent?", extraction, SearchStrategy.STANDARD)
        assert queries == ["rent?", "monthly rent"]

    def test_hyde_appended_for_expanded(self):
        extraction = make_extraction(rewrites=["a", "b"], hyde="The rent is 5000 per month.")
        queries = build_queries_for_strategy("rent?", extraction, SearchStrategy.EXPANDED)
        assert queries == ["rent?", "a", "b", "The rent is 5000 per month."]

    def test_hyde_ignored_for_standard(self):
        extraction = make_extraction(rewrites=["a"], hyde="hypothetical")
        queries = build_queries_for_strategy("rent?", extraction, SearchStrategy.STANDARD)
        assert "hypothetical" not in queries

    def test_expanded_never_exceeds_cap(self):
        extraction = make_extraction(rewrites=[f"q{i}" for i in range(40)], hyde="hyde")
        queries = build_queries_for_strategy("rent?", extraction, SearchStrategy.EXPANDED)
        assert len(queries) == MAX_EXPANDED_QUERIES

    def test_unknown_strategy_uses_standard_budget(self):
        assert max_queries_for_strategy("Nonsense") == MAX_STANDARD_QUERIES
        assert max_queries_for_strategy(SearchStrategy.PAGE_QUERY) == 1
