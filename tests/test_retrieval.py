"""
Tests for the concurrent multi-query retrieval stage
"""
import pytest

from dataroom_rag.pipeline.retrieval import (
    build_metadata_filter,
    perform_vector_search,
    remove_duplicate_results,
    search_config_for,
)
from dataroom_rag.schemas.intent import SearchStrategy

from tests.conftest import FakeSearchService, make_config, make_context, make_result


class TestRemoveDuplicates:

    def test_first_occurrence_wins(self):
        first = make_result("c1", content="first")
        second = make_result("c1", content="second")
        other = make_result("c2")

        unique = remove_duplicate_results([first, other, second])

        assert [r.chunk_id for r in unique] == ["c1", "c2"]
        assert unique[0].content == "first"

    def test_empty(self):
        assert remove_duplicate_results([]) == []


class TestMetadataFilter:

    def test_no_pages_means_no_page_ranges(self):
        f = build_metadata_filter(make_context())
        assert f.dataroom_id == "room-1"
        assert f.document_ids == ["doc-1", "doc-2"]
        assert f.page_ranges is None

    def test_pages_become_ranges(self):
        f = build_metadata_filter(make_context(pages=[3, 5]))
        assert f.page_ranges == ["3", "5"]

    def test_search_config_per_strategy(self):
        config = make_config()
        assert search_config_for(config, SearchStrategy.PAGE_QUERY) is config.page_query
        assert search_config_for(config, "garbage") is config.standard


class TestPerformVectorSearch:
    """Fan-out over variants, isolation of failures, fan-in + dedup"""

    @pytest.mark.asyncio
    async def test_results_concatenated_in_variant_order(self, recorder):
        _, report = recorder
        search = FakeSearchService(by_query={
            "q1": [make_result("a"), make_result("b")],
            "q2": [make_result("b"), make_result("c")],
        })

        results = await perform_vector_search(
            ["q1", "q2"], make_context(), SearchStrategy.STANDARD, search, make_config(), report,
        )

        assert [r.chunk_id for r in results] == ["a", "b", "c"]
        assert {c.query for c in search.calls} == {"q1", "q2"}

    @pytest.mark.asyncio
    async def test_failing_variant_does_not_abort_siblings(self, recorder):
        _, report = recorder
        search = FakeSearchService(
            by_query={"ok": [make_result("a")]},
            fail_queries={"bad"},
        )

        results = await perform_vector_search(
            ["bad", "ok"], make_context(), SearchStrategy.STANDARD, search, make_config(), report,
        )

        assert [r.chunk_id for r in results] == ["a"]

    @pytest.mark.asyncio
    async def test_slow_variant_times_out_to_empty(self, recorder):
        _, report = recorder
        search = FakeSearchService(
            by_query={"slow": [make_result("s")], "fast": [make_result("f")]},
            delays={"slow": 5},
        )

        results = await perform_vector_search(
            ["slow", "fast"], make_context(), SearchStrategy.FAST, search,
            make_config(timeout_ms=50), report,
        )

        assert [r.chunk_id for r in results] == ["f"]

    @pytest.mark.asyncio
    async def test_no_filter_without_pages(self, recorder):
        sink, report = recorder
        search = FakeSearchService(results=[make_result("a")])

        await perform_vector_search(
            ["q"], make_context(), SearchStrategy.STANDARD, search, make_config(), report,
        )

        call = search.calls[0]
        assert call.metadata_filter is None
        assert call.dataroom_id == "room-1"
        assert call.document_ids == ["doc-1", "doc-2"]
        assert call.options.top_k == 5
        assert "NO_PAGE_FILTER" in sink.stages

    @pytest.mark.asyncio
    async def test_filter_with_pages(self, recorder):
        sink, report = recorder
        search = FakeSearchService(results=[make_result("a", page=3)])

        await perform_vector_search(
            ["q"], make_context(pages=[3]), SearchStrategy.PAGE_QUERY, search, make_config(), report,
        )

        assert search.calls[0].metadata_filter.page_ranges == ["3"]
        assert "PAGE_FILTER" in sink.stages
        assert "SEARCH_COMPLETE" in sink.stages

    @pytest.mark.asyncio
    async def test_everything_fails_returns_empty(self, recorder):
        _, report = recorder
        search = FakeSearchService(fail_queries={"q1", "q2"})

        results = await perform_vector_search(
            ["q1", "q2"], make_context(), SearchStrategy.STANDARD, search, make_config(), report,
        )

        assert results == []
