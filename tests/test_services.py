"""
Tests for the default collaborators: reranking, compression, source
building and the Chroma query helpers
"""
import pytest

from dataroom_rag.schemas.intent import ComplexityAnalysis
from dataroom_rag.schemas.retrieval import GradedDocument, MetadataFilter
from dataroom_rag.services.context_compression import TokenBudgetCompressor
from dataroom_rag.services.llm import count_tokens
from dataroom_rag.services.reranker import ScoreReranker
from dataroom_rag.services.source_building import (
    DocumentSourceBuilder,
    location_from_metadata,
    page_from_metadata,
)
from dataroom_rag.services.vector_store import (
    ChromaSearchService,
    build_where_clause,
    collection_name_for,
    expand_page_ranges,
)
from dataroom_rag.utils.cancellation import CancellationSignal
from dataroom_rag.utils.text import humanize_title, truncate_excerpt

from tests.conftest import make_documents, make_result


class TestScoreReranker:

    @pytest.mark.asyncio
    async def test_keyword_overlap_breaks_similarity_ties(self):
        results = [
            make_result("a", content="Parking spaces are allocated.", similarity=0.5),
            make_result("b", content="The monthly rent is 5000 EUR.", similarity=0.5),
        ]

        ranked = await ScoreReranker().rerank("monthly rent", results, CancellationSignal())

        assert [r.chunk_id for r in ranked] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_stable_for_equal_scores(self):
        results = [make_result("a", content="x"), make_result("b", content="y")]
        ranked = await ScoreReranker().rerank("unrelated", results, CancellationSignal())
        assert [r.chunk_id for r in ranked] == ["a", "b"]


class TestTokenBudgetCompressor:

    @pytest.mark.asyncio
    async def test_under_budget_keeps_everything(self):
        compressor = TokenBudgetCompressor({"low": 1000, "medium": 1000, "high": 1000})
        results = [make_result("a", content="alpha"), make_result("b", content="beta")]

        compressed = await compressor.compress(results, "q", CancellationSignal())

        assert compressed.content == "alpha\n\nbeta"
        assert compressed.original_tokens == compressed.compressed_tokens

    @pytest.mark.asyncio
    async def test_keeps_most_similar_within_budget(self):
        low_text = "lorem ipsum " * 40
        high_text = "the rent is five thousand euros per month"
        budget = count_tokens(high_text) + 5
        compressor = TokenBudgetCompressor({"low": budget, "medium": budget, "high": budget})
        results = [
            make_result("low", content=low_text, similarity=0.2),
            make_result("high", content=high_text, similarity=0.9),
        ]

        compressed = await compressor.compress(
            results, "rent", CancellationSignal(), ComplexityAnalysis(complexity_level="low"),
        )

        assert compressed.content == high_text
        assert compressed.compressed_tokens < compressed.original_tokens

    @pytest.mark.asyncio
    async def test_single_oversized_chunk_is_truncated(self):
        compressor = TokenBudgetCompressor({"low": 10, "medium": 10, "high": 10})
        results = [make_result("a", content="word " * 200)]

        compressed = await compressor.compress(results, "q", CancellationSignal())

        assert 0 < count_tokens(compressed.content) <= 10

    def test_budget_by_level(self):
        compressor = TokenBudgetCompressor({"low": 1, "medium": 2, "high": 3})
        assert compressor.budget_for(None) == 2
        assert compressor.budget_for(ComplexityAnalysis(complexity_level="high")) == 3
        assert compressor.budget_for(ComplexityAnalysis(complexity_level="weird")) == 2


def _graded(chunk_id, document_id="doc-1", relevant=True, metadata=None):
    return GradedDocument(
        document_id=document_id,
        chunk_id=chunk_id,
        relevance_score=0.9,
        confidence=0.7,
        reasoning="",
        is_relevant=relevant,
        original_content=f"content of {chunk_id}",
        metadata=metadata or {},
    )


class TestDocumentSourceBuilder:

    def test_maps_relevant_allow_listed_chunks(self):
        raw = [
            make_result("a", page=3),
            make_result("b"),
            make_result("x", document_id="doc-9"),
        ]
        graded = [
            _graded("a", metadata={"section": "Rent"}),
            _graded("b", relevant=False),
            _graded("x", document_id="doc-9"),
            _graded("a"),
        ]

        sources = DocumentSourceBuilder().build_sources(graded, raw, make_documents())

        assert len(sources) == 1
        source = sources[0]
        assert source.document_name == "Lease Agreement"
        assert source.page_number == 3
        assert source.location_info == "Section: Rent"
        assert source.excerpt == "content of a"
        assert source.confidence == 0.7

    def test_page_keys(self):
        assert page_from_metadata({"pageNumber": "7"}) == 7
        assert page_from_metadata({"page": 2}) == 2
        assert page_from_metadata({"page_number": "n/a", "page": 0}) is None
        assert location_from_metadata({}) is None


class TestChromaHelpers:

    def test_collection_name(self):
        assert collection_name_for("room 1") == "dataroom_room_1"

    def test_expand_page_ranges(self):
        assert expand_page_ranges(["3", "5-7", "x", "9-8"]) == [3, 5, 6, 7, 8, 9]
        assert expand_page_ranges(None) == []

    def test_where_clause(self):
        assert build_where_clause(["d1"], None) == {"document_id": {"$in": ["d1"]}}
        f = MetadataFilter(dataroom_id="r", document_ids=["d1"], page_ranges=["2"])
        assert build_where_clause(["d1"], f) == {
            "$and": [{"document_id": {"$in": ["d1"]}}, {"page_number": {"$in": [2]}}]
        }
        assert build_where_clause([], None) is None

    def test_results_from_raw_query(self):
        raw = {
            "ids": [["c1", "c2"]],
            "documents": [["close", "far"]],
            "metadatas": [[{"document_id": "d1", "page_number": 1}, {"document_id": "d2"}]],
            "distances": [[0.2, 0.95]],
        }

        results = ChromaSearchService._to_results(raw, threshold=0.3)

        assert [r.chunk_id for r in results] == ["c1"]
        assert results[0].similarity == pytest.approx(0.8)
        assert results[0].document_id == "d1"


class TestTextHelpers:

    def test_humanize_title(self):
        assert humanize_title("Lease_Agreement_v2.pdf") == "Lease Agreement v2"
        assert humanize_title("Q3 Financials (1).xlsx") == "Q3 Financials"

    def test_truncate_excerpt(self):
        assert truncate_excerpt("short  text") == "short text"
        cut = truncate_excerpt("word " * 100, max_chars=20)
        assert cut.endswith("...")
        assert len(cut) <= 23
