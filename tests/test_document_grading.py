"""
Tests for LLMDocumentGrader
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from dataroom_rag.core.config import Settings
from dataroom_rag.services.document_grading import (
    GradingResponseError,
    LLMDocumentGrader,
    parse_grades,
)

from tests.conftest import make_result


def _grader(content):
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    create = AsyncMock(return_value=response)
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    settings = Settings(openai_api_key="test", grading_relevance_cutoff=0.5)
    return LLMDocumentGrader(settings, client_factory=lambda s: client), create


class TestParseGrades:

    def test_valid(self):
        raw = json.dumps({"grades": [{"index": 0, "relevance_score": 0.9}, {"index": 7}]})
        assert set(parse_grades(raw, 2)) == {0}

    @pytest.mark.parametrize("raw", ["", "not json", "[]", '{"grades": []}'])
    def test_malformed(self, raw):
        with pytest.raises(GradingResponseError):
            parse_grades(raw, 2)


class TestLLMDocumentGrader:

    @pytest.mark.asyncio
    async def test_filters_below_cutoff(self):
        grades = {"grades": [
            {"index": 0, "relevance_score": 0.9, "confidence": 0.8, "reasoning": "answers it"},
            {"index": 1, "relevance_score": 0.1, "confidence": 0.9, "reasoning": "unrelated"},
        ]}
        grader, create = _grader(json.dumps(grades))

        result = await grader.grade_and_filter("rent?", [make_result("a"), make_result("b")])

        assert result.total_graded == 2
        assert [g.chunk_id for g in result.relevant_documents] == ["a"]
        assert result.relevant_documents[0].reasoning == "answers it"
        assert create.await_args.kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_all_irrelevant_keeps_best(self):
        grades = {"grades": [
            {"index": 0, "relevance_score": 0.1},
            {"index": 1, "relevance_score": 0.3},
        ]}
        grader, _ = _grader(json.dumps(grades))

        result = await grader.grade_and_filter("rent?", [make_result("a"), make_result("b")])

        assert [g.chunk_id for g in result.relevant_documents] == ["b", "a"]
        assert all(g.is_relevant for g in result.relevant_documents)

    @pytest.mark.asyncio
    async def test_bad_response_raises(self):
        grader, _ = _grader("nope")
        with pytest.raises(GradingResponseError):
            await grader.grade_and_filter("rent?", [make_result("a")])

    @pytest.mark.asyncio
    async def test_empty_input_skips_model(self):
        grader, create = _grader("{}")
        result = await grader.grade_and_filter("rent?", [])
        assert result.relevant_documents == []
        create.assert_not_awaited()
