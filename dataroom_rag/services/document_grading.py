"""
LLM relevance grading.

One JSON-mode call grades the whole batch.  Chunks scoring below the
relevance cutoff are dropped; when every chunk is dropped the best few
are kept so generation still has something to cite.

Transport or parse failures raise: the orchestrator owns the
"grading failed -> treat everything as relevant" degradation.
"""

from __future__ import annotations

import json
from typing import Any, Callable

from openai import AsyncOpenAI

from dataroom_rag.core.config import Settings
from dataroom_rag.prompts.document_grading import build_grading_prompt
from dataroom_rag.schemas.intent import ComplexityAnalysis
from dataroom_rag.schemas.retrieval import GradedDocument, GradingResult, SearchResult
from dataroom_rag.services.llm import get_openai_client
from dataroom_rag.utils.logging import get_logger

logger = get_logger("dataroom_rag.services.document_grading")

# Kept when the grader rejects everything
MIN_KEPT_WHEN_ALL_IRRELEVANT = 3


class GradingResponseError(ValueError):
    """The grading model returned something that is not a usable grade list."""


def _clamp(value: Any, default: float = 0.0) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def parse_grades(raw: str | None, count: int) -> dict[int, dict[str, Any]]:
    """Map chunk index -> grade dict; raises GradingResponseError on malformed output."""
    if not raw or not raw.strip():
        raise GradingResponseError("Grader returned empty content")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise GradingResponseError(f"Grader returned invalid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("grades"), list):
        raise GradingResponseError("Grader response has no 'grades' list")

    grades: dict[int, dict[str, Any]] = {}
    for item in data["grades"]:
        if not isinstance(item, dict):
            continue
        index = item.get("index")
        if isinstance(index, int) and 0 <= index < count and index not in grades:
            grades[index] = item
    if not grades:
        raise GradingResponseError("Grader response graded no chunks")
    return grades


class LLMDocumentGrader:
    def __init__(
        self,
        s: Settings,
        client_factory: Callable[[Settings], AsyncOpenAI] = get_openai_client,
    ):
        self._settings = s
        self._client_factory = client_factory
        self.relevance_cutoff = s.grading_relevance_cutoff

    async def grade_and_filter(
        self,
        query: str,
        results: list[SearchResult],
        complexity_analysis: ComplexityAnalysis | None = None,
    ) -> GradingResult:
        if not results:
            return GradingResult(relevant_documents=[], total_graded=0)

        system_prompt, user_prompt = build_grading_prompt(
            query,
            results,
            complexity_analysis.complexity_level if complexity_analysis else None,
        )

        client = self._client_factory(self._settings)
        response = await client.chat.completions.create(
            model=self._settings.grading_model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0.0,
            max_tokens=min(4000, 60 * len(results) + 100),
        )
        if not response.choices:
            raise GradingResponseError("Grader returned no choices")

        grades = parse_grades(response.choices[0].message.content, len(results))
        graded = [self._to_graded(result, grades.get(i)) for i, result in enumerate(results)]

        relevant = [g for g in graded if g.is_relevant]
        if not relevant:
            logger.warning(
                "Grader rejected all %d chunks; keeping top %d",
                len(graded), MIN_KEPT_WHEN_ALL_IRRELEVANT,
            )
            relevant = sorted(graded, key=lambda g: g.relevance_score, reverse=True)
            relevant = [
                g.model_copy(update={"is_relevant": True})
                for g in relevant[:MIN_KEPT_WHEN_ALL_IRRELEVANT]
            ]

        logger.info("Graded %d chunks -> %d relevant", len(graded), len(relevant))
        return GradingResult(relevant_documents=relevant, total_graded=len(graded))

    def _to_graded(self, result: SearchResult, grade: dict[str, Any] | None) -> GradedDocument:
        if grade is None:
            # Ungraded chunk: judge by similarity alone
            score = result.similarity if result.similarity is not None else 0.0
            confidence = 0.3
            reasoning = "Not graded by model"
        else:
            score = _clamp(grade.get("relevance_score"))
            confidence = _clamp(grade.get("confidence"), default=0.5)
            reasoning = str(grade.get("reasoning") or "")
        return GradedDocument(
            document_id=result.document_id,
            chunk_id=result.chunk_id,
            relevance_score=score,
            confidence=confidence,
            reasoning=reasoning,
            is_relevant=score >= self.relevance_cutoff,
            suggested_weight=max(0.1, score),
            original_content=result.content,
            metadata=result.metadata,
        )
