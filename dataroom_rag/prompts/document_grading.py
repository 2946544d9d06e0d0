"""
Prompt template for document grading.

One batched call scores every retrieved chunk for relevance to the
question.  Chunks are numbered so the model answers by index instead
of echoing ids.
"""

from __future__ import annotations

from dataroom_rag.schemas.retrieval import SearchResult

MAX_CHUNK_CHARS = 1200


def build_grading_prompt(
    question: str,
    results: list[SearchResult],
    complexity_level: str | None = None,
) -> tuple[str, str]:
    """
    Build the system and user prompts for relevance grading.

    Returns:
        (system_prompt, user_prompt)
    """
    system_prompt = (
        "You are a strict relevance grader for a document question-answering system. "
        "For each numbered chunk decide how useful it is for answering the question.\n\n"
        "Output ONLY valid JSON with this schema:\n"
        "{\n"
        '  "grades": [\n'
        '    {"index": 0, "relevance_score": 0.0-1.0, "confidence": 0.0-1.0, '
        '"reasoning": "one short sentence"}\n'
        "  ]\n"
        "}\n\n"
        "Rules:\n"
        "- Grade every chunk exactly once, by its index.\n"
        "- 1.0 = directly answers the question, 0.5 = useful background, 0.0 = unrelated.\n"
        "- Judge the text only; do not reward keyword overlap without substance.\n"
    )
    if complexity_level == "high":
        system_prompt += "- The question is complex: partial answers and supporting evidence count as useful.\n"

    chunk_blocks = []
    for index, result in enumerate(results):
        content = result.content[:MAX_CHUNK_CHARS]
        chunk_blocks.append(f"[{index}]\n{content}")

    user_prompt = (
        f"## QUESTION\n{question}\n\n"
        f"## CHUNKS\n" + "\n\n".join(chunk_blocks)
    )
    return system_prompt, user_prompt
