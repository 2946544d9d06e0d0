"""
Prompt templates for answer generation.

  build_rag_system_prompt      grounded answer over retrieved context
  build_fallback_system_prompt answer when no usable context was found
"""

from __future__ import annotations

from dataroom_rag.prompts.constants import CITATION_RULES, build_banned_phrases_rule
from dataroom_rag.schemas.retrieval import Source


def format_citation_line(source: Source) -> str:
    """``• Name (p.N) - location`` with page and location only when known."""
    line = f"• {source.document_name}"
    if source.page_number:
        line += f" (p.{source.page_number})"
    if source.location_info:
        line += f" - {source.location_info}"
    return line


def build_citation_lines(sources: list[Source]) -> str:
    return "\n".join(format_citation_line(s) for s in sources)


def build_rag_system_prompt(
    context: str,
    sources: list[Source],
    page_numbers: list[int] | None = None,
) -> str:
    """
    System message for a grounded answer.

    When the user asked about specific pages the model is told to stay
    on those pages.
    """
    sections = [
        "You are a meticulous analyst answering questions about the documents "
        "in a secure dataroom. Answer only from the CONTEXT below.",
        CITATION_RULES,
        build_banned_phrases_rule(),
    ]

    if page_numbers:
        pages = ", ".join(str(p) for p in page_numbers)
        label = "page" if len(page_numbers) == 1 else "pages"
        sections.append(
            f"PAGE RESTRICTION: The user asked about {label} {pages}. "
            f"Answer using content from {label} {pages} only; if that content does not "
            "answer the question, say so instead of drawing on other pages."
        )

    sections.append(f"SOURCES:\n{build_citation_lines(sources) or '(none)'}")
    sections.append(f"CONTEXT:\n{context}")
    return "\n\n".join(sections)


def build_fallback_system_prompt(reason_or_query: str) -> str:
    """
    System message when retrieval produced nothing usable.

    ``reason_or_query`` is either the user's question or a user-facing
    explanation (invalid page, timeout) that must be relayed.
    """
    return (
        "You are the assistant of a document dataroom. No relevant content was "
        "found in the dataroom's documents (which may include contracts, "
        "financial statements, reports and other various document types) for this request.\n\n"
        "Reply briefly and helpfully:\n"
        "- If the message below explains a problem, relay it to the user in plain words.\n"
        "- Otherwise, say that the documents do not appear to cover the question, "
        "and suggest how it could be rephrased or narrowed.\n"
        "- Do not answer from general knowledge and do not invent document content.\n\n"
        f"MESSAGE: {reason_or_query}"
    )
