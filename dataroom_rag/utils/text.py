"""
Text utilities:
  - Keyword extraction (used by the reranker)
  - Title humanization (stored filenames -> readable names)
  - Excerpt truncation on word boundaries

All functions are pure (no I/O, no DB, no LLM).
"""

from __future__ import annotations

import re

_WORD_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9'&.-]*")

# ── Words ignored by keyword matching ───────────────────────────────
_STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "can", "could", "did",
    "do", "does", "for", "from", "has", "have", "how", "i", "in", "is", "it",
    "its", "me", "my", "of", "on", "or", "our", "page", "pages", "please",
    "should", "tell", "that", "the", "their", "there", "this", "to", "was",
    "we", "what", "when", "where", "which", "who", "why", "will", "with",
    "would", "you", "your", "about", "document", "documents",
})


def extract_keywords(text: str) -> set[str]:
    """Lower-cased content words of ``text`` (stopwords and 1-char tokens removed)."""
    words = {w.strip(".-'").lower() for w in _WORD_RE.findall(text or "")}
    return {w for w in words if len(w) > 1 and w not in _STOPWORDS}


def keyword_overlap(query_keywords: set[str], content: str) -> float:
    """Share of ``query_keywords`` present in ``content`` (0.0 - 1.0)."""
    if not query_keywords:
        return 0.0
    content_words = extract_keywords(content)
    return len(query_keywords & content_words) / len(query_keywords)


def humanize_title(title: str | None) -> str | None:
    """
    Convert stored filenames to human-friendly names.

    Examples:
        "Lease_Agreement_v2.pdf" -> "Lease Agreement v2"
        "Q3 Financials (1).xlsx" -> "Q3 Financials"
    """
    if not title:
        return title
    t = title.strip()
    # Remove file extensions
    t = re.sub(r"\.(pdf|docx?|pptx?|xlsx?|csv|txt)$", "", t, flags=re.IGNORECASE)
    t = t.replace("_", " ")
    # Remove parenthetical counters like (1), (2)
    t = re.sub(r"\s*\(\d+\)$", "", t)
    t = re.sub(r"\s{2,}", " ", t).strip()
    return t or title


def truncate_excerpt(text: str, max_chars: int = 300) -> str:
    """Collapse whitespace and cut at a word boundary, adding an ellipsis."""
    t = re.sub(r"\s+", " ", text or "").strip()
    if len(t) <= max_chars:
        return t
    cut = t[:max_chars].rsplit(" ", 1)[0] or t[:max_chars]
    return cut.rstrip(" ,.;:") + "..."
