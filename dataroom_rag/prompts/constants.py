"""
Shared prompt constants: the citation rules and banned phrases that
every answer-producing prompt embeds.
"""

from __future__ import annotations


# ── Banned phrases (universal) ──────────────────────────────────────
BANNED_PHRASES: list[str] = [
    "According to the context",
    "The provided context says",
    "Based on the chunks",
]


# ── Citation rules ──────────────────────────────────────────────────
CITATION_RULES = """
CITATION RULES:
- Cite the document name (and page when known) for every factual claim, e.g. "(Lease Agreement, p.4)".
- Only cite documents listed under SOURCES.
- If the context does not contain the answer, say so plainly. Never invent figures, dates or names.
""".strip()


def build_banned_phrases_rule() -> str:
    quoted = ", ".join(f'"{p}"' for p in BANNED_PHRASES)
    return f"Do not use phrases like {quoted}; speak about the documents directly."
