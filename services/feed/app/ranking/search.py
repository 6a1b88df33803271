"""Text relevance and text/social blending for post search.

Relevance of a post to a query (case-insensitive):

  substring match        0.8, +0.1 per repeat occurrence, capped at 1.0
  exact hashtag match    at least 0.9 (``#rust`` matches query ``rust`` or ``#rust``)
  no match               0.0

The final search score is ``0.6·relevance + 0.4·social``.
"""

from collections.abc import Sequence

from app.ranking.signals import extract_hashtags
from app.ranking.types import Candidate

SUBSTRING_MATCH = 0.8
REPEAT_BOOST = 0.1
HASHTAG_MATCH = 0.9


def text_relevance(text: str | None, query: str) -> float:
    needle = query.strip().lower()
    if not text or not needle:
        return 0.0

    haystack = text.lower()
    relevance = 0.0
    occurrences = haystack.count(needle)
    if occurrences:
        relevance = min(SUBSTRING_MATCH + REPEAT_BOOST * (occurrences - 1), 1.0)

    tag = needle if needle.startswith("#") else f"#{needle}"
    if tag in extract_hashtags(text):
        relevance = max(relevance, HASHTAG_MATCH)
    return relevance


def top_by_relevance(
    candidates: Sequence[Candidate], query: str, limit: int
) -> list[tuple[Candidate, float]]:
    """Pair candidates with relevance; keep the ``limit`` most relevant (stable)."""
    scored = [(c, text_relevance(c.text, query)) for c in candidates]
    order = sorted(range(len(scored)), key=lambda i: (-scored[i][1], i))
    return [scored[i] for i in order[:limit]]


def blend(relevance: float, social: float, text_weight: float = 0.6, social_weight: float = 0.4) -> float:
    return text_weight * relevance + social_weight * social
