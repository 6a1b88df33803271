"""Author-diversity pass over an already sorted ranking.

Walks left to right with a per-author counter. When an author's counter has
reached ``max_consecutive`` the entry's score is multiplied by ``multiplier``
and the counter resets. Soft penalty only: the list is not re-sorted.
"""

from collections.abc import Sequence
from uuid import UUID

from app.ranking.types import RankedCandidate


def apply_author_diversity(
    ranked: Sequence[RankedCandidate],
    max_consecutive: int = 3,
    multiplier: float = 0.9,
) -> list[RankedCandidate]:
    counts: dict[UUID, int] = {}
    result: list[RankedCandidate] = []
    for entry in ranked:
        seen = counts.get(entry.author_id, 0)
        if seen >= max_consecutive:
            entry.score *= multiplier
            counts[entry.author_id] = 0
        else:
            counts[entry.author_id] = seen + 1
        result.append(entry)
    return result
