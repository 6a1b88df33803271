"""Stateless offset pagination over a fully ranked list.

No cursor survives between calls; every page recomputes the ranking, so a
page is a pure function of the inputs and the underlying data.
"""

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def page_bounds(page: int, limit: int) -> tuple[int, int]:
    """Return ``(start, stop)`` slice bounds for a 1-indexed page."""
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    start = (page - 1) * limit
    return start, start + limit


def paginate(items: Sequence[T], page: int, limit: int) -> list[T]:
    start, stop = page_bounds(page, limit)
    return list(items[start:stop])
