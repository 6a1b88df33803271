"""Candidate generation per surface.

Both surfaces use the same two-stage shape: a primary query that expresses
what the surface wants (the viewer's graph for home, accounts the viewer does
not follow for explore) and a widened fallback that tops a thin pool up with
posts outside that scope. ``TwoStageStrategy`` owns the decision so each stage can be
exercised on its own.

Every stage is bounded by a timeout and fail-open: a storage error or timeout
counts as an empty stage result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

from app.ranking.store import FeedStore
from app.ranking.types import Candidate, is_anonymous
from app.ranking.weights import RankingConfig

logger = logging.getLogger(__name__)

# A stage returns None when it does not apply (e.g. a viewer with no graph).
Stage = Callable[[], Awaitable[list[Candidate] | None]]

PRIMARY = "primary"
FALLBACK = "fallback"


@dataclass(slots=True)
class CandidatePool:
    candidates: list[Candidate]
    stage: str


class TwoStageStrategy:
    """Run ``primary``; widen with ``fallback`` when it yields fewer than ``widen_below``.

    Widening keeps the primary posts first and appends fallback posts not
    already in the pool, up to ``max_size``.
    """

    def __init__(
        self,
        name: str,
        primary: Stage,
        fallback: Stage | None = None,
        *,
        widen_below: int = 1,
        max_size: int | None = None,
        primary_timeout_s: float = 15.0,
        fallback_timeout_s: float = 10.0,
    ) -> None:
        self.name = name
        self._primary = primary
        self._fallback = fallback
        self.widen_below = widen_below
        self.max_size = max_size
        self._primary_timeout_s = primary_timeout_s
        self._fallback_timeout_s = fallback_timeout_s

    async def _run(self, stage: Stage, label: str, timeout_s: float) -> list[Candidate] | None:
        try:
            return await asyncio.wait_for(stage(), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("%s %s stage timed out after %.1fs", self.name, label, timeout_s)
            return []
        except Exception:
            logger.warning("%s %s stage failed", self.name, label, exc_info=True)
            return []

    async def run_primary(self) -> list[Candidate] | None:
        return await self._run(self._primary, PRIMARY, self._primary_timeout_s)

    async def run_fallback(self) -> list[Candidate]:
        if self._fallback is None:
            return []
        return await self._run(self._fallback, FALLBACK, self._fallback_timeout_s) or []

    async def generate(self) -> CandidatePool:
        primary = await self.run_primary()
        if primary is not None and (len(primary) >= self.widen_below or self._fallback is None):
            return CandidatePool(primary, PRIMARY)

        if primary is None:
            logger.info("%s primary stage skipped; using fallback", self.name)
            primary = []
        else:
            logger.info(
                "%s primary stage returned %d (< %d); widening",
                self.name,
                len(primary),
                self.widen_below,
            )
        seen = {c.post_id for c in primary}
        widened = [c for c in await self.run_fallback() if c.post_id not in seen]
        merged = primary + widened
        if self.max_size is not None:
            merged = merged[: self.max_size]
        return CandidatePool(merged, FALLBACK)


class HomeFeedCandidates:
    """Posts from the viewer, accounts they follow and accounts following them."""

    def __init__(self, store: FeedStore, config: RankingConfig) -> None:
        self._store = store
        self._config = config

    async def author_ids(self, viewer_id: UUID) -> list[UUID]:
        """Viewer first, then followees, then followers; de-duplicated and capped."""
        followees = await self._store.get_followee_ids(viewer_id)
        followers = await self._store.get_follower_ids(viewer_id)
        authors = list(dict.fromkeys([viewer_id, *followees, *followers]))
        return authors[: self._config.home_author_cap]

    def strategy(self, viewer_id: UUID) -> TwoStageStrategy:
        pool_size = self._config.max_candidates

        async def graph_posts() -> list[Candidate] | None:
            authors = await self.author_ids(viewer_id)
            if len(authors) <= 1:
                return None
            return await self._store.get_posts_by_authors(authors, viewer_id, pool_size)

        async def public_posts() -> list[Candidate]:
            return await self._store.get_public_posts(pool_size)

        return TwoStageStrategy(
            "home",
            graph_posts,
            public_posts,
            widen_below=self._config.min_candidates,
            max_size=pool_size,
            primary_timeout_s=self._config.query_timeout_s,
            fallback_timeout_s=self._config.fallback_timeout_s,
        )

    async def generate(self, viewer_id: UUID) -> CandidatePool:
        return await self.strategy(viewer_id).generate()


class ExploreCandidates:
    """Recent public posts from accounts the viewer does not follow."""

    def __init__(self, store: FeedStore, config: RankingConfig) -> None:
        self._store = store
        self._config = config

    def strategy(self, viewer_id: UUID | None) -> TwoStageStrategy:
        pool_size = self._config.max_candidates

        async def public_stream() -> list[Candidate]:
            return await self._store.get_public_posts(pool_size)

        if is_anonymous(viewer_id):
            return TwoStageStrategy(
                "explore",
                public_stream,
                widen_below=0,
                primary_timeout_s=self._config.query_timeout_s,
            )

        async def unfollowed_posts() -> list[Candidate]:
            followees = await self._store.get_followee_ids(viewer_id)
            return await self._store.get_public_posts(
                pool_size, exclude_author_ids=[viewer_id, *followees]
            )

        async def all_but_own() -> list[Candidate]:
            return await self._store.get_public_posts(pool_size, exclude_author_ids=[viewer_id])

        return TwoStageStrategy(
            "explore",
            unfollowed_posts,
            all_but_own,
            widen_below=self._config.explore_fallback_threshold,
            max_size=pool_size,
            primary_timeout_s=self._config.query_timeout_s,
            fallback_timeout_s=self._config.fallback_timeout_s,
        )

    async def generate(self, viewer_id: UUID | None) -> CandidatePool:
        return await self.strategy(viewer_id).generate()
