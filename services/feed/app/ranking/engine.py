"""Feed ranking engine for the three ranked surfaces.

Pipeline per call
-----------------
1. Candidate generation       home graph / explore exclusion, with widening fallback
2. Interest profile           once per call (optionally memoised in Redis)
3. Signal fan-out             five signals per candidate, concurrent, time-bounded
4. Aggregate + filter + sort  weighted sum, negative-feedback suppression
5. Author diversity           single soft-penalty pass, no re-sort
6. Pagination                 offset slice, recomputed on every call

Stages 2 and 3 share one deadline, ``query_timeout_s`` after the call starts,
and all three stop early once the caller sets ``cancel_event``.

The engine is fail-open: storage errors and timeouts shrink the result, they
never propagate to the serving layer. Invalid pagination is a caller error and
raises ``ValueError`` before any work starts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import TypeVar
from uuid import UUID

from app.ranking.aggregator import rank_candidates
from app.ranking.cache import InterestProfileCache
from app.ranking.candidates import CandidatePool, ExploreCandidates, HomeFeedCandidates
from app.ranking.diversity import apply_author_diversity
from app.ranking.interests import build_interest_profile
from app.ranking.pagination import page_bounds
from app.ranking.scorer import SignalScorer
from app.ranking.search import blend, top_by_relevance
from app.ranking.store import FeedStore
from app.ranking.types import (
    Candidate,
    FeedPage,
    InterestProfile,
    RankedCandidate,
    Surface,
    is_anonymous,
)
from app.ranking.weights import (
    DEFAULT_RANKING_CONFIG,
    DEFAULT_WEIGHT_PROFILES,
    RankingConfig,
    RankingWeights,
    WeightProfiles,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SLOW_CALL_S = 1.0

CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _until_done(
    aw: Awaitable[T],
    *,
    timeout_s: float | None,
    cancel_event: asyncio.Event | None,
) -> tuple[bool, T | None]:
    """Await ``aw`` until it finishes, ``timeout_s`` passes or ``cancel_event`` is set.

    Returns ``(True, result)`` if it finished, otherwise ``(False, None)`` once
    the abandoned work has been cancelled.
    """
    task = asyncio.ensure_future(aw)
    cancel_waiter = (
        asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
    )
    wait_on = {task, cancel_waiter} if cancel_waiter is not None else {task}
    try:
        await asyncio.wait(
            wait_on,
            timeout=None if timeout_s is None else max(timeout_s, 0.0),
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()
        abandoned = not task.done()
        if abandoned:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
    if abandoned:
        return False, None
    return True, task.result()


class FeedRankingEngine:
    def __init__(
        self,
        store: FeedStore,
        config: RankingConfig = DEFAULT_RANKING_CONFIG,
        profiles: WeightProfiles = DEFAULT_WEIGHT_PROFILES,
        *,
        interest_cache: InterestProfileCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._config = config
        self._profiles = profiles
        self._interest_cache = interest_cache
        self._clock = clock
        self.home_candidates = HomeFeedCandidates(store, config)
        self.explore_candidates = ExploreCandidates(store, config)

    @property
    def config(self) -> RankingConfig:
        return self._config

    # ------------------------------------------------------------------
    # Shared stages
    # ------------------------------------------------------------------

    async def interest_profile(
        self, viewer_id: UUID, now: datetime, *, timeout_s: float | None = None
    ) -> InterestProfile:
        if self._interest_cache is not None:
            cached = await self._interest_cache.get(viewer_id)
            if cached is not None:
                return cached
        profile = await build_interest_profile(
            self._store,
            viewer_id,
            window_days=self._config.interest_window_days,
            now=now,
            timeout_s=timeout_s,
        )
        if self._interest_cache is not None and profile:
            await self._interest_cache.set(viewer_id, profile)
        return profile

    def deadline(self) -> float:
        """Event-loop time by which a ranking call must finish scoring."""
        return asyncio.get_running_loop().time() + self._config.query_timeout_s

    async def rank(
        self,
        candidates: Sequence[Candidate],
        viewer_id: UUID,
        weights: RankingWeights,
        *,
        now: datetime | None = None,
        deadline: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[RankedCandidate]:
        """Score, filter, sort and diversify ``candidates`` for ``viewer_id``.

        The interest profile and the signal fan-out share one ``deadline``;
        whatever is left after the profile stage bounds the fan-out.
        """
        if not candidates:
            return []
        now = now or self._clock()
        loop = asyncio.get_running_loop()
        if deadline is None:
            deadline = self.deadline()

        remaining = deadline - loop.time()
        finished, profile = await _until_done(
            self.interest_profile(viewer_id, now, timeout_s=max(remaining, 0.0)),
            timeout_s=remaining,
            cancel_event=cancel_event,
        )
        if not finished:
            logger.warning(
                "Interest profile for viewer %s missed the ranking deadline; using empty profile",
                viewer_id,
            )
            profile = {}

        scorer = SignalScorer(self._store, viewer_id, profile, self._config, now)
        ranked = await rank_candidates(
            candidates,
            scorer,
            weights,
            timeout_s=max(deadline - loop.time(), 0.0),
            concurrency=self._config.signal_concurrency,
            cancel_event=cancel_event,
        )
        return apply_author_diversity(
            ranked,
            self._config.max_consecutive_same_author,
            self._config.diversity_multiplier,
        )

    async def _candidates(
        self,
        source: HomeFeedCandidates | ExploreCandidates,
        viewer_id: UUID | None,
        cancel_event: asyncio.Event | None,
    ) -> CandidatePool:
        finished, pool = await _until_done(
            source.generate(viewer_id), timeout_s=None, cancel_event=cancel_event
        )
        if not finished:
            logger.info("Candidate generation cancelled for viewer %s", viewer_id)
            return CandidatePool([], CANCELLED)
        return pool

    @staticmethod
    def _page(ranked: list[RankedCandidate], page: int, limit: int) -> FeedPage:
        start, stop = page_bounds(page, limit)
        window = ranked[start:stop]
        return FeedPage(
            posts=[r.candidate for r in window], page=page, limit=limit, ranked=window
        )

    def _log_timing(self, surface: Surface, started: float, **fields: object) -> None:
        duration = time.perf_counter() - started
        details = " ".join(f"{k}={v}" for k, v in fields.items())
        if duration > _SLOW_CALL_S:
            logger.warning("%s feed took %.0fms %s", surface.value, duration * 1000, details)
        else:
            logger.info("%s feed ranked in %.0fms %s", surface.value, duration * 1000, details)

    # ------------------------------------------------------------------
    # Surfaces
    # ------------------------------------------------------------------

    async def rank_home_feed(
        self,
        viewer_id: UUID,
        page: int = 1,
        limit: int = 20,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> FeedPage:
        page_bounds(page, limit)
        started = time.perf_counter()
        deadline = self.deadline()
        try:
            pool = await self._candidates(self.home_candidates, viewer_id, cancel_event)
            ranked = await self.rank(
                pool.candidates,
                viewer_id,
                self._profiles.for_surface(Surface.HOME),
                deadline=deadline,
                cancel_event=cancel_event,
            )
        except Exception:
            logger.exception("Home feed ranking failed for viewer %s", viewer_id)
            return FeedPage(posts=[], page=page, limit=limit)

        self._log_timing(
            Surface.HOME,
            started,
            viewer=viewer_id,
            stage=pool.stage,
            candidates=len(pool.candidates),
            ranked=len(ranked),
        )
        return self._page(ranked, page, limit)

    async def rank_explore_feed(
        self,
        viewer_id: UUID | None,
        page: int = 1,
        limit: int = 20,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> FeedPage:
        page_bounds(page, limit)
        started = time.perf_counter()
        deadline = self.deadline()
        try:
            pool = await self._candidates(self.explore_candidates, viewer_id, cancel_event)
            if is_anonymous(viewer_id):
                # No graph and no profile: the public stream stays newest-first.
                start, stop = page_bounds(page, limit)
                self._log_timing(
                    Surface.EXPLORE, started, viewer="anonymous", candidates=len(pool.candidates)
                )
                return FeedPage(posts=pool.candidates[start:stop], page=page, limit=limit)

            ranked = await self.rank(
                pool.candidates,
                viewer_id,
                self._profiles.for_surface(Surface.EXPLORE),
                deadline=deadline,
                cancel_event=cancel_event,
            )
        except Exception:
            logger.exception("Explore feed ranking failed for viewer %s", viewer_id)
            return FeedPage(posts=[], page=page, limit=limit)

        self._log_timing(
            Surface.EXPLORE,
            started,
            viewer=viewer_id,
            stage=pool.stage,
            candidates=len(pool.candidates),
            ranked=len(ranked),
        )
        return self._page(ranked, page, limit)

    async def rank_search_results(
        self,
        raw_matches: Sequence[Candidate],
        viewer_id: UUID | None,
        query: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[Candidate]:
        """Re-rank textual matches by ``0.6·relevance + 0.4·social score``.

        Signed-out searches and empty inputs come back unchanged. If ranking
        fails the raw matches are returned in their original order.
        """
        if is_anonymous(viewer_id) or not raw_matches:
            return list(raw_matches)

        started = time.perf_counter()
        deadline = self.deadline()
        try:
            top = top_by_relevance(raw_matches, query, self._config.max_candidates)
            relevance = {c.post_id: r for c, r in top}
            ranked = await self.rank(
                [c for c, _ in top],
                viewer_id,
                self._profiles.for_surface(Surface.SEARCH),
                deadline=deadline,
                cancel_event=cancel_event,
            )
        except Exception:
            logger.exception("Search re-ranking failed for viewer %s", viewer_id)
            return list(raw_matches)

        blended: list[tuple[float, RankedCandidate]] = []
        for entry in ranked:
            entry.text_relevance = relevance[entry.post_id]
            blended.append(
                (
                    blend(
                        entry.text_relevance,
                        entry.score,
                        self._config.search_text_weight,
                        self._config.search_social_weight,
                    ),
                    entry,
                )
            )
        # sorted() is stable, so equal blended scores keep the social order.
        blended = sorted(blended, key=lambda item: -item[0])

        self._log_timing(
            Surface.SEARCH, started, viewer=viewer_id, matches=len(raw_matches), ranked=len(ranked)
        )
        return [entry.candidate for _, entry in blended]
