"""Per-candidate signal computation for one ranking call.

``SignalScorer`` binds the call-local context (viewer, interest profile,
config, a fixed ``now``) and turns storage reads into the five signals via the
pure functions in ``signals``. Each I/O-backed signal is fail-open: a storage
error degrades that signal to its neutral value instead of failing the post.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from uuid import UUID

from app.ranking import signals
from app.ranking.store import FeedStore
from app.ranking.types import Candidate, InterestProfile, SignalScores
from app.ranking.weights import RankingConfig

logger = logging.getLogger(__name__)


class SignalScorer:
    def __init__(
        self,
        store: FeedStore,
        viewer_id: UUID,
        profile: InterestProfile,
        config: RankingConfig,
        now: datetime,
    ) -> None:
        self._store = store
        self._viewer_id = viewer_id
        self._profile = profile
        self._config = config
        self._now = now
        self._relationship_since = now - timedelta(days=config.relationship_window_days)
        self._engagement_since = now - timedelta(days=config.engagement_window_days)
        # Relationship depends only on the author; posts by one author share a lookup.
        self._relationship_tasks: dict[UUID, asyncio.Task[float]] = {}

    # ------------------------------------------------------------------
    # Individual signals
    # ------------------------------------------------------------------

    async def _load_relationship(self, author_id: UUID) -> float:
        try:
            is_following, is_followed_by = await self._store.get_follow_state(
                self._viewer_id, author_id
            )
            reactions, comments = await self._store.count_viewer_interactions_with_author(
                self._viewer_id, author_id, self._relationship_since
            )
        except Exception:
            logger.warning(
                "Relationship lookup failed (viewer=%s author=%s)",
                self._viewer_id,
                author_id,
                exc_info=True,
            )
            return signals.NO_RELATION
        return signals.score_relationship(
            is_self=False,
            is_following=is_following,
            is_followed_by=is_followed_by,
            reactions=reactions,
            comments=comments,
        )

    async def relationship(self, author_id: UUID) -> float:
        if author_id == self._viewer_id:
            return signals.SELF_RELATIONSHIP
        task = self._relationship_tasks.get(author_id)
        if task is None:
            task = asyncio.ensure_future(self._load_relationship(author_id))
            self._relationship_tasks[author_id] = task
        # Shielded so one cancelled waiter does not cancel the shared lookup.
        return await asyncio.shield(task)

    async def engagement(self, candidate: Candidate) -> float:
        try:
            reactions, comments, views = await self._store.count_post_engagement(
                candidate.post_id, self._engagement_since
            )
        except Exception:
            logger.warning(
                "Engagement lookup failed for post %s", candidate.post_id, exc_info=True
            )
            return 0.0
        return signals.score_engagement(
            reactions, comments, views, candidate.created_at, self._now
        )

    def personalization(self, candidate: Candidate) -> float:
        return signals.score_personalization(candidate.text, self._profile)

    def recency(self, candidate: Candidate) -> float:
        return signals.score_recency(
            candidate.created_at, self._now, self._config.recency_half_life_hours
        )

    async def negative_feedback(self, candidate: Candidate) -> float:
        try:
            flagged = await self._store.has_negative_signal(self._viewer_id, candidate.post_id)
            reports = 0 if flagged else await self._store.count_post_reports(candidate.post_id)
        except Exception:
            logger.warning(
                "Negative-feedback lookup failed for post %s", candidate.post_id, exc_info=True
            )
            return 0.0
        return signals.score_negative_feedback(
            flagged, reports, self._config.global_report_threshold
        )

    # ------------------------------------------------------------------
    # All signals for one candidate
    # ------------------------------------------------------------------

    async def score(self, candidate: Candidate) -> SignalScores:
        """Compute the five signals; the three storage-backed ones run concurrently."""
        relationship, engagement, negative = await asyncio.gather(
            self.relationship(candidate.author_id),
            self.engagement(candidate),
            self.negative_feedback(candidate),
        )
        return SignalScores(
            relationship=relationship,
            engagement=engagement,
            personalization=self.personalization(candidate),
            recency=self.recency(candidate),
            negative_feedback=negative,
        )

    def cancel_pending(self) -> None:
        """Cancel shared relationship lookups nobody is waiting on any more."""
        for task in self._relationship_tasks.values():
            if not task.done():
                task.cancel()
