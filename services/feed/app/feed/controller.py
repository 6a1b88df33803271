"""Feed controller: orchestration layer between router and ranking engine."""

import logging
from collections.abc import Sequence
from uuid import UUID

from app.feed.schemas import (
    RankedFeedResponse,
    RankedPostOut,
    SearchResultsResponse,
    SignalBreakdown,
)
from app.ranking.engine import FeedRankingEngine
from app.ranking.store import FeedStore
from app.ranking.types import ANONYMOUS_VIEWER_ID, Candidate, FeedPage, RankedCandidate, Surface

logger = logging.getLogger(__name__)


async def _enrich(
    posts: Sequence[Candidate],
    store: FeedStore,
    ranked: Sequence[RankedCandidate] = (),
    debug: bool = False,
) -> list[RankedPostOut]:
    """Attach reaction/comment counts. A failed lookup leaves the counts at 0."""
    counts: dict[UUID, tuple[int, int]] = {}
    if posts:
        try:
            counts = await store.get_post_counts([p.post_id for p in posts])
        except Exception:
            logger.warning("Count enrichment failed for %d posts", len(posts), exc_info=True)

    by_post = {r.post_id: r for r in ranked} if debug else {}
    items: list[RankedPostOut] = []
    for post in posts:
        reactions, comments = counts.get(post.post_id, (0, 0))
        card = RankedPostOut.model_validate(post).model_copy(
            update={"reaction_count": reactions, "comment_count": comments}
        )
        entry = by_post.get(post.post_id)
        if entry is not None:
            card.score = entry.score
            card.signals = SignalBreakdown.model_validate(entry.signals)
        items.append(card)
    return items


async def _to_response(
    feed: FeedPage, surface: Surface, store: FeedStore, debug: bool
) -> RankedFeedResponse:
    return RankedFeedResponse(
        items=await _enrich(feed.posts, store, feed.ranked, debug),
        page=feed.page,
        limit=feed.limit,
        surface=surface.value,
    )


async def get_home_feed(
    viewer_id: UUID,
    engine: FeedRankingEngine,
    store: FeedStore,
    page: int = 1,
    limit: int = 20,
    debug: bool = False,
) -> RankedFeedResponse:
    feed = await engine.rank_home_feed(viewer_id, page=page, limit=limit)
    return await _to_response(feed, Surface.HOME, store, debug)


async def get_explore_feed(
    viewer_id: UUID | None,
    engine: FeedRankingEngine,
    store: FeedStore,
    page: int = 1,
    limit: int = 20,
    debug: bool = False,
) -> RankedFeedResponse:
    feed = await engine.rank_explore_feed(viewer_id or ANONYMOUS_VIEWER_ID, page=page, limit=limit)
    return await _to_response(feed, Surface.EXPLORE, store, debug)


async def search_posts(
    query: str,
    viewer_id: UUID | None,
    engine: FeedRankingEngine,
    store: FeedStore,
    limit: int = 20,
) -> SearchResultsResponse:
    try:
        matches = await store.search_public_posts(query, engine.config.max_candidates)
    except Exception:
        logger.warning("Post search failed for %r", query, exc_info=True)
        matches = []
    ranked = await engine.rank_search_results(matches, viewer_id, query)
    return SearchResultsResponse(items=await _enrich(ranked[:limit], store), query=query)
