from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_user, get_engine, get_feed_store, get_optional_user
from app.feed import controller
from app.feed.schemas import RankedFeedResponse, SearchResultsResponse
from app.ranking.engine import FeedRankingEngine
from app.ranking.store import FeedStore

router = APIRouter(prefix="/feed", tags=["Feed"])


@router.get(
    "/home",
    response_model=RankedFeedResponse,
    summary="Ranked home feed",
    description=(
        "Posts from the viewer, accounts they follow and accounts following them, "
        "ranked by relationship (50%), engagement velocity (20%), hashtag interest (15%) "
        "and recency (10%). Hidden, reported and not-interested posts are removed. "
        "Viewers with no connections receive the public stream. Requires authentication."
    ),
)
async def get_home_feed(
    page: int = Query(1, ge=1, description="1-indexed page."),
    limit: int = Query(20, ge=1, le=100, description="Page size."),
    debug: bool = Query(False, description="Include score and signal breakdown per post."),
    viewer_id: UUID = Depends(get_current_user),
    engine: FeedRankingEngine = Depends(get_engine),
    store: FeedStore = Depends(get_feed_store),
) -> RankedFeedResponse:
    return await controller.get_home_feed(
        viewer_id, engine, store, page=page, limit=limit, debug=debug
    )


@router.get(
    "/explore",
    response_model=RankedFeedResponse,
    summary="Ranked explore feed",
    description=(
        "Recent public posts from accounts the viewer does not follow, ranked by "
        "engagement (35%), interest (25%), recency (25%) and relationship (10%). "
        "Signed-out callers receive the newest public posts unranked."
    ),
)
async def get_explore_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    debug: bool = Query(False),
    viewer_id: UUID | None = Depends(get_optional_user),
    engine: FeedRankingEngine = Depends(get_engine),
    store: FeedStore = Depends(get_feed_store),
) -> RankedFeedResponse:
    return await controller.get_explore_feed(
        viewer_id, engine, store, page=page, limit=limit, debug=debug
    )


@router.get(
    "/search",
    response_model=SearchResultsResponse,
    summary="Search posts",
    description=(
        "Case-insensitive text search over public posts (prefix the query with # for "
        "hashtags). Signed-in results are re-ranked by 60% text relevance and 40% "
        "social score; signed-out results are newest first."
    ),
)
async def search_posts(
    q: str = Query(..., min_length=1, max_length=100, description="Search text."),
    limit: int = Query(20, ge=1, le=100),
    viewer_id: UUID | None = Depends(get_optional_user),
    engine: FeedRankingEngine = Depends(get_engine),
    store: FeedStore = Depends(get_feed_store),
) -> SearchResultsResponse:
    return await controller.search_posts(q, viewer_id, engine, store, limit=limit)
