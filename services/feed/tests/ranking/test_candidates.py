import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from app.models.enums import PostVisibility
from app.ranking.candidates import (
    FALLBACK,
    PRIMARY,
    ExploreCandidates,
    HomeFeedCandidates,
    TwoStageStrategy,
)
from app.ranking.types import ANONYMOUS_VIEWER_ID


def _ids(posts) -> set:
    return {p.post_id for p in posts}


# ---------------------------------------------------------------------------
# TwoStageStrategy
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_strategy_keeps_primary_when_large_enough(store) -> None:
    posts = [store.add_post(uuid4()) for _ in range(3)]

    async def primary():
        return posts

    async def fallback():
        raise AssertionError("fallback must not run")

    pool = await TwoStageStrategy("t", primary, fallback, widen_below=3).generate()

    assert pool.stage == PRIMARY
    assert pool.candidates == posts


@pytest.mark.asyncio
async def test_strategy_widens_below_threshold(store) -> None:
    wide = store.add_post(uuid4())

    async def primary():
        return []

    async def fallback():
        return [wide]

    pool = await TwoStageStrategy("t", primary, fallback, widen_below=1).generate()

    assert pool.stage == FALLBACK
    assert pool.candidates == [wide]


@pytest.mark.asyncio
async def test_strategy_widening_appends_new_fallback_posts(store) -> None:
    narrow = [store.add_post(uuid4()) for _ in range(2)]
    extra = [store.add_post(uuid4()) for _ in range(3)]

    async def primary():
        return narrow

    async def fallback():
        return [extra[0], narrow[1], extra[1], narrow[0], extra[2]]

    pool = await TwoStageStrategy("t", primary, fallback, widen_below=5, max_size=4).generate()

    assert pool.stage == FALLBACK
    assert pool.candidates == [*narrow, extra[0], extra[1]]


@pytest.mark.asyncio
async def test_strategy_skipped_primary_goes_to_fallback(store) -> None:
    wide = store.add_post(uuid4())

    async def primary():
        return None

    async def fallback():
        return [wide]

    pool = await TwoStageStrategy("t", primary, fallback, widen_below=0).generate()

    assert pool.stage == FALLBACK
    assert pool.candidates == [wide]


@pytest.mark.asyncio
async def test_strategy_primary_timeout_falls_back(store) -> None:
    slow, wide = store.add_post(uuid4()), store.add_post(uuid4())

    async def primary():
        await asyncio.sleep(5)
        return [slow]

    async def fallback():
        return [wide]

    strategy = TwoStageStrategy("t", primary, fallback, primary_timeout_s=0.05)
    pool = await strategy.generate()

    assert pool.stage == FALLBACK
    assert pool.candidates == [wide]


@pytest.mark.asyncio
async def test_strategy_both_stages_failing_yields_empty_pool() -> None:
    async def boom():
        raise RuntimeError("db down")

    pool = await TwoStageStrategy("t", boom, boom).generate()

    assert pool.candidates == []
    assert pool.stage == FALLBACK


@pytest.mark.asyncio
async def test_strategy_without_fallback_returns_short_primary(store) -> None:
    one = store.add_post(uuid4())

    async def primary():
        return [one]

    pool = await TwoStageStrategy("t", primary, widen_below=5).generate()

    assert pool.stage == PRIMARY
    assert pool.candidates == [one]


# ---------------------------------------------------------------------------
# Home
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_home_author_ids_order_and_dedup(store, viewer, config) -> None:
    a, b = uuid4(), uuid4()
    store.follow(viewer, a)
    store.follow(a, viewer)
    store.follow(b, viewer)

    authors = await HomeFeedCandidates(store, config).author_ids(viewer)

    assert authors[0] == viewer
    assert set(authors) == {viewer, a, b}
    assert len(authors) == 3


@pytest.mark.asyncio
async def test_home_author_ids_capped_with_followees_first(store, viewer, config) -> None:
    followees = sorted(uuid4() for _ in range(80))
    followers = sorted(uuid4() for _ in range(40))
    for author in followees:
        store.follow(viewer, author)
    for author in followers:
        store.follow(author, viewer)

    authors = await HomeFeedCandidates(store, config).author_ids(viewer)

    assert len(authors) == config.home_author_cap == 100
    assert authors[0] == viewer
    assert authors[1:81] == followees
    assert authors[81:] == followers[:19]


@pytest.mark.asyncio
async def test_home_uses_graph_posts(store, viewer, config) -> None:
    followee, follower, stranger = uuid4(), uuid4(), uuid4()
    store.follow(viewer, followee)
    store.follow(follower, viewer)
    own = store.add_post(viewer, visibility=PostVisibility.PRIVATE)
    from_followee = store.add_post(followee, visibility=PostVisibility.FOLLOWERS)
    from_follower = store.add_post(follower)
    store.add_post(stranger)
    store.add_post(followee, visibility=PostVisibility.PRIVATE)

    pool = await HomeFeedCandidates(store, replace(config, min_candidates=3)).generate(viewer)

    assert pool.stage == PRIMARY
    assert _ids(pool.candidates) == {own.post_id, from_followee.post_id, from_follower.post_id}


@pytest.mark.asyncio
async def test_home_thin_graph_is_topped_up_with_public_posts(store, viewer, config) -> None:
    followee = uuid4()
    store.follow(viewer, followee)
    graph_post = store.add_post(followee, visibility=PostVisibility.FOLLOWERS, hours_ago=30)
    public = [store.add_post(uuid4(), hours_ago=h + 1) for h in range(100)]

    pool = await HomeFeedCandidates(store, config).generate(viewer)

    assert pool.stage == FALLBACK
    assert pool.candidates[0] == graph_post
    assert pool.candidates[1:] == public
    assert len(pool.candidates) == 101


@pytest.mark.asyncio
async def test_home_zero_connections_falls_back_to_public_stream(store, viewer, config) -> None:
    public = [store.add_post(uuid4(), hours_ago=h) for h in (1, 2, 3)]
    store.add_post(uuid4(), visibility=PostVisibility.FOLLOWERS)

    pool = await HomeFeedCandidates(store, config).generate(viewer)

    assert pool.stage == FALLBACK
    assert pool.candidates == public
    assert "get_posts_by_authors" not in store.calls


@pytest.mark.asyncio
async def test_home_graph_without_posts_falls_back(store, viewer, config) -> None:
    store.follow(viewer, uuid4())
    public = store.add_post(uuid4())

    pool = await HomeFeedCandidates(store, config).generate(viewer)

    assert pool.stage == FALLBACK
    assert pool.candidates == [public]


@pytest.mark.asyncio
async def test_home_graph_failure_falls_back(store, viewer, config) -> None:
    store.follow(viewer, uuid4())
    public = store.add_post(uuid4())
    store.fail.add("get_followee_ids")

    pool = await HomeFeedCandidates(store, config).generate(viewer)

    assert pool.stage == FALLBACK
    assert pool.candidates == [public]


@pytest.mark.asyncio
async def test_home_pool_is_newest_first_and_capped(store, viewer, config) -> None:
    followee = uuid4()
    store.follow(viewer, followee)
    for h in range(config.max_candidates + 10):
        store.add_post(followee, hours_ago=h + 1)

    pool = await HomeFeedCandidates(store, config).generate(viewer)

    assert len(pool.candidates) == config.max_candidates
    created = [p.created_at for p in pool.candidates]
    assert created == sorted(created, reverse=True)


# ---------------------------------------------------------------------------
# Explore
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_explore_excludes_viewer_and_followees(store, viewer, config) -> None:
    followee = uuid4()
    store.follow(viewer, followee)
    store.add_post(viewer)
    store.add_post(followee)
    strangers = [store.add_post(uuid4()) for _ in range(config.explore_fallback_threshold)]

    pool = await ExploreCandidates(store, config).generate(viewer)

    assert pool.stage == PRIMARY
    assert _ids(pool.candidates) == _ids(strangers)


@pytest.mark.asyncio
async def test_explore_widens_below_threshold_but_keeps_own_posts_out(store, viewer, config) -> None:
    followee = uuid4()
    store.follow(viewer, followee)
    store.add_post(viewer)
    followed = store.add_post(followee)
    strangers = [store.add_post(uuid4()) for _ in range(config.explore_fallback_threshold - 1)]

    pool = await ExploreCandidates(store, config).generate(viewer)

    assert pool.stage == FALLBACK
    assert _ids(pool.candidates) == _ids(strangers) | {followed.post_id}


@pytest.mark.asyncio
async def test_explore_anonymous_reads_public_stream(store, config) -> None:
    posts = [store.add_post(uuid4(), hours_ago=h) for h in (1, 2)]
    store.add_post(uuid4(), visibility=PostVisibility.PRIVATE)

    for anonymous in (None, ANONYMOUS_VIEWER_ID):
        pool = await ExploreCandidates(store, config).generate(anonymous)
        assert pool.stage == PRIMARY
        assert pool.candidates == posts
    assert "get_followee_ids" not in store.calls
