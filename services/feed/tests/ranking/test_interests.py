import time
from uuid import uuid4

import pytest

from app.ranking.interests import accumulate_interests, build_interest_profile
from app.ranking.types import InteractionKind


def test_accumulate_interests_weights_per_kind() -> None:
    profile = accumulate_interests(
        {
            InteractionKind.REACTION: ["#go is fun"],
            InteractionKind.COMMENT: ["more #go and #rust"],
            InteractionKind.VIEW: ["#rust #rust"],
        }
    )
    assert profile == {"#go": 5.0, "#rust": 4.0}


def test_accumulate_interests_empty() -> None:
    assert accumulate_interests({}) == {}
    assert accumulate_interests({InteractionKind.REACTION: ["no tags"]}) == {}


@pytest.mark.asyncio
async def test_build_interest_profile_from_interactions(store, viewer, now) -> None:
    author = uuid4()
    go_post = store.add_post(author, text="#GoStack release")
    rust_post = store.add_post(author, text="#rust tips")

    store.react(viewer, go_post)
    store.comment(viewer, go_post)
    store.view(viewer, rust_post)

    profile = await build_interest_profile(store, viewer, now=now)

    assert profile == {"#gostack": 5.0, "#rust": 0.5}


@pytest.mark.asyncio
async def test_build_interest_profile_dedupes_repeat_interactions(store, viewer, now) -> None:
    author = uuid4()
    post = store.add_post(author, text="#go")
    store.react(viewer, post)
    store.react(viewer, post, hours_ago=2)

    profile = await build_interest_profile(store, viewer, now=now)

    assert profile == {"#go": 2.0}


@pytest.mark.asyncio
async def test_build_interest_profile_ignores_interactions_outside_window(store, viewer, now) -> None:
    author = uuid4()
    post = store.add_post(author, text="#old", hours_ago=24 * 60)
    store.comment(viewer, post, hours_ago=24 * 45)

    assert await build_interest_profile(store, viewer, window_days=30, now=now) == {}


@pytest.mark.asyncio
async def test_build_interest_profile_fails_open(store, viewer, now) -> None:
    store.fail.add("get_interaction_texts")

    assert await build_interest_profile(store, viewer, now=now) == {}


@pytest.mark.asyncio
async def test_build_interest_profile_reads_kinds_concurrently(store, viewer, now) -> None:
    post = store.add_post(uuid4(), text="#go")
    store.react(viewer, post)
    store.delay["get_interaction_texts"] = 0.4

    started = time.perf_counter()
    profile = await build_interest_profile(store, viewer, now=now)

    # Three sequential reads would take 1.2s.
    assert time.perf_counter() - started < 1.0
    assert profile == {"#go": 2.0}


@pytest.mark.asyncio
async def test_build_interest_profile_timeout_gives_empty_profile(store, viewer, now) -> None:
    store.react(viewer, store.add_post(uuid4(), text="#go"))
    store.delay["get_interaction_texts"] = 2.0

    started = time.perf_counter()
    profile = await build_interest_profile(store, viewer, now=now, timeout_s=0.1)

    assert time.perf_counter() - started < 1.0
    assert profile == {}
