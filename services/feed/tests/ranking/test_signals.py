import math
from datetime import datetime, timedelta, timezone

import pytest

from app.ranking.signals import (
    extract_hashtags,
    hours_since,
    score_engagement,
    score_negative_feedback,
    score_personalization,
    score_recency,
    score_relationship,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Hashtags
# ---------------------------------------------------------------------------


def test_extract_hashtags_lowercases_and_keeps_duplicates() -> None:
    assert extract_hashtags("Loving #Go and #go, also #rust_lang!") == ["#go", "#go", "#rust_lang"]


def test_extract_hashtags_empty_text() -> None:
    assert extract_hashtags(None) == []
    assert extract_hashtags("") == []
    assert extract_hashtags("no tags here") == []


def test_hours_since_treats_naive_as_utc_and_clamps_future() -> None:
    naive = datetime(2026, 10, 18, 10, 0)
    assert hours_since(naive, NOW) == pytest.approx(2.0)
    assert hours_since(NOW + timedelta(hours=3), NOW) == 0.0


# ---------------------------------------------------------------------------
# Relationship
# ---------------------------------------------------------------------------


def test_relationship_self_is_exactly_one() -> None:
    assert score_relationship(is_self=True, is_following=False, is_followed_by=False) == 1.0
    # Interactions never move the self score.
    assert score_relationship(
        is_self=True, is_following=True, is_followed_by=True, reactions=50, comments=50
    ) == 1.0


def test_relationship_tiers() -> None:
    assert score_relationship(is_self=False, is_following=True, is_followed_by=True) == pytest.approx(0.9)
    assert score_relationship(is_self=False, is_following=True, is_followed_by=False) == pytest.approx(0.7)
    assert score_relationship(is_self=False, is_following=False, is_followed_by=False) == pytest.approx(0.1)


def test_relationship_followed_by_only_counts_as_no_relation() -> None:
    assert score_relationship(is_self=False, is_following=False, is_followed_by=True) == pytest.approx(0.1)


def test_relationship_interaction_boost_and_caps() -> None:
    # 3 reactions and 2 comments: 0.06 + 0.10
    assert score_relationship(
        is_self=False, is_following=True, is_followed_by=False, reactions=3, comments=2
    ) == pytest.approx(0.86)
    # Boost capped at 0.25, total capped at 0.95.
    assert score_relationship(
        is_self=False, is_following=False, is_followed_by=False, comments=100
    ) == pytest.approx(0.35)
    assert score_relationship(
        is_self=False, is_following=True, is_followed_by=True, comments=100
    ) == pytest.approx(0.95)


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------


def test_engagement_zero_without_activity() -> None:
    assert score_engagement(0, 0, 0, NOW - timedelta(hours=2), NOW) == 0.0


def test_engagement_young_post_uses_one_day_floor() -> None:
    # 2 reactions + 1 comment = 7 points over one day, scaled by 1/10.
    assert score_engagement(2, 1, 0, NOW - timedelta(hours=1), NOW) == pytest.approx(0.7)


def test_engagement_fresh_post_beats_stale_post_with_more_activity() -> None:
    fresh = score_engagement(3, 0, 0, NOW - timedelta(hours=6), NOW)
    stale = score_engagement(6, 0, 0, NOW - timedelta(days=5), NOW)
    assert fresh > stale


def test_engagement_clamped_to_one() -> None:
    assert score_engagement(1000, 1000, 1000, NOW, NOW) == 1.0


# ---------------------------------------------------------------------------
# Personalization
# ---------------------------------------------------------------------------


def test_personalization_matched_hashtag_scaled_by_ten() -> None:
    assert score_personalization("Shipping it #gostack", {"#gostack": 6.0}) == pytest.approx(0.6)


def test_personalization_averages_matched_tags_only() -> None:
    profile = {"#go": 4.0, "#rust": 8.0}
    assert score_personalization("#go #rust #python", profile) == pytest.approx(0.6)


def test_personalization_untagged_and_unmatched_defaults() -> None:
    assert score_personalization("plain words", {"#go": 4.0}) == pytest.approx(0.3)
    assert score_personalization("#elixir", {"#go": 4.0}) == pytest.approx(0.2)
    assert score_personalization("#elixir", {}) == pytest.approx(0.2)


def test_personalization_clamped_to_one() -> None:
    assert score_personalization("#go", {"#go": 42.0}) == 1.0


# ---------------------------------------------------------------------------
# Recency
# ---------------------------------------------------------------------------


def test_recency_brand_new_post_is_one() -> None:
    assert score_recency(NOW, NOW) == pytest.approx(1.0)


def test_recency_one_half_life_is_e_inverse() -> None:
    assert score_recency(NOW - timedelta(hours=24), NOW) == pytest.approx(math.exp(-1))


def test_recency_strictly_decreasing_with_age() -> None:
    ages = [0, 1, 6, 24, 72, 240]
    scores = [score_recency(NOW - timedelta(hours=h), NOW) for h in ages]
    assert all(a > b for a, b in zip(scores, scores[1:]))


# ---------------------------------------------------------------------------
# Negative feedback
# ---------------------------------------------------------------------------


def test_negative_feedback_levels() -> None:
    assert score_negative_feedback(True, 0) == -1.0
    assert score_negative_feedback(True, 99) == -1.0
    assert score_negative_feedback(False, 5) == -0.5
    assert score_negative_feedback(False, 4) == 0.0
    assert score_negative_feedback(False, 2, report_threshold=2) == -0.5
