"""Pure ranking signal functions: no I/O, no framework imports.

Signals (all in [0.0, 1.0] except negative feedback, which is in [-1.0, 0.0]):
  relationship     follow graph proximity + recent interaction boost
  engagement       weighted reactions/comments/views divided by post age (velocity)
  personalization  average affinity of the post's hashtags in the viewer's profile
  recency          exp(-hours / half_life)
  negative         -1.0 viewer flagged the post, -0.5 globally over-reported, else 0.0

Callers pass ``now`` explicitly so one ranking call scores every candidate
against the same instant.
"""

import math
import re
from collections.abc import Mapping
from datetime import datetime, timezone

_HASHTAG_RE = re.compile(r"#(\w+)")

# Relationship tiers
SELF_RELATIONSHIP = 1.0
MUTUAL_FOLLOW = 0.9
FOLLOWING = 0.7
NO_RELATION = 0.1
RELATIONSHIP_CEILING = 0.95
INTERACTION_BOOST_CAP = 0.25
REACTION_BOOST = 0.02
COMMENT_BOOST = 0.05

# Engagement event weights
ENGAGEMENT_POINTS: dict[str, float] = {
    "reaction": 2.0,
    "comment": 3.0,
    "view": 0.1,
}
ENGAGEMENT_CEILING = 10.0

# Personalization defaults
UNTAGGED_PERSONALIZATION = 0.3
UNMATCHED_PERSONALIZATION = 0.2
INTEREST_CEILING = 10.0

HIDDEN_OR_FLAGGED = -1.0
GLOBALLY_REPORTED = -0.5


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def hours_since(created_at: datetime, now: datetime) -> float:
    """Age in hours; naive timestamps are treated as UTC and future ones as age 0."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0.0, (now - created_at).total_seconds() / 3600.0)


def extract_hashtags(text: str | None) -> list[str]:
    """Return ``#tag`` occurrences in order, lower-cased. Duplicates are kept."""
    if not text:
        return []
    return [f"#{m.lower()}" for m in _HASHTAG_RE.findall(text)]


def score_relationship(
    *,
    is_self: bool,
    is_following: bool,
    is_followed_by: bool,
    reactions: int = 0,
    comments: int = 0,
) -> float:
    """Graph proximity of the author to the viewer.

    Own posts are exactly 1.0. Otherwise the tier (mutual 0.9, following 0.7,
    none 0.1) plus ``min(0.02·reactions + 0.05·comments, 0.25)``, capped at 0.95.
    Being followed by the author without following back counts as no relation.
    """
    if is_self:
        return SELF_RELATIONSHIP
    if is_following and is_followed_by:
        base = MUTUAL_FOLLOW
    elif is_following:
        base = FOLLOWING
    else:
        base = NO_RELATION
    boost = min(
        REACTION_BOOST * max(reactions, 0) + COMMENT_BOOST * max(comments, 0),
        INTERACTION_BOOST_CAP,
    )
    return min(base + boost, RELATIONSHIP_CEILING)


def score_engagement(
    reactions: int,
    comments: int,
    views: int,
    created_at: datetime,
    now: datetime,
) -> float:
    """Engagement velocity.

    A post's weighted engagement is divided by its age in days (floored at one
    day) so that a fresh post with modest activity beats an old post with a
    large but stale total.
    """
    weighted = (
        ENGAGEMENT_POINTS["reaction"] * reactions
        + ENGAGEMENT_POINTS["comment"] * comments
        + ENGAGEMENT_POINTS["view"] * views
    )
    age_normalisation = max(1.0, hours_since(created_at, now) / 24.0)
    return _clamp(weighted / (age_normalisation * ENGAGEMENT_CEILING))


def score_personalization(text: str | None, profile: Mapping[str, float]) -> float:
    """Average profile weight of the post's matched hashtags, scaled by 1/10.

    Untagged posts get a mild 0.3 so they are not starved; tagged posts with
    no overlap get 0.2.
    """
    tags = extract_hashtags(text)
    if not tags:
        return UNTAGGED_PERSONALIZATION

    matched = [profile[tag] for tag in tags if profile.get(tag)]
    if not matched:
        return UNMATCHED_PERSONALIZATION

    return _clamp(sum(matched) / len(matched) / INTEREST_CEILING)


def score_recency(
    created_at: datetime,
    now: datetime,
    half_life_hours: float = 24.0,
) -> float:
    """Exponential decay: 1.0 for a brand-new post, e^-1 at one half-life."""
    return _clamp(math.exp(-hours_since(created_at, now) / half_life_hours))


def score_negative_feedback(
    viewer_flagged: bool,
    global_reports: int,
    report_threshold: int = 5,
) -> float:
    """-1.0 when the viewer hid/reported/muted the post, -0.5 when reported by many."""
    if viewer_flagged:
        return HIDDEN_OR_FLAGGED
    if global_reports >= report_threshold:
        return GLOBALLY_REPORTED
    return 0.0
