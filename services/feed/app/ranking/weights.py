"""Ranking weight profiles and algorithm parameters.

Three surfaces are tuned independently:

  home     relationship-first (friends and mutuals before anything else)
  explore  engagement/recency-first with a low relationship weight (discovery)
  search   balanced; the social score is later blended with text relevance

The negative-feedback weight is negative by convention. It multiplies the
negative signal floored at zero, so it never boosts a post; suppression of
flagged posts is a separate filter (see ``aggregator.is_suppressed``).

Every instance is frozen. Profiles and the config are built once at process
start and passed into the engine.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.ranking.types import Surface


@dataclass(frozen=True)
class RankingWeights:
    name: str
    version: int
    relationship: float
    engagement: float
    personalization: float
    recency: float
    negative_feedback: float
    # Carried with the profile for tuning; the diversity pass uses
    # RankingConfig.diversity_multiplier.
    author_diversity_penalty: float = 0.05


HOME_FEED_WEIGHTS = RankingWeights(
    name="home",
    version=1,
    relationship=0.5,
    engagement=0.2,
    personalization=0.15,
    recency=0.1,
    negative_feedback=-1.0,
    author_diversity_penalty=0.05,
)

EXPLORE_WEIGHTS = RankingWeights(
    name="explore",
    version=1,
    relationship=0.1,
    engagement=0.35,
    personalization=0.25,
    recency=0.25,
    negative_feedback=-1.0,
    author_diversity_penalty=0.05,
)

SEARCH_WEIGHTS = RankingWeights(
    name="search",
    version=1,
    relationship=0.2,
    engagement=0.25,
    personalization=0.2,
    recency=0.15,
    negative_feedback=-1.0,
    author_diversity_penalty=0.05,
)


@dataclass(frozen=True)
class WeightProfiles:
    home: RankingWeights = HOME_FEED_WEIGHTS
    explore: RankingWeights = EXPLORE_WEIGHTS
    search: RankingWeights = SEARCH_WEIGHTS

    def for_surface(self, surface: Surface) -> RankingWeights:
        return getattr(self, surface.value)


DEFAULT_WEIGHT_PROFILES = WeightProfiles()


@dataclass(frozen=True)
class RankingConfig:
    # Candidate pool cap, and the home pool size below which it widens to public posts
    max_candidates: int = 400
    min_candidates: int = 50
    # Lookback windows
    engagement_window_days: int = 7
    relationship_window_days: int = 30
    interest_window_days: int = 30
    # Diversity: this many consecutive posts by one author before the penalty
    max_consecutive_same_author: int = 3
    diversity_multiplier: float = 0.9
    recency_half_life_hours: float = 24.0
    # Home feed author set is capped to keep the IN (...) list cheap
    home_author_cap: int = 100
    # Explore widens (drops the follow exclusion) below this many candidates
    explore_fallback_threshold: int = 5
    # Posts with at least this many reports from anyone are down-ranked for all
    global_report_threshold: int = 5
    search_text_weight: float = 0.6
    search_social_weight: float = 0.4
    # Fan-out bound: candidates scored concurrently within one call
    signal_concurrency: int = 32
    query_timeout_s: float = 15.0
    fallback_timeout_s: float = 10.0


DEFAULT_RANKING_CONFIG = RankingConfig()
