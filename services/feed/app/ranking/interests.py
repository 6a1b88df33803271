"""Per-viewer interest profile: hashtag -> accumulated affinity.

Built from the viewer's own interactions inside the lookback window:

  reacted to  +2.0 per tag occurrence
  commented   +3.0
  viewed      +0.5

Texts are de-duplicated per interaction kind, so reacting twice to one post
counts once, while reacting to and commenting on the same post counts for
both. No normalisation happens here; personalization scoring divides by 10.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from app.ranking.signals import extract_hashtags
from app.ranking.store import FeedStore
from app.ranking.types import InteractionKind, InterestProfile

logger = logging.getLogger(__name__)

INTEREST_POINTS: dict[InteractionKind, float] = {
    InteractionKind.REACTION: 2.0,
    InteractionKind.COMMENT: 3.0,
    InteractionKind.VIEW: 0.5,
}


def accumulate_interests(
    texts_by_kind: dict[InteractionKind, list[str]],
) -> InterestProfile:
    profile: InterestProfile = {}
    for kind, texts in texts_by_kind.items():
        points = INTEREST_POINTS[kind]
        for text in texts:
            for tag in extract_hashtags(text):
                profile[tag] = profile.get(tag, 0.0) + points
    return profile


async def build_interest_profile(
    store: FeedStore,
    viewer_id: UUID,
    *,
    window_days: int = 30,
    now: datetime | None = None,
    timeout_s: float | None = None,
) -> InterestProfile:
    """Return the viewer's interest profile, or ``{}`` if storage fails.

    The three interaction reads run concurrently; ``timeout_s`` bounds all of
    them together.
    """
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=window_days)
    kinds = list(INTEREST_POINTS)
    reads = asyncio.gather(
        *(store.get_interaction_texts(viewer_id, kind, since) for kind in kinds)
    )
    try:
        results = await asyncio.wait_for(reads, timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning(
            "Interest profile reads for viewer %s timed out after %.1fs; using empty profile",
            viewer_id,
            timeout_s,
        )
        return {}
    except Exception:
        logger.warning(
            "Interest profile read failed for viewer %s; using empty profile",
            viewer_id,
            exc_info=True,
        )
        return {}
    return accumulate_interests(dict(zip(kinds, results)))
