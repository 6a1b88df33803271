"""Value types that flow through the ranking pipeline.

Nothing here is persisted: candidates are snapshots of storage rows taken at
the start of a call, and ranked candidates live only until the page is cut.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from app.models.enums import PostVisibility

# Sentinel identity used by the serving layer for signed-out explore/search calls.
ANONYMOUS_VIEWER_ID = UUID("00000000-0000-0000-0000-000000000000")

InterestProfile = dict[str, float]


def is_anonymous(viewer_id: UUID | None) -> bool:
    return viewer_id is None or viewer_id == ANONYMOUS_VIEWER_ID


class InteractionKind(str, enum.Enum):
    REACTION = "reaction"
    COMMENT = "comment"
    VIEW = "view"


class NegativeKind(str, enum.Enum):
    HIDDEN = "hidden"
    REPORTED = "reported"
    NOT_INTERESTED = "not_interested"


class Surface(str, enum.Enum):
    HOME = "home"
    EXPLORE = "explore"
    SEARCH = "search"


@dataclass(frozen=True, slots=True)
class Candidate:
    """A post under consideration, detached from the ORM session."""

    post_id: UUID
    author_id: UUID
    text: str | None
    visibility: PostVisibility
    created_at: datetime
    media_url: str | None = None
    media_type: str | None = None


@dataclass(frozen=True, slots=True)
class SignalScores:
    relationship: float
    engagement: float
    personalization: float
    recency: float
    negative_feedback: float


@dataclass(slots=True)
class RankedCandidate:
    candidate: Candidate
    signals: SignalScores
    score: float
    text_relevance: float = 0.0

    @property
    def author_id(self) -> UUID:
        return self.candidate.author_id

    @property
    def post_id(self) -> UUID:
        return self.candidate.post_id


@dataclass(slots=True)
class FeedPage:
    """One page of a ranked surface: ``(posts, page, limit)``.

    ``ranked`` carries the score breakdown for the returned posts when the
    surface was scored; it is empty for unscored streams (anonymous explore).
    """

    posts: list[Candidate]
    page: int
    limit: int
    ranked: list[RankedCandidate] = field(default_factory=list)
