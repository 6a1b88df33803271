"""Feed domain Pydantic V2 schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import PostVisibility


class SignalBreakdown(BaseModel):
    """Raw ranking signals for one post (returned only with ``debug=true``)."""

    model_config = ConfigDict(from_attributes=True)

    relationship: float
    engagement: float
    personalization: float
    recency: float
    negative_feedback: float


class RankedPostOut(BaseModel):
    """Post card for ranked feed listings."""

    model_config = ConfigDict(from_attributes=True)

    post_id: UUID
    author_id: UUID = Field(description="User ID of the author (identity service reference).")
    text: str | None
    media_url: str | None = None
    media_type: str | None = None
    visibility: PostVisibility
    created_at: datetime
    reaction_count: int = 0
    comment_count: int = 0
    score: float | None = Field(
        default=None, description="Final ranking score after the diversity pass (debug only)."
    )
    signals: SignalBreakdown | None = None


class RankedFeedResponse(BaseModel):
    """Page-based ranked feed response; every request recomputes the ranking."""

    items: list[RankedPostOut]
    page: int = Field(description="Requested page (1-indexed).")
    limit: int = Field(description="Requested page size.")
    surface: str = Field(description="home or explore.")


class SearchResultsResponse(BaseModel):
    """Search results blended from text relevance (60%) and social score (40%)."""

    items: list[RankedPostOut]
    query: str
