import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, String, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from shared.database.postgres import Base

from .enums import PostVisibility, post_visibility_enum


class Post(Base):
    __tablename__ = "posts"

    post_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Soft reference; the user lives in the identity service
    author_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # "image" / "video"
    media_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    visibility: Mapped[PostVisibility] = mapped_column(
        post_visibility_enum, nullable=False, default=PostVisibility.PUBLIC
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_posts_author_created", "author_id", "created_at"),
        # Explore / cold-start stream: public posts newest first
        Index("ix_posts_visibility_created", "visibility", "created_at"),
    )
