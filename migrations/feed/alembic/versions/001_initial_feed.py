"""Feed read schema: posts, follow graph, interactions, negative signals

Revision ID: 001
Revises:
Create Date: 2026-10-18

Tables created:
  - posts                 Short posts with hashtag-bearing text and visibility
  - follows               Directed follow edges (no self edges)
  - reactions             Reactions on posts (comment_id set for comment reactions)
  - comments              Comments on posts
  - views                 Post impressions
  - hidden_posts          Viewer hid a post
  - not_interested_posts  Viewer marked a post not interested
  - reported_posts        Viewer reported a post (also counted globally)

PostgreSQL-native ENUM types created:
  - post_visibility       public / followers / private

Downgrade: drops all tables and the ENUM type in reverse dependency order.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kwargs)


def upgrade() -> None:
    op.execute(
        """
        DO $$ BEGIN
            CREATE TYPE post_visibility AS ENUM ('public', 'followers', 'private');
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
        """
    )
    visibility = postgresql.ENUM(
        "public", "followers", "private", name="post_visibility", create_type=False
    )

    op.create_table(
        "posts",
        _uuid("post_id", primary_key=True),
        _uuid("author_id", nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("media_url", sa.String(1024), nullable=True),
        sa.Column("media_type", sa.String(20), nullable=True),
        sa.Column("visibility", visibility, nullable=False, server_default="public"),
        _ts(),
        _ts("updated_at"),
    )
    op.create_index("ix_posts_author_created", "posts", ["author_id", "created_at"])
    op.create_index("ix_posts_visibility_created", "posts", ["visibility", "created_at"])

    op.create_table(
        "follows",
        _uuid("follow_id", primary_key=True),
        _uuid("follower_id", nullable=False),
        _uuid("following_id", nullable=False),
        _ts(),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        sa.CheckConstraint("follower_id <> following_id", name="ck_follows_no_self"),
    )
    op.create_index("ix_follows_follower_id", "follows", ["follower_id"])
    op.create_index("ix_follows_following_id", "follows", ["following_id"])

    op.create_table(
        "comments",
        _uuid("comment_id", primary_key=True),
        _uuid("post_id", sa.ForeignKey("posts.post_id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        _ts(),
    )
    op.create_index("ix_comments_user_created", "comments", ["user_id", "created_at"])
    op.create_index("ix_comments_post_created", "comments", ["post_id", "created_at"])

    op.create_table(
        "reactions",
        _uuid("reaction_id", primary_key=True),
        _uuid("user_id", nullable=False),
        _uuid("post_id", sa.ForeignKey("posts.post_id", ondelete="CASCADE"), nullable=False),
        _uuid(
            "comment_id",
            sa.ForeignKey("comments.comment_id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("kind", sa.String(20), nullable=False, server_default="like"),
        _ts(),
    )
    op.create_index("ix_reactions_user_created", "reactions", ["user_id", "created_at"])
    op.create_index("ix_reactions_post_created", "reactions", ["post_id", "created_at"])

    op.create_table(
        "views",
        _uuid("view_id", primary_key=True),
        _uuid("user_id", nullable=False),
        _uuid("post_id", sa.ForeignKey("posts.post_id", ondelete="CASCADE"), nullable=False),
        _ts(),
    )
    op.create_index("ix_views_user_created", "views", ["user_id", "created_at"])
    op.create_index("ix_views_post_created", "views", ["post_id", "created_at"])

    for table in ("hidden_posts", "not_interested_posts"):
        op.create_table(
            table,
            _uuid("user_id", primary_key=True),
            _uuid(
                "post_id",
                sa.ForeignKey("posts.post_id", ondelete="CASCADE"),
                primary_key=True,
            ),
            _ts(),
        )

    op.create_table(
        "reported_posts",
        _uuid("report_id", primary_key=True),
        _uuid("user_id", nullable=False),
        _uuid("post_id", sa.ForeignKey("posts.post_id", ondelete="CASCADE"), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        _ts(),
    )
    op.create_index("ix_reported_posts_post_id", "reported_posts", ["post_id"])
    op.create_index("ix_reported_posts_user_post", "reported_posts", ["user_id", "post_id"])


def downgrade() -> None:
    op.drop_table("reported_posts")
    op.drop_table("not_interested_posts")
    op.drop_table("hidden_posts")
    op.drop_table("views")
    op.drop_table("reactions")
    op.drop_table("comments")
    op.drop_table("follows")
    op.drop_table("posts")
    op.execute("DROP TYPE IF EXISTS post_visibility")
