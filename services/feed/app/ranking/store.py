"""Read-side storage contract for the ranking engine.

The engine owns no schema and never writes. ``FeedStore`` lists every read it
issues; ``SqlFeedStore`` answers them from PostgreSQL with SQLAlchemy 2.0 async queries.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import and_, distinct, exists, func, or_, select
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import Executable

from app.models.enums import PostVisibility
from app.models.interaction import Comment, PostView, Reaction
from app.models.moderation import HiddenPost, NotInterestedPost, ReportedPost
from app.models.post import Post
from app.models.social import Follow
from app.ranking.types import Candidate, InteractionKind


class FeedStore(Protocol):
    async def get_followee_ids(self, user_id: UUID) -> list[UUID]: ...

    async def get_follower_ids(self, user_id: UUID) -> list[UUID]: ...

    async def get_follow_state(self, viewer_id: UUID, author_id: UUID) -> tuple[bool, bool]:
        """Return ``(viewer follows author, author follows viewer)``."""
        ...

    async def get_posts_by_authors(
        self, author_ids: Sequence[UUID], viewer_id: UUID, limit: int
    ) -> list[Candidate]: ...

    async def get_public_posts(
        self, limit: int, exclude_author_ids: Iterable[UUID] = ()
    ) -> list[Candidate]: ...

    async def count_viewer_interactions_with_author(
        self, viewer_id: UUID, author_id: UUID, since: datetime
    ) -> tuple[int, int]:
        """Return ``(reactions, comments)`` by the viewer on the author's posts."""
        ...

    async def count_post_engagement(
        self, post_id: UUID, since: datetime
    ) -> tuple[int, int, int]:
        """Return ``(reactions, comments, views)`` on the post since ``since``."""
        ...

    async def get_interaction_texts(
        self, user_id: UUID, kind: InteractionKind, since: datetime
    ) -> list[str]: ...

    async def has_negative_signal(self, user_id: UUID, post_id: UUID) -> bool: ...

    async def count_post_reports(self, post_id: UUID) -> int: ...

    async def search_public_posts(self, query: str, limit: int) -> list[Candidate]: ...

    async def get_post_counts(
        self, post_ids: Sequence[UUID]
    ) -> dict[UUID, tuple[int, int]]:
        """Return ``{post_id: (reaction_count, comment_count)}``."""
        ...


def to_candidate(post: Post) -> Candidate:
    return Candidate(
        post_id=post.post_id,
        author_id=post.author_id,
        text=post.text,
        visibility=post.visibility,
        created_at=post.created_at,
        media_url=post.media_url,
        media_type=post.media_type,
    )


class SqlFeedStore:
    """``FeedStore`` backed by the content tables.

    Each read opens its own short-lived session: an AsyncSession must not be
    shared by the concurrent signal lookups of one ranking call.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _scalars(self, statement: Executable) -> list:
        async with self._session_factory() as db:
            return list((await db.execute(statement)).scalars().all())

    async def _scalar_one(self, statement: Executable):
        async with self._session_factory() as db:
            return (await db.execute(statement)).scalar_one()

    async def _one(self, statement: Executable) -> Row:
        async with self._session_factory() as db:
            return (await db.execute(statement)).one()

    async def _all(self, statement: Executable) -> list[Row]:
        async with self._session_factory() as db:
            return list((await db.execute(statement)).all())

    async def _candidates(self, statement: Executable) -> list[Candidate]:
        async with self._session_factory() as db:
            return [to_candidate(p) for p in (await db.execute(statement)).scalars().all()]

    # ------------------------------------------------------------------
    # Follow graph
    # ------------------------------------------------------------------

    async def get_followee_ids(self, user_id: UUID) -> list[UUID]:
        q = select(Follow.following_id).where(Follow.follower_id == user_id)
        return await self._scalars(q)

    async def get_follower_ids(self, user_id: UUID) -> list[UUID]:
        q = select(Follow.follower_id).where(Follow.following_id == user_id)
        return await self._scalars(q)

    async def get_follow_state(self, viewer_id: UUID, author_id: UUID) -> tuple[bool, bool]:
        following = exists().where(
            Follow.follower_id == viewer_id, Follow.following_id == author_id
        )
        followed_by = exists().where(
            Follow.follower_id == author_id, Follow.following_id == viewer_id
        )
        row = await self._one(
            select(following.label("is_following"), followed_by.label("is_followed_by"))
        )
        return bool(row.is_following), bool(row.is_followed_by)

    # ------------------------------------------------------------------
    # Candidate queries
    # ------------------------------------------------------------------

    async def get_posts_by_authors(
        self, author_ids: Sequence[UUID], viewer_id: UUID, limit: int
    ) -> list[Candidate]:
        if not author_ids:
            return []
        # Every author in the set is in the viewer's graph, so followers-only
        # posts are visible; private posts only to their author.
        q = (
            select(Post)
            .where(
                Post.author_id.in_(author_ids),
                or_(
                    Post.visibility == PostVisibility.PUBLIC,
                    Post.visibility == PostVisibility.FOLLOWERS,
                    Post.author_id == viewer_id,
                ),
            )
            .order_by(Post.created_at.desc(), Post.post_id.desc())
            .limit(limit)
        )
        return await self._candidates(q)

    async def get_public_posts(
        self, limit: int, exclude_author_ids: Iterable[UUID] = ()
    ) -> list[Candidate]:
        excluded = list(exclude_author_ids)
        filters = [Post.visibility == PostVisibility.PUBLIC]
        if excluded:
            filters.append(Post.author_id.notin_(excluded))
        q = (
            select(Post)
            .where(*filters)
            .order_by(Post.created_at.desc(), Post.post_id.desc())
            .limit(limit)
        )
        return await self._candidates(q)

    async def search_public_posts(self, query: str, limit: int) -> list[Candidate]:
        term = query.strip()
        if not term:
            return []
        q = (
            select(Post)
            .where(
                Post.visibility == PostVisibility.PUBLIC,
                Post.text.is_not(None),
                # Wildcards typed by the user match literally.
                Post.text.icontains(term, autoescape=True),
            )
            .order_by(Post.created_at.desc(), Post.post_id.desc())
            .limit(limit)
        )
        return await self._candidates(q)

    # ------------------------------------------------------------------
    # Signal inputs
    # ------------------------------------------------------------------

    async def count_viewer_interactions_with_author(
        self, viewer_id: UUID, author_id: UUID, since: datetime
    ) -> tuple[int, int]:
        reactions_q = (
            select(func.count(Reaction.reaction_id))
            .join(Post, Post.post_id == Reaction.post_id)
            .where(
                Reaction.user_id == viewer_id,
                Reaction.comment_id.is_(None),
                Reaction.created_at >= since,
                Post.author_id == author_id,
            )
        )
        comments_q = (
            select(func.count(Comment.comment_id))
            .join(Post, Post.post_id == Comment.post_id)
            .where(
                Comment.user_id == viewer_id,
                Comment.created_at >= since,
                Post.author_id == author_id,
            )
        )
        reactions = await self._scalar_one(reactions_q)
        comments = await self._scalar_one(comments_q)
        return int(reactions), int(comments)

    async def count_post_engagement(
        self, post_id: UUID, since: datetime
    ) -> tuple[int, int, int]:
        reactions = (
            select(func.count(Reaction.reaction_id))
            .where(
                Reaction.post_id == post_id,
                Reaction.comment_id.is_(None),
                Reaction.created_at >= since,
            )
            .scalar_subquery()
        )
        comments = (
            select(func.count(Comment.comment_id))
            .where(Comment.post_id == post_id, Comment.created_at >= since)
            .scalar_subquery()
        )
        views = (
            select(func.count(PostView.view_id))
            .where(PostView.post_id == post_id, PostView.created_at >= since)
            .scalar_subquery()
        )
        row = await self._one(
            select(reactions.label("r"), comments.label("c"), views.label("v"))
        )
        return int(row.r), int(row.c), int(row.v)

    async def get_interaction_texts(
        self, user_id: UUID, kind: InteractionKind, since: datetime
    ) -> list[str]:
        if kind is InteractionKind.REACTION:
            q = (
                select(distinct(Post.text))
                .join(Reaction, Reaction.post_id == Post.post_id)
                .where(
                    Reaction.user_id == user_id,
                    Reaction.comment_id.is_(None),
                    Reaction.created_at >= since,
                )
            )
        elif kind is InteractionKind.COMMENT:
            q = (
                select(distinct(Post.text))
                .join(Comment, Comment.post_id == Post.post_id)
                .where(Comment.user_id == user_id, Comment.created_at >= since)
            )
        else:
            q = (
                select(distinct(Post.text))
                .join(PostView, PostView.post_id == Post.post_id)
                .where(PostView.user_id == user_id, PostView.created_at >= since)
            )
        q = q.where(Post.text.is_not(None))
        return [t for t in await self._scalars(q) if t]

    async def has_negative_signal(self, user_id: UUID, post_id: UUID) -> bool:
        hidden = exists().where(HiddenPost.user_id == user_id, HiddenPost.post_id == post_id)
        muted = exists().where(
            NotInterestedPost.user_id == user_id, NotInterestedPost.post_id == post_id
        )
        reported = exists().where(
            ReportedPost.user_id == user_id, ReportedPost.post_id == post_id
        )
        q = select(or_(hidden, muted, reported))
        return bool(await self._scalar_one(q))

    async def count_post_reports(self, post_id: UUID) -> int:
        q = select(func.count(ReportedPost.report_id)).where(ReportedPost.post_id == post_id)
        return int(await self._scalar_one(q))

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def get_post_counts(
        self, post_ids: Sequence[UUID]
    ) -> dict[UUID, tuple[int, int]]:
        result: dict[UUID, tuple[int, int]] = {pid: (0, 0) for pid in post_ids}
        if not post_ids:
            return result

        reactions_q = (
            select(Reaction.post_id, func.count(Reaction.reaction_id).label("cnt"))
            .where(
                and_(Reaction.post_id.in_(post_ids), Reaction.comment_id.is_(None))
            )
            .group_by(Reaction.post_id)
        )
        for row in await self._all(reactions_q):
            result[row.post_id] = (int(row.cnt), result[row.post_id][1])

        comments_q = (
            select(Comment.post_id, func.count(Comment.comment_id).label("cnt"))
            .where(Comment.post_id.in_(post_ids))
            .group_by(Comment.post_id)
        )
        for row in await self._all(comments_q):
            result[row.post_id] = (result[row.post_id][0], int(row.cnt))

        return result
