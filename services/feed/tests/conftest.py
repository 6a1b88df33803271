import asyncio
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from app.models.enums import PostVisibility
from app.ranking.engine import FeedRankingEngine
from app.ranking.types import Candidate, InteractionKind
from app.ranking.weights import RankingConfig

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class InMemoryFeedStore:
    """FeedStore over plain Python collections.

    ``fail`` names methods that raise; ``delay`` maps method names to a sleep
    (seconds) before answering. ``calls`` counts every method invocation.
    """

    def __init__(self) -> None:
        self.posts: list[Candidate] = []
        self.follows: set[tuple[UUID, UUID]] = set()
        # (user_id, post_id, created_at, comment_id)
        self.reactions: list[tuple[UUID, UUID, datetime, UUID | None]] = []
        # (user_id, post_id, created_at)
        self.comments: list[tuple[UUID, UUID, datetime]] = []
        self.views: list[tuple[UUID, UUID, datetime]] = []
        self.hidden: set[tuple[UUID, UUID]] = set()
        self.not_interested: set[tuple[UUID, UUID]] = set()
        self.reports: list[tuple[UUID, UUID]] = []
        self.fail: set[str] = set()
        self.delay: dict[str, float] = {}
        self.calls: dict[str, int] = {}

    # -- fixtures helpers ------------------------------------------------

    def add_post(
        self,
        author_id: UUID,
        *,
        text: str | None = None,
        hours_ago: float = 1.0,
        visibility: PostVisibility = PostVisibility.PUBLIC,
    ) -> Candidate:
        post = Candidate(
            post_id=uuid4(),
            author_id=author_id,
            text=text,
            visibility=visibility,
            created_at=NOW - timedelta(hours=hours_ago),
        )
        self.posts.append(post)
        return post

    def follow(self, follower_id: UUID, following_id: UUID) -> None:
        assert follower_id != following_id
        self.follows.add((follower_id, following_id))

    def react(self, user_id: UUID, post: Candidate, *, hours_ago: float = 1.0) -> None:
        self.reactions.append((user_id, post.post_id, NOW - timedelta(hours=hours_ago), None))

    def comment(self, user_id: UUID, post: Candidate, *, hours_ago: float = 1.0) -> None:
        self.comments.append((user_id, post.post_id, NOW - timedelta(hours=hours_ago)))

    def view(self, user_id: UUID, post: Candidate, *, hours_ago: float = 1.0) -> None:
        self.views.append((user_id, post.post_id, NOW - timedelta(hours=hours_ago)))

    def report(self, user_id: UUID, post: Candidate) -> None:
        self.reports.append((user_id, post.post_id))

    async def _enter(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.delay:
            await asyncio.sleep(self.delay[name])
        if name in self.fail:
            raise RuntimeError(f"storage unavailable: {name}")

    def _post(self, post_id: UUID) -> Candidate:
        return next(p for p in self.posts if p.post_id == post_id)

    @staticmethod
    def _newest_first(posts: Iterable[Candidate]) -> list[Candidate]:
        return sorted(posts, key=lambda p: (p.created_at, p.post_id), reverse=True)

    # -- FeedStore -------------------------------------------------------

    async def get_followee_ids(self, user_id: UUID) -> list[UUID]:
        await self._enter("get_followee_ids")
        return sorted(b for a, b in self.follows if a == user_id)

    async def get_follower_ids(self, user_id: UUID) -> list[UUID]:
        await self._enter("get_follower_ids")
        return sorted(a for a, b in self.follows if b == user_id)

    async def get_follow_state(self, viewer_id: UUID, author_id: UUID) -> tuple[bool, bool]:
        await self._enter("get_follow_state")
        return (viewer_id, author_id) in self.follows, (author_id, viewer_id) in self.follows

    async def get_posts_by_authors(
        self, author_ids: Sequence[UUID], viewer_id: UUID, limit: int
    ) -> list[Candidate]:
        await self._enter("get_posts_by_authors")
        authors = set(author_ids)
        visible = [
            p
            for p in self.posts
            if p.author_id in authors
            and (
                p.visibility in (PostVisibility.PUBLIC, PostVisibility.FOLLOWERS)
                or p.author_id == viewer_id
            )
        ]
        return self._newest_first(visible)[:limit]

    async def get_public_posts(
        self, limit: int, exclude_author_ids: Iterable[UUID] = ()
    ) -> list[Candidate]:
        await self._enter("get_public_posts")
        excluded = set(exclude_author_ids)
        public = [
            p
            for p in self.posts
            if p.visibility == PostVisibility.PUBLIC and p.author_id not in excluded
        ]
        return self._newest_first(public)[:limit]

    async def count_viewer_interactions_with_author(
        self, viewer_id: UUID, author_id: UUID, since: datetime
    ) -> tuple[int, int]:
        await self._enter("count_viewer_interactions_with_author")
        reactions = sum(
            1
            for user, pid, at, cid in self.reactions
            if user == viewer_id and cid is None and at >= since
            and self._post(pid).author_id == author_id
        )
        comments = sum(
            1
            for user, pid, at in self.comments
            if user == viewer_id and at >= since and self._post(pid).author_id == author_id
        )
        return reactions, comments

    async def count_post_engagement(
        self, post_id: UUID, since: datetime
    ) -> tuple[int, int, int]:
        await self._enter("count_post_engagement")
        reactions = sum(
            1 for _, pid, at, cid in self.reactions if pid == post_id and cid is None and at >= since
        )
        comments = sum(1 for _, pid, at in self.comments if pid == post_id and at >= since)
        views = sum(1 for _, pid, at in self.views if pid == post_id and at >= since)
        return reactions, comments, views

    async def get_interaction_texts(
        self, user_id: UUID, kind: InteractionKind, since: datetime
    ) -> list[str]:
        await self._enter("get_interaction_texts")
        if kind is InteractionKind.REACTION:
            post_ids = [pid for u, pid, at, cid in self.reactions if u == user_id and cid is None and at >= since]
        elif kind is InteractionKind.COMMENT:
            post_ids = [pid for u, pid, at in self.comments if u == user_id and at >= since]
        else:
            post_ids = [pid for u, pid, at in self.views if u == user_id and at >= since]
        texts = [self._post(pid).text for pid in post_ids]
        return list(dict.fromkeys(t for t in texts if t))

    async def has_negative_signal(self, user_id: UUID, post_id: UUID) -> bool:
        await self._enter("has_negative_signal")
        pair = (user_id, post_id)
        return pair in self.hidden or pair in self.not_interested or pair in self.reports

    async def count_post_reports(self, post_id: UUID) -> int:
        await self._enter("count_post_reports")
        return sum(1 for _, pid in self.reports if pid == post_id)

    async def search_public_posts(self, query: str, limit: int) -> list[Candidate]:
        await self._enter("search_public_posts")
        term = query.strip().lower()
        matches = [
            p
            for p in self.posts
            if p.visibility == PostVisibility.PUBLIC and p.text and term in p.text.lower()
        ]
        return self._newest_first(matches)[:limit]

    async def get_post_counts(
        self, post_ids: Sequence[UUID]
    ) -> dict[UUID, tuple[int, int]]:
        await self._enter("get_post_counts")
        return {
            pid: (
                sum(1 for _, p, _, cid in self.reactions if p == pid and cid is None),
                sum(1 for _, p, _ in self.comments if p == pid),
            )
            for pid in post_ids
        }


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def viewer() -> UUID:
    return uuid4()


@pytest.fixture
def store() -> InMemoryFeedStore:
    return InMemoryFeedStore()


@pytest.fixture
def config() -> RankingConfig:
    return RankingConfig(query_timeout_s=2.0, fallback_timeout_s=1.0)


@pytest.fixture
def engine(store: InMemoryFeedStore, config: RankingConfig) -> FeedRankingEngine:
    return FeedRankingEngine(store, config, clock=lambda: NOW)
