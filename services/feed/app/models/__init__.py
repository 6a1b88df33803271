from app.models.interaction import Comment, PostView, Reaction
from app.models.moderation import HiddenPost, NotInterestedPost, ReportedPost
from app.models.post import Post
from app.models.social import Follow

__all__ = [
    "Post",
    "Follow",
    "Reaction",
    "Comment",
    "PostView",
    "HiddenPost",
    "NotInterestedPost",
    "ReportedPost",
]
