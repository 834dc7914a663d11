from .user import User, UserFollow
from .post import Post, PostCreate, PostPublic, FeedPost, FeedResponse
from .interaction import (
    InteractionType, PostInteraction, SavedPost,
    InteractionResult, LikeResult, SaveResult,
)
from .comment import Comment, CommentLike, CommentCreate, CommentPublic
from .notification import Notification, NotificationType
from .analytics import (
    AnalyticsEvent, AnalyticsSession, RequestMetric,
    AnalyticsEventInput, IngestAnalyticsEvents, IngestResult,
)
from .summary import AnalyticsSummary
from .response import BasicResponse, HealthResponse

__all__ = [
    "User", "UserFollow",
    "Post", "PostCreate", "PostPublic", "FeedPost", "FeedResponse",
    "InteractionType", "PostInteraction", "SavedPost",
    "InteractionResult", "LikeResult", "SaveResult",
    "Comment", "CommentLike", "CommentCreate", "CommentPublic",
    "Notification", "NotificationType",
    "AnalyticsEvent", "AnalyticsSession", "RequestMetric",
    "AnalyticsEventInput", "IngestAnalyticsEvents", "IngestResult",
    "AnalyticsSummary",
    "BasicResponse", "HealthResponse",
]
