from .posts import router as posts_router
from .analytics import router as analytics_router

__all__ = [
    "posts_router",
    "analytics_router",
]
