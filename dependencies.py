from typing import Annotated
from uuid import uuid4
import logging
from time import perf_counter, time

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
import structlog

from core.config import get_settings
from core.exceptions import EngineError
from services.analytics import AnalyticsService
from services.feed import FeedRanker
from services.posts import PostService

settings = get_settings()
logger = logging.getLogger(__name__)
access_logger = structlog.get_logger("http")

UNMETERED_PATHS = {"/metrics"}


# Service dependencies, built once in the application lifespan

def get_analytics(request: Request) -> AnalyticsService:
    return request.app.state.analytics


def get_feed_ranker(request: Request) -> FeedRanker:
    return request.app.state.feed


def get_post_service(request: Request) -> PostService:
    return request.app.state.posts


AnalyticsDep = Annotated[AnalyticsService, Depends(get_analytics)]
FeedDep = Annotated[FeedRanker, Depends(get_feed_ranker)]
PostServiceDep = Annotated[PostService, Depends(get_post_service)]


# Identity is resolved by the upstream auth layer and forwarded as a header

async def get_viewer_id(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    return x_user_id or None


async def get_current_user_id(viewer_id: Annotated[str | None, Depends(get_viewer_id)]) -> str:
    if not viewer_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return viewer_id


ViewerDep = Annotated[str | None, Depends(get_viewer_id)]
CurrentUserDep = Annotated[str, Depends(get_current_user_id)]


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


# Rate limiting dependency
def rate_limit(key_prefix: str, limit: int, window: int = 60):
    async def check_rate_limit(request: Request):
        redis = getattr(request.app.state, "redis", None)
        if not settings.RATE_LIMIT_ENABLED or redis is None:
            return
        client = request.headers.get("x-user-id") or client_ip(request) or "anonymous"
        key = f"rate_limit:{key_prefix}:{client}:{int(time() // window)}"
        try:
            requests = await redis.incr(key)
            if requests == 1:
                await redis.expire(key, window)
        except RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return

        if requests > limit:
            raise HTTPException(status_code=429, detail="Too many requests")

    return check_rate_limit


# Middleware
async def log_requests(request: Request, call_next):
    start_time = perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (perf_counter() - start_time) * 1000
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)

        access_logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=status_code,
            duration_ms=round(duration_ms, 2),
        )

        recorder = getattr(request.app.state, "request_metrics", None)
        if recorder is not None and path not in UNMETERED_PATHS:
            await recorder.record(
                status_code=status_code,
                duration_ms=duration_ms,
                route=path,
                method=request.method,
                user_id=request.headers.get("x-user-id"),
                request_id=request.headers.get("x-request-id"),
            )


# Error handlers
def setup_error_handlers(app):
    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        if exc.status_code >= 500:
            logger.error(
                f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}",
                exc_info=exc,
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        error_id = str(uuid4())
        logger.error(
            f"Unhandled error {error_id}: {str(exc)}",
            exc_info=True,
            extra={
                "path": request.url.path,
                "method": request.method,
                "error_id": error_id,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred", "error_id": error_id},
        )
