from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from prometheus_fastapi_instrumentator import Instrumentator, metrics
from redis import asyncio as aioredis
from sqlalchemy import text
import uvicorn

from core.config import get_settings
from core.database import create_db_and_tables, create_engine_from_settings, create_session_factory
from core.logging_config import setup_logging
from core.scheduler import JobScheduler
from core.tasks import register_jobs
from dependencies import log_requests, setup_error_handlers
from models import HealthResponse
from repositories.analytics import AnalyticsRepository
from repositories.posts import PostRepository
from routers import analytics_router, posts_router
from services.analytics import AnalyticsService
from services.feed import FeedRanker
from services.geo import build_geo_lookup
from services.notifications import NotificationService
from services.posts import PostService
from services.request_metrics import RequestMetricsRecorder

# Initialize settings and logging; a missing SECRET_KEY fails here, at startup
settings = get_settings()
setup_logging(settings.LOG_FORMAT, settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute):
    return f"{route.tags[0] if route.tags else ''}-{route.name}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine services, start timers and jobs, and drain on shutdown"""
    engine = create_engine_from_settings(settings)
    await create_db_and_tables(engine)
    session_factory = create_session_factory(engine)

    analytics_repository = AnalyticsRepository(session_factory)
    analytics = AnalyticsService.from_settings(
        analytics_repository, settings, geo=build_geo_lookup(settings.GEOIP_DATABASE_PATH)
    )
    posts = PostService(
        PostRepository(session_factory),
        NotificationService(session_factory),
        record_event=analytics.record_canonical_event,
    )

    app.state.engine = engine
    app.state.analytics = analytics
    app.state.posts = posts
    app.state.feed = FeedRanker(
        posts.posts,
        half_life_hours=settings.FEED_HALF_LIFE_HOURS,
        max_candidates=settings.FEED_MAX_CANDIDATES,
        max_limit=settings.FEED_MAX_LIMIT,
    )
    app.state.request_metrics = RequestMetricsRecorder(
        analytics_repository, on_recorded=analytics.invalidate_summary_cache
    )
    app.state.redis = None
    if settings.RATE_LIMIT_ENABLED:
        app.state.redis = aioredis.from_url(settings.REDIS_URL, encoding="utf8", decode_responses=True)

    scheduler = register_jobs(JobScheduler(), analytics, settings)
    analytics.start()
    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    logger.info("Engine services started")
    try:
        yield
    finally:
        await scheduler.stop()
        await analytics.shutdown()
        if app.state.redis is not None:
            await app.state.redis.aclose()
        await engine.dispose()
        logger.info("Engine services stopped")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url=settings.DOCS_URL,
        redoc_url=settings.REDOC_URL,
        openapi_tags=settings.OPENAPI_TAGS,
        lifespan=lifespan,
        generate_unique_id_function=custom_generate_unique_id,
    )

    # Add middleware
    app.middleware("http")(log_requests)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handlers
    setup_error_handlers(app)

    Instrumentator().instrument(app)\
        .add(metrics.latency(buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0]))\
        .add(metrics.requests(should_include_handler=True))\
        .expose(app, include_in_schema=False, should_gzip=True)

    # Include routers
    app.include_router(posts_router, prefix="/posts", tags=["posts"])
    app.include_router(analytics_router, prefix="/analytics", tags=["analytics"])

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint for monitoring"""
        try:
            async with request.app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            raise HTTPException(status_code=503, detail="Service unavailable")

        return HealthResponse(
            status="healthy",
            version=settings.APP_VERSION,
            buffered_events=len(request.app.state.analytics.buffer),
        )

    return app


# Create the FastAPI application
app = create_application()


def main():
    """Main function for direct script execution"""
    uvicorn.run("main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
