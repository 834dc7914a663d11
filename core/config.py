from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Astrogram Engine"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = """
    Feed ranking and analytics aggregation for the Astrogram social platform.

    ## Features
    * Time-decayed feed ranking with reposts and viewer state
    * Like / share / repost / save interactions
    * Buffered analytics ingestion with session tracking
    * Cached analytics summaries with scheduled warm-up and retention pruning
    """
    DOCS_URL: str = "/docs"
    REDOC_URL: str = "/redoc"
    OPENAPI_TAGS: list[dict] = [
        {
            "name": "posts",
            "description": "Feed retrieval, post creation and post interactions"
        },
        {
            "name": "analytics",
            "description": "Analytics event ingestion and summaries"
        },
    ]

    # CORS
    CORS_ALLOWED_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost"]

    # Database
    DATABASE_URL: str | None = None
    DB_USER: str | None = None
    DB_PASS: str | None = None
    DB_NAME: str = "astrogram"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_ECHO: bool = False

    @property
    def SQLALCHEMY_DATABASE_URL(self) -> str:
        url = self.DATABASE_URL
        if not url:
            return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    # Secrets
    SECRET_KEY: str

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    ANALYTICS_EVENTS_PER_MINUTE: int = 120
    POSTS_PER_MINUTE: int = 5
    LIKES_PER_MINUTE: int = 30

    # Logging
    LOG_FORMAT: str = "console"  # console | json
    LOG_LEVEL: str = "INFO"

    # Analytics ingestion
    ANALYTICS_BATCH_SIZE: int = 50
    ANALYTICS_FLUSH_INTERVAL_SECONDS: float = 5.0

    # Analytics summaries
    SUMMARY_CACHE_TTL_SECONDS: int = 300  # 5 minutes
    SUMMARY_DEFAULT_RANGE_DAYS: int = 7
    SUMMARY_MAX_RANGE_DAYS: int = 3650  # larger windows are clamped
    SUMMARY_WARM_RANGES: list[int] = [1, 7, 30]
    LOCATION_TOP_N: int = 20
    GEOIP_DATABASE_PATH: str | None = None

    # Retention
    ANALYTICS_RETENTION_DAYS: int = 180

    # Scheduled jobs (UTC, HH:MM)
    SCHEDULER_ENABLED: bool = True
    PRUNE_SCHEDULE: str = "03:00"
    WARM_SCHEDULE: str = "04:30"

    # Feed
    FEED_HALF_LIFE_HOURS: float = 6.0
    FEED_MAX_CANDIDATES: int = 500
    FEED_DEFAULT_LIMIT: int = 20
    FEED_MAX_LIMIT: int = 100

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    # Get the current file's directory
    current_dir = Path(__file__).resolve().parent
    # Go up one level to the project root
    root_dir = current_dir.parent

    # Initialize settings with explicit .env path
    return Settings(_env_file=root_dir / ".env")
