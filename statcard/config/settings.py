"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Forge Stats Card"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # GitHub API
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_GRAPHQL_URL: str = "https://api.github.com/graphql"
    GITHUB_API_VERSION: str = "2022-11-28"
    USER_AGENT: str = "ForgeStatsCard/1.0"

    # HTTP behaviour
    HTTP_TIMEOUT_SECONDS: float = 20.0
    HTTP_MAX_RETRIES: int = 3  # total attempts on rate-limited responses
    RATE_LIMIT_BACKOFF_MAX_SECONDS: float = 10.0

    # Aggregation defaults
    DEFAULT_REPOS_LIMIT: int = 25
    DEFAULT_CONCURRENCY: int = 6
    DEFAULT_LOC_STRATEGY: str = "contributor_stats"  # "contributor_stats", "pull_requests" or "commit_history"
    DEFAULT_MAX_PRS: int = 400
    DEFAULT_MAX_COMMITS_PER_REPO: int = 200
    DISCOVERY_MAX_PAGES: int = 20

    # Contributor statistics are computed asynchronously upstream
    STATS_RETRY_ATTEMPTS: int = 3
    STATS_RETRY_DELAYS: tuple[float, ...] = (1.0, 2.0, 4.0)

    # In-process cache
    CACHE_TTL_SECONDS: int = 21600
    PENDING_CACHE_TTL_SECONDS: int = 120
    CACHE_DECISIVE_THRESHOLD: float = 0.5

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
