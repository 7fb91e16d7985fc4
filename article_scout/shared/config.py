import os
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field, field_validator, ConfigDict
from functools import lru_cache
import logging


def _get_env_file() -> str:
    """Determine which environment file to load based on the current environment."""
    environment = os.environ.get("ENVIRONMENT", "development")

    # Priority order for env files:
    # 1. .env.{environment} (e.g., .env.production)
    # 2. .env.local (local overrides)
    # 3. .env (default)
    possible_env_files = [
        f".env.{environment}",
        ".env.local",
        ".env"
    ]

    for env_file in possible_env_files:
        if os.path.exists(env_file):
            logging.info(f"Loading environment from: {env_file}")
            return env_file

    return ".env"  # Fallback, won't be loaded if doesn't exist


class Settings(BaseSettings):
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./article_scout.db",
        description="Database connection URL (PostgreSQL in production, SQLite for local runs)"
    )

    DATABASE_POOL_SIZE: int = Field(
        default=5,
        description="Database connection pool size"
    )

    DATABASE_MAX_OVERFLOW: int = Field(
        default=10,
        description="Database connection pool max overflow"
    )

    DATABASE_POOL_TIMEOUT: int = Field(
        default=30,
        description="Database connection pool timeout in seconds"
    )

    DATABASE_ECHO: bool = Field(
        default=False,
        description="Enable SQLAlchemy echo mode for debugging"
    )

    ENVIRONMENT: str = Field(
        default="development",
        description="Application environment"
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    LOG_JSON: bool = Field(
        default=True,
        description="Render structured logs as JSON (console renderer otherwise)"
    )

    # Static HTTP fetching
    HTTP_TIMEOUT: float = Field(
        default=10.0,
        description="Connect/read timeout for page fetches in seconds"
    )

    HTTP_USER_AGENT: str = Field(
        default="Mozilla/5.0 (compatible; ArticleScout/1.0)",
        description="User-Agent header sent with static page fetches"
    )

    HTTP_MAX_RETRIES: int = Field(
        default=3,
        description="Maximum attempts for a page fetch (429 and 5xx are retried)"
    )

    HTTP_RETRY_BASE_DELAY: float = Field(
        default=1.0,
        description="Base delay in seconds for fetch retry backoff"
    )

    HTTP_DOMAIN_DELAY: float = Field(
        default=2.0,
        description="Minimum delay between two requests to the same host in seconds"
    )

    HTTP_MAX_CONTENT_BYTES: int = Field(
        default=2 * 1024 * 1024,
        description="Maximum number of bytes read from a fetched page"
    )

    # Canonical URL resolution
    RESOLVER_TIMEOUT: float = Field(
        default=8.0,
        description="Timeout for redirect resolution requests in seconds"
    )

    RESOLVER_MAX_REDIRECTS: int = Field(
        default=5,
        description="Maximum redirect hops followed when resolving canonical URLs"
    )

    RESOLVER_MAX_BYTES: int = Field(
        default=5000,
        description="Maximum response bytes read while resolving canonical URLs"
    )

    # JavaScript rendering settings for Playwright integration
    ENABLE_JAVASCRIPT_RENDERING: bool = Field(
        default=True,
        description="Enable the Playwright-backed rendered-DOM strategy"
    )

    PLAYWRIGHT_HEADLESS: bool = Field(
        default=True,
        description="Run Playwright browser in headless mode"
    )

    PLAYWRIGHT_TIMEOUT: int = Field(
        default=30,
        description="Timeout for Playwright navigation in seconds"
    )

    PLAYWRIGHT_NETWORK_IDLE_TIMEOUT: int = Field(
        default=10,
        description="Maximum wait for network quiescence in seconds"
    )

    PLAYWRIGHT_WAIT_TIME: float = Field(
        default=3.0,
        description="Settle time for lazy content after navigation in seconds"
    )

    PLAYWRIGHT_BLOCK_RESOURCES: bool = Field(
        default=True,
        description="Abort image, media, font and stylesheet requests in browser pages"
    )

    # Agentic search (Google ADK)
    GOOGLE_API_KEY: Optional[str] = Field(
        default=None,
        description="API key for the agent service; absence disables the agentic strategy",
        validation_alias=AliasChoices("GOOGLE_API_KEY", "GEMINI_API_KEY")
    )

    AGENT_MODEL_CANDIDATES: List[str] = Field(
        default=["gemini-2.0-flash-exp", "gemini-2.0-flash", "gemini-1.5-flash-latest"],
        description="Models tried in order until one initializes"
    )

    AGENT_MIN_REQUEST_INTERVAL: float = Field(
        default=7.0,
        description="Minimum seconds between two agent invocations (process-wide)"
    )

    AGENT_MAX_LLM_CALLS: int = Field(
        default=5,
        description="Cap on agent turns per invocation"
    )

    AGENT_APP_NAME: str = Field(
        default="article_scout",
        description="Application name used for agent sessions"
    )

    AGENT_USER_ID: str = Field(
        default="system",
        description="User id used for agent sessions"
    )

    AGENT_RESULT_LIMIT: int = Field(
        default=3,
        description="Maximum articles kept from one agent reply"
    )

    # Orchestration
    STRATEGY_ORDER: List[str] = Field(
        default=["static", "rendered", "agentic"],
        description="Extraction strategies in priority order"
    )

    AGENTIC_PRIMARY: bool = Field(
        default=False,
        description="Run the agentic strategy first and fall back to the others on failure"
    )

    MAX_ARTICLES_PER_SOURCE: int = Field(
        default=3,
        description="Maximum validated articles returned per source"
    )

    STATIC_CANDIDATE_LIMIT: int = Field(
        default=20,
        description="Maximum candidates kept by the static and rendered extractors"
    )

    # Enrichment
    ENRICHMENT_BATCH_SIZE: int = Field(
        default=20,
        description="Articles per static enrichment batch"
    )

    ENRICHMENT_BROWSER_BATCH_SIZE: int = Field(
        default=5,
        description="Articles per browser enrichment batch"
    )

    ENRICHMENT_INTERVAL_MINUTES: int = Field(
        default=30,
        description="Interval between periodic enrichment batches in minutes"
    )

    ENRICHMENT_ARTICLE_DELAY: float = Field(
        default=0.5,
        description="Delay between articles in a static enrichment batch in seconds"
    )

    ENRICHMENT_BROWSER_ARTICLE_DELAY: float = Field(
        default=2.0,
        description="Delay between articles in a browser enrichment batch in seconds"
    )

    ENRICHMENT_BROWSER_TIMEOUT: int = Field(
        default=20,
        description="Navigation timeout for browser enrichment in seconds"
    )

    ENRICHMENT_MEMORY_LIMIT_MB: int = Field(
        default=280,
        description="Process RSS ceiling in MB above which browser enrichment is skipped"
    )

    ENRICHMENT_MIN_DESCRIPTION_LENGTH: int = Field(
        default=50,
        description="Descriptions shorter than this are considered missing"
    )

    ENRICHMENT_DESCRIPTION_MAX: int = Field(
        default=500,
        description="Maximum stored description length"
    )

    ENRICHMENT_PREVIEW_MAX: int = Field(
        default=200,
        description="Maximum stored preview length"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must start with postgresql://, postgresql+asyncpg:// or sqlite+aiosqlite://"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid_envs = ["development", "testing", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT must be one of {valid_envs}")
        return v.lower()

    @field_validator(
        "HTTP_TIMEOUT",
        "HTTP_RETRY_BASE_DELAY",
        "RESOLVER_TIMEOUT",
        "PLAYWRIGHT_WAIT_TIME",
        "AGENT_MIN_REQUEST_INTERVAL",
    )
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("HTTP_MAX_RETRIES", "RESOLVER_MAX_REDIRECTS", "AGENT_MAX_LLM_CALLS")
    @classmethod
    def validate_small_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        if v > 10:
            raise ValueError("value must not exceed 10")
        return v

    @field_validator("PLAYWRIGHT_TIMEOUT", "ENRICHMENT_BROWSER_TIMEOUT")
    @classmethod
    def validate_playwright_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Playwright timeouts must be positive")
        if v > 120:  # 2 minutes max
            raise ValueError("Playwright timeouts must not exceed 120 seconds")
        return v

    @field_validator("MAX_ARTICLES_PER_SOURCE")
    @classmethod
    def validate_max_articles(cls, v: int) -> int:
        if v < 3 or v > 5:
            raise ValueError("MAX_ARTICLES_PER_SOURCE must be between 3 and 5")
        return v

    @field_validator("STRATEGY_ORDER")
    @classmethod
    def validate_strategy_order(cls, v: List[str]) -> List[str]:
        valid = {"static", "rendered", "agentic"}
        normalized = [name.strip().lower() for name in v if name.strip()]
        unknown = [name for name in normalized if name not in valid]
        if unknown:
            raise ValueError(f"Unknown strategies in STRATEGY_ORDER: {unknown}")
        if len(set(normalized)) != len(normalized):
            raise ValueError("STRATEGY_ORDER must not repeat a strategy")
        return normalized

    @field_validator("ENRICHMENT_MEMORY_LIMIT_MB")
    @classmethod
    def validate_memory_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("ENRICHMENT_MEMORY_LIMIT_MB must be positive")
        return v

    @property
    def agentic_enabled(self) -> bool:
        return bool(self.GOOGLE_API_KEY)

    model_config = ConfigDict(
        env_file=_get_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
