"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Configuration
    service_host: str = Field(default="0.0.0.0", description="Service host")
    service_port: int = Field(default=8000, description="Service port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database
    database_url: Optional[str] = Field(
        default=None, description="PostgreSQL connection URL for queue and report store"
    )
    db_pool_min_size: int = Field(default=1, description="Minimum connection pool size")
    db_pool_max_size: int = Field(default=10, description="Maximum connection pool size")
    db_ssl: bool = Field(default=False, description="Require SSL for the database connection")

    # Report job queue policy
    report_job_max_attempts: int = Field(
        default=2, ge=1, description="Total execution attempts per report job"
    )
    report_job_backoff_base_s: float = Field(
        default=5.0, ge=0.0, description="Base retry delay, doubled per attempt"
    )
    report_job_keep_completed: int = Field(
        default=100, description="Completed jobs retained for inspection"
    )
    report_job_keep_completed_age_s: int = Field(
        default=24 * 3600, description="Max age of retained completed jobs"
    )
    report_job_keep_failed: int = Field(
        default=200, description="Failed jobs retained for inspection"
    )
    report_job_stale_timeout_minutes: int = Field(
        default=60, description="Active jobs locked longer than this are reaped"
    )

    # Worker pool
    report_worker_enabled: bool = Field(
        default=True, description="Start the report worker pool with the API process"
    )
    report_worker_concurrency: int = Field(
        default=2, ge=1, description="Max report jobs active at once"
    )
    report_worker_rate_max: int = Field(
        default=10, ge=1, description="Max job starts per rate window"
    )
    report_worker_rate_window_s: float = Field(
        default=60.0, gt=0.0, description="Rolling rate limit window in seconds"
    )
    report_worker_poll_interval_s: float = Field(
        default=1.0, gt=0.0, description="Sleep between empty claim attempts"
    )
    report_worker_shutdown_timeout_s: float = Field(
        default=300.0, description="Max seconds to drain in-flight jobs on shutdown"
    )
    report_worker_lock_refresh_s: float = Field(
        default=30.0, gt=0.0, description="How often a running attempt renews its job lock"
    )

    # LLM Provider Configuration
    llm_provider: Literal["auto", "anthropic", "openai"] = Field(
        default="auto",
        description="LLM provider: auto prefers Anthropic > OpenAI",
    )
    llm_required: bool = Field(
        default=False,
        description="If true, fail startup when no LLM provider key configured",
    )
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key (preferred provider)"
    )
    openai_api_key: Optional[str] = Field(
        default=None, description="OpenAI API key (LLM fallback, image generation)"
    )
    answer_model: str = Field(
        default="claude-sonnet-4-5",
        description="Model for planning, ranking, summarization and synthesis",
    )
    llm_timeout: int = Field(default=60, description="LLM request timeout in seconds")

    # Web search
    tavily_api_key: Optional[str] = Field(default=None, description="Tavily API key")
    search_timeout: int = Field(default=30, description="Search request timeout in seconds")
    search_max_results_per_query: int = Field(
        default=5, description="Results requested per planned query"
    )
    search_exclude_domains: list[str] = Field(
        default=["reddit.com", "youtube.com"],
        description="Domains never returned by search",
    )
    search_window_fallback_days: list[int] = Field(
        default=[7, 30, 365],
        description="Search windows tried in order when results are insufficient",
    )
    search_min_results: int = Field(
        default=5, description="Candidates needed before a window is accepted"
    )
    report_article_count: int = Field(
        default=5, description="Articles selected per report"
    )

    # Image generation
    image_generation_enabled: bool = Field(
        default=True, description="Generate one image per article"
    )
    image_model: str = Field(default="gpt-image-1", description="OpenAI image model")
    image_size: str = Field(default="1024x1024", description="Generated image size")
    image_timeout: int = Field(default=120, description="Image request timeout in seconds")
    image_upload_dir: str = Field(
        default="public/uploads", description="Directory generated images are written to"
    )
    image_placeholder_url: str = Field(
        default="/static/article-placeholder.png",
        description="Image reference used when generation fails",
    )

    # Rate limiting (HTTP)
    rate_limit_enabled: bool = Field(default=True, description="Enable rate limiting")
    rate_limit_requests_per_minute: int = Field(
        default=60, description="Maximum requests per minute per IP"
    )
    submit_rate_limit: str = Field(
        default="10/minute", description="Per-IP limit on report submissions"
    )

    # Security
    api_key: Optional[str] = Field(
        default=None, description="API key for authentication (optional)"
    )
    api_key_header_name: str = Field(default="X-API-Key", description="API key header name")
    max_request_body_size: int = Field(
        default=1 * 1024 * 1024, description="Maximum request body size in bytes"
    )

    # Sentry Observability
    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking and performance monitoring",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment tag (development, staging, production)",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry performance tracing sample rate (0.0-1.0)",
    )

    @property
    def search_windows(self) -> list[int]:
        """Search windows sorted ascending, without duplicates."""
        return sorted(set(self.search_window_fallback_days))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
