"""Centralized configuration using pydantic-settings. All values are env-configurable."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TELEMETRY_")

    # Redis
    redis_url: str = "redis://redis:6379/0"
    redis_pool_size: int = 20
    redis_max_retries: int = Field(default=3, ge=1)
    redis_failure_threshold: int = 5
    redis_recovery_timeout_sec: float = 30.0

    # Reading store
    readings_key: str = "readings:ts"
    store_page_size: int = 500

    # Job queue
    queue_name: str = "analytics"
    queue_delay_ms: int = 1000  # debounce before first claim
    queue_max_attempts: int = 3
    queue_backoff_ms: int = 1000
    queue_keep_completed: int = 10
    queue_keep_failed: int = 5
    queue_visibility_timeout_sec: int = 60

    # Worker
    worker_poll_interval_sec: float = 1.0
    cleanup_interval_sec: int = 86_400
    retention_days: int = 30
    aggregation_timezone: str = "UTC"
    daily_stats_ttl_sec: int = 0  # 0 = no expiry

    # Analytics
    analytics_sample_limit: int = 100
    analytics_recent_count: int = 5
    analytics_default_hours: int = 24

    # Monitoring
    log_level: str = "INFO"
    log_format: str = "json"  # "json" | "console"
