"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote ledger API
    api_base_url: str = "http://localhost:3000/api"
    http_timeout_seconds: float = 10.0

    # Durable sync queue
    queue_database_url: str = "sqlite:///./ledger_sync_queue.db"

    # Service
    service_name: str = "ledger-sync"
    log_level: str = "INFO"

    # Retry policy: delay = min(base * 2^failures, cap)
    retry_max_attempts: int = 2
    retry_backoff_base_ms: int = 1000
    retry_backoff_cap_ms: int = 30_000

    # Cache
    cache_stale_after_seconds: float = 30.0
    cache_gc_seconds: float = 300.0

    # Pricing
    enable_custom_pricing: bool = True
    default_unit_price_cents: int = 0
    pricing_epsilon_cents: int = 1  # 0.01 currency unit


settings = Settings()
