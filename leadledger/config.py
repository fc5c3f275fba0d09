"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (rate limiting + worker heartbeats)
    redis_url: str = "redis://localhost:6379/0"

    # Facebook Lead Ads
    facebook_verify_token: str = ""
    facebook_app_secret: str = ""  # Signs X-Hub-Signature-256
    allow_unsigned_webhooks: bool = False
    graph_api_base_url: str = "https://graph.facebook.com"
    graph_api_version: str = "v18.0"

    # Platform fetch policy
    platform_fetch_timeout_seconds: float = 10.0
    platform_fetch_attempts: int = 1  # 1 = rely on the platform's own redelivery
    platform_fetch_backoff_seconds: float = 0.5

    # Settlement
    webhook_max_concurrency: int = 5
    webhook_ip_rate_limit: int = 100  # deliveries per window per client IP
    webhook_tenant_rate_limit: int = 60  # deliveries per window per tenant, 0 = off
    webhook_rate_limit_window_seconds: int = 60
    quality_demographics_min_keys: int = 2
    pending_lead_timeout_minutes: int = 15

    # Stripe (auto-recharge)
    stripe_secret_key: str = ""
    stripe_currency: str = "usd"

    # Internal callers (checkout subsystem)
    internal_api_key: str = ""

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
