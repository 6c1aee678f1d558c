"""
Configuration settings for the API data seeder.

Uses Pydantic Settings to load environment variables for the downstream service
endpoints, HTTP resilience policies, seeding throughput knobs and logging.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Downstream services
    customer_service_url: str = Field("http://localhost:8080", alias="CUSTOMER_SERVICE_URL")
    account_service_url: str = Field("http://localhost:8081", alias="ACCOUNT_SERVICE_URL")

    # HTTP client
    connect_timeout_seconds: float = Field(5.0, alias="CONNECT_TIMEOUT_SECONDS")
    read_timeout_seconds: float = Field(30.0, alias="READ_TIMEOUT_SECONDS")
    call_timeout_seconds: float = Field(60.0, alias="CALL_TIMEOUT_SECONDS")
    max_connections: int = Field(200, alias="MAX_CONNECTIONS")

    # Retry / circuit breaker
    retry_attempts: int = Field(3, alias="RETRY_ATTEMPTS")
    retry_base_delay_seconds: float = Field(1.0, alias="RETRY_BASE_DELAY_SECONDS")
    retry_max_delay_seconds: float = Field(10.0, alias="RETRY_MAX_DELAY_SECONDS")
    breaker_failure_rate_threshold: float = Field(0.5, alias="BREAKER_FAILURE_RATE_THRESHOLD")
    breaker_window_size: int = Field(100, alias="BREAKER_WINDOW_SIZE")
    breaker_minimum_calls: int = Field(10, alias="BREAKER_MINIMUM_CALLS")
    breaker_cooldown_seconds: float = Field(60.0, alias="BREAKER_COOLDOWN_SECONDS")

    # Seeding defaults
    seeding_batch_size: int = Field(100, alias="SEEDING_BATCH_SIZE")
    seeding_customer_concurrency: int = Field(10, alias="SEEDING_CUSTOMER_CONCURRENCY")
    seeding_account_concurrency: int = Field(15, alias="SEEDING_ACCOUNT_CONCURRENCY")
    seeding_request_delay_ms: int = Field(10, alias="SEEDING_REQUEST_DELAY_MS")
    run_deadline_seconds: Optional[float] = Field(None, alias="RUN_DEADLINE_SECONDS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    export_dir: str = Field("exports", alias="EXPORT_DIR")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
