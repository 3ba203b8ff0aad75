"""
Settings and environment management for the opsboard service.

Configuration is loaded with pydantic-settings from environment variables and
an optional .env file. Every collaborator the service talks to (hosted blob
store, remote P&L configuration, OpenAI-compatible classifier) is optional:
when its settings are absent the service falls back to an in-process
implementation or disables the feature.

Environment Variables:
- INGEST_API_KEY: Static bearer token for ingestion endpoints. When unset,
  every authenticated request is rejected.
- BLOB_BASE_URL / BLOB_READ_WRITE_TOKEN: Hosted blob store. When the base URL
  is unset the in-memory blob store is used.
- PNL_CONFIG_URL: Optional remote P&L configuration document.
- OPENAI_API_KEY / OPENAI_BASE_URL / OPENAI_MODEL: Batch conversation
  classification.

Usage:
    from opsboard.core.config import get_settings

    settings = get_settings()
    window = settings.trend_window_days
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        ingest_api_key: Shared secret for write endpoints.
        blob_base_url: Base URL of the hosted key-blob store.
        blob_read_write_token: Bearer token for the hosted blob store.
        pnl_config_url: Remote URL for the P&L configuration fallback.
        lock_ttl_seconds: Lifetime of an advisory lock before it may be taken over.
        lock_max_wait_seconds: Total time budget for acquiring an advisory lock.
        trend_window_days: Number of days read back for chat trend series.
        price_change_date: First date (inclusive) on which the new price list applies.
        classification_concurrency: Worker pool size for batch classification.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Authentication
    # =========================================================================

    ingest_api_key: Optional[str] = None

    # =========================================================================
    # Blob Storage
    # =========================================================================

    blob_base_url: Optional[str] = None
    blob_read_write_token: Optional[str] = None
    blob_timeout_seconds: float = 10.0

    # =========================================================================
    # Remote P&L Configuration
    # =========================================================================

    pnl_config_url: Optional[str] = None
    remote_config_timeout_seconds: float = 5.0
    # Retries after the first attempt; a timeout is never retried
    remote_config_max_retries: int = 2
    remote_config_retry_delay_seconds: float = 0.5

    # =========================================================================
    # Advisory Locks
    # =========================================================================

    lock_ttl_seconds: float = 300.0
    lock_max_wait_seconds: float = 30.0
    lock_initial_backoff_seconds: float = 0.25
    lock_max_backoff_seconds: float = 2.0

    # =========================================================================
    # Dashboard Metrics
    # =========================================================================

    trend_window_days: int = 14
    top_drivers_limit: int = 4
    # NPS exports key days as "Feb 9" without a year
    nps_default_year: int = 2026
    price_change_date: str = '2026-02-22'

    # =========================================================================
    # Batch Classification (OpenAI-compatible API)
    # =========================================================================

    classification_concurrency: int = 10
    classification_max_chars: int = 8000
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = 'gpt-4o-mini'

    # =========================================================================
    # HTTP
    # =========================================================================

    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        Tests that change environment variables must call
        ``get_settings.cache_clear()`` afterwards.
    """
    return Settings()
