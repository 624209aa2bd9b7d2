"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Required fields (e.g. DATABASE_URL) are validated at
load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    All settings have defaults; validate_required checks the combinations
    that only make sense together (e.g. TTLs must be positive).
    """

    # App
    app_name: str = "analytics-cache"
    app_version: str = "1.0.0"
    debug: bool = False

    # Analytics database (read-only reporting tables + data source catalog)
    database_url: str = ""
    database_echo: bool = False
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None

    # Redis Cache
    redis_enabled: bool = True
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None

    # Analytics cache: data refreshes 1-2x daily, so 48h staleness is the ceiling.
    cache_ttl_analytics: int = 172_800
    cache_warm_lock_ttl: int = 300
    cache_auto_warm_enabled: bool = False
    cache_auto_warm_cooldown: int = 4 * 60 * 60
    cache_stats_sample_size: int = 50
    cache_stats_largest_entries: int = 10

    # Management endpoints: X-Cache-Admin-Token must match (503 when unset).
    cache_admin_token: SecretStr | None = None

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_required(self) -> "Settings":
        """Validate cache timings and telemetry exporter.

        - TTLs and lock expiry must be positive (a zero lock TTL would
          never expire a crashed warmer's lock in SET NX EX).
        - OTLP exporter needs an endpoint.
        """
        for name in ("cache_ttl_analytics", "cache_warm_lock_ttl", "cache_auto_warm_cooldown"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be a positive number of seconds")
        if self.cache_stats_sample_size < 1:
            raise ValueError("CACHE_STATS_SAMPLE_SIZE must be at least 1")
        if self.telemetry_exporter == "otlp" and not self.telemetry_otlp_endpoint:
            raise ValueError(
                "TELEMETRY_OTLP_ENDPOINT is required when TELEMETRY_EXPORTER is 'otlp'."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
