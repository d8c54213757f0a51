"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Crypto Mover Tracker application, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string (task locks)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class CoinGeckoSettings(BaseSettings):
    """CoinGecko market data settings."""

    model_config = SettingsConfigDict(env_prefix="COINGECKO_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="COINGECKO_API_KEY",
        description="CoinGecko API key (demo keys start with CG-)",
    )
    max_coins: int = Field(
        default=1000,
        alias="MAX_COINS",
        ge=1,
        le=20_000,
        description="Maximum number of coins collected per snapshot",
    )
    page_delay_seconds: float = Field(
        default=1.5,
        alias="COINGECKO_PAGE_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Fixed pause between paginated market requests",
    )
    timeout_seconds: float = Field(
        default=30.0,
        alias="COINGECKO_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="HTTP timeout for CoinGecko requests",
    )


class DetectorSettings(BaseSettings):
    """Mover detection and alert cooldown settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    price_threshold: float = Field(
        default=0.10,
        alias="PRICE_THRESHOLD",
        gt=0.0,
        le=10.0,
        description="24h move threshold as a fraction (0.10 = 10%); the 1h threshold is half of it",
    )
    volume_threshold: float = Field(
        default=2.0,
        alias="VOLUME_THRESHOLD",
        gt=0.0,
        description="Volume spike multiple over baseline (not applied: no volume baseline yet)",
    )
    cooldown_hours: int = Field(
        default=4,
        alias="ALERT_COOLDOWN_HOURS",
        ge=0,
        le=24 * 7,
        description="Hours a coin must wait after an event before it can trigger again",
    )
    max_alerts_per_run: int = Field(
        default=10,
        alias="MAX_ALERTS_PER_RUN",
        ge=0,
        le=100,
        description="Number of top movers forwarded to alerting and forecasting",
    )


class PredictionSettings(BaseSettings):
    """Prediction horizon and evaluation settings."""

    model_config = SettingsConfigDict(env_prefix="PREDICTION_", extra="ignore")

    horizon_hours: int = Field(
        default=24,
        alias="PREDICTION_HORIZON_HOURS",
        ge=1,
        le=24 * 30,
        description="Hours after which a prediction is evaluated",
    )
    expiry_hours: int = Field(
        default=72,
        alias="PREDICTION_EXPIRY_HOURS",
        ge=1,
        le=24 * 90,
        description="Hours past the horizon after which an unpriceable prediction expires",
    )
    history_days: int = Field(
        default=90,
        alias="PREDICTION_HISTORY_DAYS",
        ge=1,
        le=3650,
        description="Lookback window for historical analogues",
    )
    partial_band_percent: float = Field(
        default=2.0,
        alias="PARTIAL_BAND_PERCENT",
        ge=0.0,
        le=100.0,
        description="Wrong-direction moves smaller than this are scored partial",
    )


class ResearchSettings(BaseSettings):
    """LLM catalyst research settings."""

    model_config = SettingsConfigDict(env_prefix="RESEARCH_", extra="ignore")

    anthropic_api_key: SecretStr | None = Field(
        default=None,
        alias="ANTHROPIC_API_KEY",
        description="Anthropic API key; research is disabled without it",
    )
    model: str = Field(
        default="claude-sonnet-4-20250514",
        alias="RESEARCH_MODEL",
        description="Anthropic model used for catalyst research",
    )
    max_tokens: int = Field(
        default=2000,
        alias="RESEARCH_MAX_TOKENS",
        ge=100,
        le=16_000,
    )
    max_per_day: int = Field(
        default=20,
        alias="MAX_RESEARCH_PER_DAY",
        ge=0,
        le=1000,
        description="Daily cap on research reports",
    )
    per_run: int = Field(
        default=5,
        alias="RESEARCH_PER_RUN",
        ge=0,
        le=50,
        description="Top movers researched per collection run",
    )
    max_attempts: int = Field(
        default=2,
        alias="RESEARCH_MAX_ATTEMPTS",
        ge=1,
        le=5,
    )
    cryptopanic_api_key: SecretStr | None = Field(
        default=None,
        alias="CRYPTOPANIC_API_KEY",
        description="Optional CryptoPanic token for news context",
    )

    @property
    def enabled(self) -> bool:
        """Check if research enrichment is enabled."""
        return self.anthropic_api_key is not None


class TelegramSettings(BaseSettings):
    """Telegram notification settings."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_", extra="ignore")

    bot_token: SecretStr | None = Field(
        default=None,
        alias="TELEGRAM_BOT_TOKEN",
        description="Telegram bot token",
    )
    chat_id: str | None = Field(
        default=None,
        alias="TELEGRAM_CHAT_ID",
        description="Telegram chat ID for alerts",
    )

    @property
    def enabled(self) -> bool:
        """Check if Telegram notifications are enabled."""
        return self.bot_token is not None and self.chat_id is not None


class SchedulerSettings(BaseSettings):
    """Scheduled task cadence and retry settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    collect_interval_seconds: int = Field(
        default=300,
        alias="COLLECT_INTERVAL_SECONDS",
        ge=30,
        le=24 * 3600,
    )
    evaluate_hours_utc: str = Field(
        default="3,9,15,21",
        alias="EVALUATE_HOURS_UTC",
        description="Comma-separated UTC hours at which predictions are evaluated",
    )
    collect_max_attempts: int = Field(default=3, alias="COLLECT_MAX_ATTEMPTS", ge=1, le=10)
    evaluate_max_attempts: int = Field(default=2, alias="EVALUATE_MAX_ATTEMPTS", ge=1, le=10)
    retry_base_delay_seconds: float = Field(
        default=5.0,
        alias="TASK_RETRY_BASE_DELAY_SECONDS",
        ge=0.0,
        le=600.0,
    )
    lock_ttl_seconds: int = Field(
        default=900,
        alias="TASK_LOCK_TTL_SECONDS",
        ge=10,
        le=24 * 3600,
        description="TTL of the Redis lock that keeps a task single-instance",
    )

    @field_validator("evaluate_hours_utc")
    @classmethod
    def validate_evaluate_hours(cls, v: str) -> str:
        """Validate the evaluation hour list."""
        try:
            hours = [int(part) for part in v.split(",") if part.strip()]
        except ValueError as e:
            raise ValueError("EVALUATE_HOURS_UTC must be comma-separated integers") from e
        if not hours or any(h < 0 or h > 23 for h in hours):
            raise ValueError("EVALUATE_HOURS_UTC must list hours between 0 and 23")
        return v

    @property
    def evaluate_hours(self) -> tuple[int, ...]:
        """Parsed, sorted evaluation hours."""
        return tuple(sorted({int(part) for part in self.evaluate_hours_utc.split(",") if part.strip()}))


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from crypto_mover_tracker.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.detector.price_threshold)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Nested configuration groups
    #
    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    coingecko: CoinGeckoSettings = Field(
        default_factory=lambda: CoinGeckoSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    detector: DetectorSettings = Field(
        default_factory=lambda: DetectorSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    prediction: PredictionSettings = Field(
        default_factory=lambda: PredictionSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    research: ResearchSettings = Field(
        default_factory=lambda: ResearchSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    telegram: TelegramSettings = Field(
        default_factory=lambda: TelegramSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    api_host: str = Field(
        default="0.0.0.0",
        alias="API_HOST",
        description="Bind address for the read API",
    )
    api_port: int = Field(
        default=8080,
        alias="API_PORT",
        description="HTTP port for the read API",
        ge=1,
        le=65535,
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without sending actual alerts",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url),
            "coingecko": {
                "api_key": "(set)" if self.coingecko.api_key else "(not set)",
                "max_coins": str(self.coingecko.max_coins),
                "page_delay_seconds": str(self.coingecko.page_delay_seconds),
            },
            "detector": {
                "price_threshold": str(self.detector.price_threshold),
                "volume_threshold": str(self.detector.volume_threshold),
                "cooldown_hours": str(self.detector.cooldown_hours),
                "max_alerts_per_run": str(self.detector.max_alerts_per_run),
            },
            "prediction": {
                "horizon_hours": str(self.prediction.horizon_hours),
                "expiry_hours": str(self.prediction.expiry_hours),
                "history_days": str(self.prediction.history_days),
            },
            "research": {
                "enabled": str(self.research.enabled),
                "model": self.research.model,
                "max_per_day": str(self.research.max_per_day),
                "cryptopanic_api_key": "(set)" if self.research.cryptopanic_api_key else "(not set)",
            },
            "scheduler": {
                "collect_interval_seconds": str(self.scheduler.collect_interval_seconds),
                "evaluate_hours_utc": self.scheduler.evaluate_hours_utc,
            },
            "telegram_enabled": str(self.telegram.enabled),
            "log_level": self.log_level,
            "api_port": str(self.api_port),
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(
        self, *, command: Literal["run", "collect", "evaluate", "serve", "init-db"]
    ) -> None:
        """Validate command-specific requirements.

        Alerting commands refuse to run without a delivery channel unless
        DRY_RUN is set.
        """
        if command in ("run", "collect") and not self.dry_run and not self.telegram.enabled:
            raise ValueError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID are required unless DRY_RUN=true")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            # URL has credentials - redact the password
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
