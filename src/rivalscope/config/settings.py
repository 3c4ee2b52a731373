"""Application settings, read from RIVALSCOPE_* environment variables and .env."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
SEVERITY_NAMES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
HASH_ALGORITHMS = ("sha256", "blake3")


def _one_of(value: str, allowed: tuple[str, ...], label: str) -> str:
    if value not in allowed:
        raise ValueError(f"{label} must be one of: {', '.join(allowed)}")
    return value


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite:///./data/rivalscope.db", min_length=1)
    echo: bool = False
    pool_size: int = Field(default=10, gt=0)
    max_overflow: int = Field(default=20, ge=0)


class FetcherSettings(BaseModel):
    """HTTP fetching limits; ``timeout`` is in seconds."""

    timeout: float = Field(default=20.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    max_concurrency: int = Field(default=4, gt=0)
    max_content_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    cache_ttl_seconds: int = Field(default=3600, ge=0)
    user_agent: str = "Mozilla/5.0 (compatible; RivalScopeBot/1.0)"


class TrackingSettings(BaseModel):
    """Sitemap discovery and SMART-mode defaults."""

    default_max_signals: int = Field(default=8, gt=0)
    sitemap_max_urls: int = Field(default=5000, gt=0)
    sitemap_index_depth: int = Field(default=1, ge=0)
    section_fallback_cost: int = Field(default=10, gt=0)
    section_max_fetch: int = Field(default=25, gt=0)
    sitemap_refresh_hours: int = Field(default=24, gt=0)


class DetectionSettings(BaseModel):
    word_change_threshold: int = Field(default=50, ge=0)
    major_word_change_threshold: int = Field(default=200, ge=0)
    hash_algorithm: str = "sha256"

    @field_validator("hash_algorithm")
    @classmethod
    def validate_hash_algorithm(cls, v):
        return _one_of(v.lower(), HASH_ALGORITHMS, "Hash algorithm")


class NotificationSettings(BaseModel):
    """Slack delivery; notifications go to the log only while the token is empty."""

    slack_bot_token: SecretStr = SecretStr("")
    slack_channels: list[str] = Field(default_factory=list)
    min_severity: str = "HIGH"
    app_url: str = "http://localhost:3000"

    @field_validator("min_severity")
    @classmethod
    def validate_min_severity(cls, v):
        return _one_of(v.upper(), SEVERITY_NAMES, "Minimum severity")


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RIVALSCOPE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = False

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        return _one_of(v.upper(), LOG_LEVELS, "Log level")


@lru_cache
def get_settings() -> AppSettings:
    """Settings for this process, loaded once."""
    try:
        return AppSettings()
    except ValueError as e:
        raise ConfigError(f"Failed to load settings: {e}") from e


def reload_settings() -> AppSettings:
    get_settings.cache_clear()
    return get_settings()


def validate_settings(settings: AppSettings) -> None:
    """Check cross-field constraints and prepare the SQLite data directory.

    Raises:
        ConfigError: If the settings cannot be used as given
    """
    detection = settings.detection
    if detection.major_word_change_threshold <= detection.word_change_threshold:
        raise ConfigError(
            "detection.major_word_change_threshold must exceed word_change_threshold"
        )

    url = settings.database.url
    if url.startswith("sqlite:") and ":memory:" not in url:
        db_dir = Path(url.split("///", 1)[-1]).parent
        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create database directory: {e}") from e
