"""Pydantic settings models for configuration management."""

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import ConfigError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class DatabaseSettings(BaseModel):
    """Database configuration settings."""

    url: str = "sqlite:///./data/locwatch.db"
    echo: bool = False

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not v:
            raise ValueError("Database URL cannot be empty")
        return v


class ScrapingSettings(BaseModel):
    """Page fetching configuration."""

    navigation_timeout: int = 30000  # milliseconds
    fetch_timeout: float = 60.0  # seconds, hard cap on one attempt
    max_attempts: int = 3
    backoff_base: float = 2.0
    hash_type: str = "blake3"
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080

    @field_validator("navigation_timeout")
    @classmethod
    def validate_navigation_timeout(cls, v):
        if v <= 0:
            raise ValueError("Navigation timeout must be positive")
        return v

    @field_validator("fetch_timeout")
    @classmethod
    def validate_fetch_timeout(cls, v):
        if v <= 0:
            raise ValueError("Fetch timeout must be positive")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v):
        if v < 1:
            raise ValueError("Max attempts must be at least 1")
        return v

    @field_validator("hash_type")
    @classmethod
    def validate_hash_type(cls, v):
        if v not in ("blake3", "sha256"):
            raise ValueError("Hash type must be blake3 or sha256")
        return v


class DiscoverySettings(BaseModel):
    """Endpoint discovery configuration."""

    sitemap_paths: list[str] = Field(
        default_factory=lambda: [
            "/sitemap.xml",
            "/sitemap_index.xml",
            "/sitemaps.xml",
            "/robots.txt",
        ]
    )
    location_paths: list[str] = Field(
        default_factory=lambda: [
            "/locations",
            "/stores",
            "/branches",
            "/find-us",
            "/find-a-store",
            "/store-finder",
            "/our-locations",
            "/gym-locations",
            "/fitness-centers",
            "/clubs",
            "/centers",
        ]
    )
    locator_paths: list[str] = Field(
        default_factory=lambda: [
            "/store-locator",
            "/find-store",
            "/locator",
            "/store-finder",
            "/find-location",
            "/nearest-store",
        ]
    )
    location_keywords: list[str] = Field(
        default_factory=lambda: [
            "location",
            "address",
            "store",
            "branch",
            "gym",
            "fitness center",
            "find us",
            "visit us",
            "contact",
            "directions",
            "hours",
            "opening times",
        ]
    )
    locator_keywords: list[str] = Field(
        default_factory=lambda: [
            "store locator",
            "find store",
            "search location",
            "enter zip",
            "enter postal code",
            "map",
            "distance",
            "nearest",
            "nearby",
        ]
    )
    location_keyword_threshold: int = 3
    locator_keyword_threshold: int = 1
    probe_attempts: int = 1

    @field_validator("location_keyword_threshold", "locator_keyword_threshold")
    @classmethod
    def validate_threshold(cls, v):
        if v < 1:
            raise ValueError("Keyword thresholds must be at least 1")
        return v


class SchedulerSettings(BaseModel):
    """Periodic sweep configuration. Intervals are in seconds."""

    discovery_interval: int = 6 * 60 * 60
    content_interval: int = 2 * 60 * 60
    health_check_interval: int = 30 * 60
    courtesy_delay: float = 2.0
    site_failure_threshold: int = 3
    timezone: str = "UTC"

    @field_validator("discovery_interval", "content_interval", "health_check_interval")
    @classmethod
    def validate_interval(cls, v):
        if v <= 0:
            raise ValueError("Intervals must be positive")
        return v

    @field_validator("courtesy_delay")
    @classmethod
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError("Courtesy delay cannot be negative")
        return v


class AnalysisSettings(BaseModel):
    """External content analysis service configuration."""

    enabled: bool = True
    base_url: str = "http://localhost:8081"
    path: str = "/ai-analysis"
    timeout: float = 30.0
    high_confidence_threshold: float = 0.7

    @field_validator("high_confidence_threshold")
    @classmethod
    def validate_threshold(cls, v):
        if v < 0.0 or v > 1.0:
            raise ValueError("Confidence threshold must be between 0.0 and 1.0")
        return v


class ApiSettings(BaseModel):
    """HTTP trigger surface configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = False
    sites_file: str = "config.yaml"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    scraping: ScrapingSettings = Field(default_factory=ScrapingSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


_settings: Optional[AppSettings] = None


@lru_cache
def get_settings() -> AppSettings:
    """Get the application settings instance."""
    global _settings

    if _settings is None:
        try:
            _settings = AppSettings()
        except Exception as e:
            raise ConfigError(f"Failed to load settings: {str(e)}") from e

    return _settings


def reload_settings() -> AppSettings:
    """Force reload of settings (useful for testing)."""
    global _settings
    _settings = None
    get_settings.cache_clear()
    return get_settings()


def validate_settings(settings: AppSettings) -> None:
    """Validate settings for common configuration issues."""
    if settings.database.url.startswith("sqlite:") and ":memory:" not in (
        settings.database.url
    ):
        db_path = settings.database.url.split(":///", 1)[-1]
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            try:
                os.makedirs(db_dir, exist_ok=True)
            except OSError as e:
                raise ConfigError(f"Cannot create database directory: {str(e)}") from e
