"""Application configuration settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GitHubSettings(BaseSettings):
    """GitHub REST API configuration."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_")

    token: str = Field(default="", description="Bearer token used for every remote call")
    token_file: Optional[str] = Field(default=None, description="File holding the token")
    api_url: str = Field(default="https://api.github.com")
    codeload_url: str = Field(default="https://codeload.github.com")
    api_version: str = Field(default="2022-11-28")
    user_agent: str = Field(default="reposync/1.0 (+https://github.com)")
    timeout_seconds: float = Field(default=60.0)
    default_branch: str = Field(default="main", description="Used when the default branch lookup fails")
    documents_root: str = Field(default="/Documents", description="Root for synthesized local paths")


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field(default="sqlite:///./data/reposync.db")


class SchedulingSettings(BaseSettings):
    """Scheduling configuration."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULE_")

    tick_seconds: int = Field(default=60)
    default_cron: str = Field(default="*/60 * * * *")
    gap_correction_enabled: bool = Field(default=True)
    fallback_interval_hours: int = Field(default=24)
    max_lookback_days: int = Field(default=31)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file_path: Optional[str] = Field(default="./logs/reposync.log")


class WebSettings(BaseSettings):
    """Health/status endpoint configuration."""

    model_config = SettingsConfigDict(env_prefix="WEB_")

    enabled: bool = Field(default=True)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    name: str = Field(default="Reposync")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    state_dir_name: str = Field(default=".git", description="Reserved metadata directory under each local root")
    config_file: Optional[str] = Field(default=None, description="Managed repositories file")

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    scheduling: SchedulingSettings = Field(default_factory=SchedulingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    web: WebSettings = Field(default_factory=WebSettings)


_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
