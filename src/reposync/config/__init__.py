"""Configuration package for reposync.

``ConfigManager`` lives in ``reposync.config.manager``; it depends on the
database layer, which in turn reads these settings.
"""

from .settings import (
    GitHubSettings,
    DatabaseSettings,
    SchedulingSettings,
    LoggingSettings,
    WebSettings,
    AppSettings,
    get_settings,
    reset_settings
)

from .schema import (
    RepositoryConfig,
    ReposyncConfig
)

from .loader import (
    ConfigLoader,
    load_config_from_env
)

__all__ = [
    "GitHubSettings",
    "DatabaseSettings",
    "SchedulingSettings",
    "LoggingSettings",
    "WebSettings",
    "AppSettings",
    "get_settings",
    "reset_settings",

    "RepositoryConfig",
    "ReposyncConfig",

    "ConfigLoader",
    "load_config_from_env"
]
