"""Reading and writing the managed repositories file (YAML or JSON)."""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from .schema import ReposyncConfig
from ..exceptions import ConfigurationError
from ..utils.logging import get_logger


# Environment variable -> top-level config key
ENV_OVERRIDES = {
    "REPOSYNC_DATABASE_URL": "database_url",
    "REPOSYNC_LOG_LEVEL": "log_level",
    "REPOSYNC_LOG_FORMAT": "log_format",
    "REPOSYNC_ENVIRONMENT": "environment",
    "REPOSYNC_DEFAULT_CRON": "default_cron",
}

DEFAULT_LOCATIONS = tuple(
    f"{directory}reposync.{ext}"
    for directory in ("./config/", "./")
    for ext in ("yaml", "yml", "json")
)

_PARSERS: Dict[str, Callable[[str], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.loads,
}


class ConfigLoader:
    """Loads, validates and saves :class:`ReposyncConfig` documents."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, file_path: Union[str, Path]) -> ReposyncConfig:
        """Parse and validate a configuration file.

        An empty file yields an empty configuration.

        Raises:
            ConfigurationError: missing file, unknown suffix, unparsable
                content, or content failing validation.
        """
        path = Path(file_path)
        parser = _PARSERS.get(path.suffix.lower())
        if parser is None:
            raise ConfigurationError(f"Unsupported file format: {path.suffix or path.name}")

        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}") from None
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration {path}: {e}") from e

        try:
            data = parser(raw)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot parse {path}: {e}") from e

        if data is None:
            data = {}
        elif not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping at the top level")

        config = self.load_from_dict(data)
        self.logger.info("Configuration loaded", file_path=str(path),
                         repositories=len(config.repositories), environment=config.environment)
        return config

    def load_from_dict(self, data: Dict[str, Any]) -> ReposyncConfig:
        try:
            return ReposyncConfig(**self._apply_env_overrides(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def save_to_file(self, config: ReposyncConfig, file_path: Union[str, Path], format: str = 'yaml'):
        """Write ``config`` as YAML or JSON, stamping ``updated_at``."""
        fmt = format.lower()
        if fmt not in ("yaml", "json"):
            raise ConfigurationError(f"Unsupported format: {format}")

        document = config.model_copy(update={"updated_at": datetime.now()}).model_dump(mode="json")
        if fmt == "yaml":
            text = yaml.safe_dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True)
        else:
            text = json.dumps(document, indent=2)

        path = Path(file_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration {path}: {e}") from e

        self.logger.info("Configuration saved", file_path=str(path), format=fmt)

    def create_default_config(self) -> ReposyncConfig:
        return ReposyncConfig()

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Overlay ``REPOSYNC_*`` variables (see ``ENV_OVERRIDES``) on ``data``."""
        overrides = {key: os.environ[var] for var, key in ENV_OVERRIDES.items() if os.environ.get(var)}
        if not overrides:
            return data

        self.logger.info("Applied environment variable overrides", overrides=sorted(overrides))
        return {**data, **overrides}

    def validate_config(self, config: ReposyncConfig) -> List[str]:
        """Return non-fatal problems with ``config``; each is also logged."""
        warnings = []

        names = [entry.repository for entry in config.repositories]
        if len(names) != len(set(names)):
            warnings.append("Duplicate repository entries found")

        paths = [entry.local_path for entry in config.repositories if entry.local_path]
        if len(paths) != len(set(paths)):
            warnings.append("Several repositories share one local path")

        if config.environment == "production" and not (os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_TOKEN_FILE")):
            warnings.append("Missing GITHUB_TOKEN or GITHUB_TOKEN_FILE")

        for warning in warnings:
            self.logger.warning("Configuration check", problem=warning)
        return warnings


def find_config_file() -> Optional[str]:
    """``REPOSYNC_CONFIG_FILE`` if it exists, else the first default location present."""
    explicit = os.getenv("REPOSYNC_CONFIG_FILE")
    if explicit:
        if os.path.exists(explicit):
            return explicit
        get_logger("config").warning("Specified config file not found", file=explicit)

    for candidate in DEFAULT_LOCATIONS:
        if os.path.exists(candidate):
            return candidate
    return None


def load_config_from_env() -> ReposyncConfig:
    """Load the configuration file :func:`find_config_file` picks, or an empty one."""
    loader = ConfigLoader()
    config_file = find_config_file()
    if config_file is None:
        loader.logger.info("No configuration file found, using empty configuration")
        return loader.create_default_config()
    return loader.load_from_file(config_file)
