"""Configuration manager mirroring the repository list into the database."""

from datetime import datetime
from typing import Dict, Optional

from .loader import ConfigLoader, load_config_from_env
from .schema import RepositoryConfig, ReposyncConfig
from .settings import AppSettings, get_settings
from ..core.locator import parse_reference
from ..database import DatabaseService, RepositoryCreate, RepositoryResponse, RepositoryUpdate
from ..exceptions import ConfigurationError, InvalidReferenceError
from ..utils.logging import get_logger, log_execution_time


class ConfigManager:
    """Manages configuration loading and synchronization with the database."""

    def __init__(
        self,
        database_service: DatabaseService,
        config_file: Optional[str] = None,
        settings: Optional[AppSettings] = None
    ):
        """Initialize configuration manager.

        Args:
            database_service: Database service for persistence
            config_file: Optional configuration file path
            settings: Application settings
        """
        self.db_service = database_service
        self.settings = settings or get_settings()
        self.config_file = config_file or self.settings.config_file
        self.loader = ConfigLoader()
        self.logger = get_logger(self.__class__.__name__)

        self._config: Optional[ReposyncConfig] = None
        self._config_loaded_at: Optional[datetime] = None

    @log_execution_time
    def load_config(self, force_reload: bool = False) -> ReposyncConfig:
        """Load configuration from file or the default locations.

        Raises:
            ConfigurationError: If the configuration cannot be loaded
        """
        if self._config and not force_reload:
            return self._config

        if self.config_file:
            self._config = self.loader.load_from_file(self.config_file)
        else:
            self._config = load_config_from_env()

        self._config_loaded_at = datetime.now()
        self.loader.validate_config(self._config)

        self.logger.info(
            "Configuration loaded successfully",
            repositories_count=len(self._config.repositories),
            environment=self._config.environment,
            config_file=self.config_file
        )
        return self._config

    def get_config(self) -> ReposyncConfig:
        return self.load_config()

    def reload_config(self) -> ReposyncConfig:
        return self.load_config(force_reload=True)

    def to_create(self, repository: RepositoryConfig, config: ReposyncConfig) -> RepositoryCreate:
        """Turn a configured entry into a database record without remote calls.

        Raises:
            ConfigurationError: If the entry does not name an owner
        """
        try:
            owner, repo, parsed_branch = parse_reference(repository.repository)
        except InvalidReferenceError as e:
            raise ConfigurationError(str(e)) from e

        if owner is None:
            raise ConfigurationError(
                f"Configured repository {repository.repository!r} must include the owner (owner/repo)"
            )

        documents_root = self.settings.github.documents_root.rstrip("/")
        return RepositoryCreate(
            owner=owner,
            repo=repo,
            local_path=repository.local_path or f"{documents_root}/github/{repo}",
            branch=repository.branch or parsed_branch or self.settings.github.default_branch,
            schedule_cron=config.effective_cron(repository),
            enabled=repository.enabled
        )

    @log_execution_time
    def sync_to_database(self) -> Dict[str, int]:
        """Mirror configured repositories into the database.

        Returns:
            Dictionary with sync statistics
        """
        config = self.load_config()

        stats = {
            "repositories_added": 0,
            "repositories_updated": 0,
            "repositories_skipped": 0,
            "repositories_invalid": 0,
            "repositories_disabled": 0
        }

        existing = {r.full_name: r for r in self.db_service.get_all_repositories(enabled_only=False)}
        configured = set()

        for repository in config.repositories:
            try:
                create = self.to_create(repository, config)
            except ConfigurationError as e:
                stats["repositories_invalid"] += 1
                self.logger.warning("Skipping invalid repository entry", entry=repository.repository, error=str(e))
                continue

            configured.add(create.full_name)
            current = existing.get(create.full_name)

            if current is None:
                self.db_service.create_repository(create)
                stats["repositories_added"] += 1
                self.logger.info("Created repository from configuration", full_name=create.full_name)
            elif self._needs_update(current, create):
                self.db_service.update_repository(
                    create.full_name,
                    RepositoryUpdate(
                        local_path=create.local_path,
                        branch=create.branch,
                        schedule_cron=create.schedule_cron,
                        enabled=create.enabled
                    )
                )
                stats["repositories_updated"] += 1
                self.logger.info("Updated repository from configuration", full_name=create.full_name)
            else:
                stats["repositories_skipped"] += 1

        # Entries removed from the file are only disabled in production
        if config.environment == "production":
            for full_name, record in existing.items():
                if full_name not in configured and record.enabled:
                    self.db_service.update_repository(full_name, RepositoryUpdate(enabled=False))
                    stats["repositories_disabled"] += 1
                    self.logger.info("Disabled repository not in configuration", full_name=full_name)

        self.logger.info("Configuration sync completed", stats=stats)
        return stats

    @log_execution_time
    def export_from_database(self) -> ReposyncConfig:
        """Export the current database state as configuration."""
        base = self._config or ReposyncConfig()
        repositories = [
            RepositoryConfig(
                repository=record.full_name,
                local_path=record.local_path,
                branch=record.branch,
                schedule_cron=record.schedule_cron,
                enabled=record.enabled
            )
            for record in self.db_service.get_all_repositories(enabled_only=False)
        ]
        return base.model_copy(update={"repositories": repositories, "updated_at": datetime.now()})

    def save_config(self, config: ReposyncConfig, file_path: Optional[str] = None, format: str = 'yaml'):
        target = file_path or self.config_file
        if not target:
            raise ConfigurationError("No configuration file path given")
        self.loader.save_to_file(config, target, format)

    @staticmethod
    def _needs_update(current: RepositoryResponse, wanted: RepositoryCreate) -> bool:
        return (
            current.local_path != wanted.local_path
            or current.branch != wanted.branch
            or current.schedule_cron != wanted.schedule_cron
            or current.enabled != wanted.enabled
        )
