"""Configuration schema for managed repositories."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _check_cron(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = " ".join(value.split())
    if not value:
        return None
    if len(value.split(" ")) != 5:
        raise ValueError("Cron expression must have 5 fields: minute hour day month weekday")
    return value


class RepositoryConfig(BaseModel):
    """One repository kept in sync with a local directory."""

    repository: str = Field(..., description="owner/repo, owner/repo/tree/<branch> or a GitHub URL")
    local_path: Optional[str] = Field(None, description="Local directory (defaults under the documents root)")
    branch: Optional[str] = Field(None, description="Branch to sync (defaults to the reference's branch or main)")
    schedule_cron: Optional[str] = Field(None, description="5-field cron expression; None means manual only")
    enabled: bool = Field(default=True, description="Whether this repository is synced")

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v):
        if not v or not v.strip():
            raise ValueError("Repository reference must not be empty")
        return v.strip()

    @field_validator("schedule_cron")
    @classmethod
    def validate_schedule_cron(cls, v):
        return _check_cron(v)


class ReposyncConfig(BaseModel):
    """Root configuration file contents."""

    # Metadata
    version: str = Field(default="1.0.0", description="Configuration version")
    created_at: datetime = Field(default_factory=datetime.now, description="When config was created")
    updated_at: datetime = Field(default_factory=datetime.now, description="When config was last updated")

    environment: str = Field(default="development", description="Environment (development, staging, production)")

    repositories: List[RepositoryConfig] = Field(default_factory=list, description="Managed repositories")

    default_cron: Optional[str] = Field(None, description="Cron applied to repositories without their own")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (json, console)")

    database_url: Optional[str] = Field(None, description="Database URL override")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        valid_envs = ['development', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()

    @field_validator("default_cron")
    @classmethod
    def validate_default_cron(cls, v):
        return _check_cron(v)

    def get_active_repositories(self) -> List[RepositoryConfig]:
        return [r for r in self.repositories if r.enabled]

    def get_scheduled_repositories(self) -> List[RepositoryConfig]:
        """Active repositories with an effective cron expression."""
        return [r for r in self.get_active_repositories() if r.schedule_cron or self.default_cron]

    def effective_cron(self, repository: RepositoryConfig) -> Optional[str]:
        return repository.schedule_cron or self.default_cron
