"""Database models for managed repositories and sync history."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncStatus(str, Enum):
    """Outcome of the last operation on a repository."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# SQLAlchemy Models (Database Tables)

class RepositoryModel(Base):
    """A repository kept in sync with a local directory."""

    __tablename__ = "repositories"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=False, unique=True, index=True)  # owner/repo
    owner = Column(String(100), nullable=False)
    repo = Column(String(100), nullable=False)
    local_path = Column(Text, nullable=False)
    branch = Column(String(200), nullable=False)
    schedule_cron = Column(String(100), nullable=True)
    enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Gap correction input
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_status = Column(String(20), default=SyncStatus.PENDING.value, nullable=False)
    last_revision = Column(String(100), nullable=True)

    sync_logs = relationship("SyncLogModel", back_populates="repository", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<RepositoryModel(id={self.id}, full_name='{self.full_name}', branch='{self.branch}')>"


class SyncLogModel(Base):
    """One engine operation run against a managed repository."""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    repository_id = Column(Integer, ForeignKey("repositories.id"), nullable=False, index=True)
    operation = Column(String(30), nullable=False)

    sync_started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    sync_completed_at = Column(DateTime(timezone=True), nullable=True)
    sync_status = Column(String(20), default=SyncStatus.IN_PROGRESS.value, nullable=False)

    # Results
    revision = Column(String(100), nullable=True)
    files_written = Column(Integer, default=0, nullable=False)
    files_pruned = Column(Integer, default=0, nullable=False)
    files_pushed = Column(Integer, default=0, nullable=False)
    files_deleted_remote = Column(Integer, default=0, nullable=False)

    error_message = Column(Text, nullable=True)
    execution_time_seconds = Column(Float, nullable=True)

    repository = relationship("RepositoryModel", back_populates="sync_logs")

    def __repr__(self):
        return f"<SyncLogModel(id={self.id}, repository_id={self.repository_id}, status='{self.sync_status}')>"


# Pydantic Models (Transfer Objects)

class _AwareTimestamps(BaseModel):
    """SQLite drops tzinfo on read; stored values are always UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class RepositoryCreate(BaseModel):
    """Pydantic model for registering a repository."""
    owner: str
    repo: str
    local_path: str
    branch: str
    schedule_cron: Optional[str] = None
    enabled: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class RepositoryUpdate(BaseModel):
    """Pydantic model for updating a repository."""
    local_path: Optional[str] = None
    branch: Optional[str] = None
    schedule_cron: Optional[str] = None
    enabled: Optional[bool] = None


class RepositoryResponse(_AwareTimestamps):
    """Pydantic model for repository response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    owner: str
    repo: str
    local_path: str
    branch: str
    schedule_cron: Optional[str] = None
    enabled: bool
    created_at: datetime
    updated_at: datetime
    last_sync_at: Optional[datetime] = None
    last_sync_status: str
    last_revision: Optional[str] = None


class SyncLogCreate(BaseModel):
    """Pydantic model for starting a sync log."""
    repository_id: int
    operation: str


class SyncLogUpdate(BaseModel):
    """Pydantic model for completing a sync log."""
    sync_completed_at: Optional[datetime] = None
    sync_status: Optional[SyncStatus] = None
    revision: Optional[str] = None
    files_written: Optional[int] = None
    files_pruned: Optional[int] = None
    files_pushed: Optional[int] = None
    files_deleted_remote: Optional[int] = None
    error_message: Optional[str] = None
    execution_time_seconds: Optional[float] = None


class SyncLogResponse(_AwareTimestamps):
    """Pydantic model for sync log response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    repository_id: int
    operation: str
    sync_started_at: datetime
    sync_completed_at: Optional[datetime] = None
    sync_status: str
    revision: Optional[str] = None
    files_written: int
    files_pruned: int
    files_pushed: int
    files_deleted_remote: int
    error_message: Optional[str] = None
    execution_time_seconds: Optional[float] = None
