"""Database operations and repository classes."""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, desc
from sqlalchemy.orm import Session

from .models import (
    RepositoryModel, SyncLogModel,
    RepositoryCreate, RepositoryUpdate,
    SyncLogCreate, SyncLogUpdate,
    SyncStatus, utcnow
)
from ..utils.logging import get_logger, log_execution_time


logger = get_logger("database.operations")


class ManagedRepoRepository:
    """Repository for managed repository records."""

    def __init__(self, session: Session):
        self.session = session

    @log_execution_time
    def create(self, repo_data: RepositoryCreate) -> RepositoryModel:
        """Register a new repository."""
        record = RepositoryModel(
            full_name=repo_data.full_name,
            owner=repo_data.owner,
            repo=repo_data.repo,
            local_path=repo_data.local_path,
            branch=repo_data.branch,
            schedule_cron=repo_data.schedule_cron,
            enabled=repo_data.enabled
        )

        self.session.add(record)
        self.session.flush()  # Get the ID without committing

        logger.info(
            "Repository created",
            repository_id=record.id,
            full_name=record.full_name,
            branch=record.branch
        )

        return record

    @log_execution_time
    def get_by_id(self, repository_id: int) -> Optional[RepositoryModel]:
        """Get repository by ID."""
        return self.session.query(RepositoryModel).filter(RepositoryModel.id == repository_id).first()

    @log_execution_time
    def get_by_full_name(self, full_name: str) -> Optional[RepositoryModel]:
        """Get repository by ``owner/repo``."""
        return self.session.query(RepositoryModel).filter(RepositoryModel.full_name == full_name).first()

    @log_execution_time
    def get_all(self, enabled_only: bool = True) -> List[RepositoryModel]:
        """Get all repositories."""
        query = self.session.query(RepositoryModel)
        if enabled_only:
            query = query.filter(RepositoryModel.enabled == True)  # noqa: E712
        return query.order_by(RepositoryModel.created_at, RepositoryModel.id).all()

    @log_execution_time
    def update(self, full_name: str, update_data: RepositoryUpdate) -> Optional[RepositoryModel]:
        """Update a repository."""
        record = self.get_by_full_name(full_name)
        if not record:
            return None

        update_dict = update_data.model_dump(exclude_unset=True)
        for field, value in update_dict.items():
            setattr(record, field, value)

        record.updated_at = utcnow()

        logger.info("Repository updated", full_name=full_name, updated_fields=list(update_dict.keys()))

        return record

    @log_execution_time
    def update_sync_status(
        self,
        full_name: str,
        status: SyncStatus,
        sync_time: Optional[datetime] = None,
        revision: Optional[str] = None
    ) -> bool:
        """Record the outcome of an operation.

        ``last_sync_at`` only moves on success, since it feeds gap correction.
        """
        record = self.get_by_full_name(full_name)
        if not record:
            return False

        record.last_sync_status = status.value
        if status == SyncStatus.COMPLETED:
            record.last_sync_at = sync_time or utcnow()
            if revision:
                record.last_revision = revision
        record.updated_at = utcnow()

        logger.info(
            "Repository sync status updated",
            full_name=full_name,
            status=status.value,
            sync_time=record.last_sync_at
        )

        return True

    @log_execution_time
    def delete(self, full_name: str) -> bool:
        """Delete a repository and its sync history."""
        record = self.get_by_full_name(full_name)
        if not record:
            return False

        self.session.delete(record)
        logger.info("Repository deleted", full_name=full_name)

        return True


class SyncLogRepository:
    """Repository for sync log operations."""

    def __init__(self, session: Session):
        self.session = session

    @log_execution_time
    def create(self, log_data: SyncLogCreate) -> SyncLogModel:
        """Create a new sync log."""
        sync_log = SyncLogModel(
            repository_id=log_data.repository_id,
            operation=log_data.operation,
            sync_status=SyncStatus.IN_PROGRESS.value
        )

        self.session.add(sync_log)
        self.session.flush()

        return sync_log

    @log_execution_time
    def update(self, sync_log_id: int, update_data: SyncLogUpdate) -> Optional[SyncLogModel]:
        """Update a sync log."""
        sync_log = self.session.query(SyncLogModel).filter(SyncLogModel.id == sync_log_id).first()
        if not sync_log:
            return None

        update_dict = update_data.model_dump(exclude_unset=True)
        for field, value in update_dict.items():
            if isinstance(value, SyncStatus):
                value = value.value
            setattr(sync_log, field, value)

        return sync_log

    @log_execution_time
    def get_recent_logs(self, repository_id: int, limit: int = 10) -> List[SyncLogModel]:
        """Get recent sync logs for a repository."""
        return self.session.query(SyncLogModel).filter(
            SyncLogModel.repository_id == repository_id
        ).order_by(desc(SyncLogModel.sync_started_at), desc(SyncLogModel.id)).limit(limit).all()

    @log_execution_time
    def get_failed_logs(self, hours: int = 24) -> List[SyncLogModel]:
        """Get failed sync logs within specified hours."""
        cutoff_time = utcnow() - timedelta(hours=hours)
        return self.session.query(SyncLogModel).filter(
            and_(
                SyncLogModel.sync_status == SyncStatus.FAILED.value,
                SyncLogModel.sync_started_at > cutoff_time
            )
        ).order_by(desc(SyncLogModel.sync_started_at)).all()


def get_repository_repository(session: Session) -> ManagedRepoRepository:
    """Get repository record operations for the session."""
    return ManagedRepoRepository(session)


def get_sync_log_repository(session: Session) -> SyncLogRepository:
    """Get sync log operations for the session."""
    return SyncLogRepository(session)
