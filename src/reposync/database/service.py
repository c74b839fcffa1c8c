"""High-level database service layer."""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from .database import DatabaseManager, get_db_manager
from .models import (
    RepositoryCreate, RepositoryUpdate, RepositoryResponse,
    SyncLogCreate, SyncLogUpdate, SyncLogResponse,
    SyncLogModel, RepositoryModel,
    SyncStatus, utcnow
)
from .operations import get_repository_repository, get_sync_log_repository
from ..utils.logging import get_logger, log_execution_time


logger = get_logger("database.service")


class DatabaseService:
    """High-level database service for reposync operations."""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        with self.db_manager.session_scope() as session:
            yield session

    # Repository operations

    @log_execution_time
    def create_repository(self, repo_data: RepositoryCreate) -> RepositoryResponse:
        """Register a repository."""
        with self.transaction() as session:
            repo = get_repository_repository(session)
            record = repo.create(repo_data)
            session.commit()
            return RepositoryResponse.model_validate(record)

    @log_execution_time
    def upsert_repository(self, repo_data: RepositoryCreate) -> RepositoryResponse:
        """Register a repository, or update path/branch/schedule if already known."""
        with self.transaction() as session:
            repo = get_repository_repository(session)
            if repo.get_by_full_name(repo_data.full_name):
                record = repo.update(
                    repo_data.full_name,
                    RepositoryUpdate(
                        local_path=repo_data.local_path,
                        branch=repo_data.branch,
                        schedule_cron=repo_data.schedule_cron,
                        enabled=repo_data.enabled
                    )
                )
            else:
                record = repo.create(repo_data)
            session.commit()
            return RepositoryResponse.model_validate(record)

    @log_execution_time
    def get_repository(self, full_name: str) -> Optional[RepositoryResponse]:
        """Get repository by ``owner/repo``."""
        with self.transaction() as session:
            repo = get_repository_repository(session)
            record = repo.get_by_full_name(full_name)
            return RepositoryResponse.model_validate(record) if record else None

    @log_execution_time
    def get_all_repositories(self, enabled_only: bool = True) -> List[RepositoryResponse]:
        """Get all repositories."""
        with self.transaction() as session:
            repo = get_repository_repository(session)
            return [RepositoryResponse.model_validate(r) for r in repo.get_all(enabled_only=enabled_only)]

    @log_execution_time
    def get_scheduled_repositories(self) -> List[RepositoryResponse]:
        """Get enabled repositories that carry a cron expression."""
        return [r for r in self.get_all_repositories(enabled_only=True) if r.schedule_cron]

    @log_execution_time
    def update_repository(self, full_name: str, update_data: RepositoryUpdate) -> Optional[RepositoryResponse]:
        """Update a repository."""
        with self.transaction() as session:
            repo = get_repository_repository(session)
            record = repo.update(full_name, update_data)
            if record:
                session.commit()
                return RepositoryResponse.model_validate(record)
            return None

    @log_execution_time
    def update_repository_sync_status(
        self,
        full_name: str,
        status: SyncStatus,
        sync_time: Optional[datetime] = None,
        revision: Optional[str] = None
    ) -> bool:
        """Update repository sync status."""
        with self.transaction() as session:
            repo = get_repository_repository(session)
            success = repo.update_sync_status(full_name, status, sync_time, revision)
            if success:
                session.commit()
            return success

    @log_execution_time
    def delete_repository(self, full_name: str) -> bool:
        """Delete a repository and its sync history."""
        with self.transaction() as session:
            repo = get_repository_repository(session)
            success = repo.delete(full_name)
            if success:
                session.commit()
            return success

    # Last-run markers (gap correction input)

    def get_last_run(self, full_name: str) -> Optional[datetime]:
        """Timestamp of the last successful operation, if any."""
        record = self.get_repository(full_name)
        return record.last_sync_at if record else None

    def set_last_run(self, full_name: str, when: Optional[datetime] = None) -> bool:
        return self.update_repository_sync_status(full_name, SyncStatus.COMPLETED, when or utcnow())

    # Sync log operations

    @log_execution_time
    def start_sync_log(self, repository_id: int, operation: str) -> int:
        """Start a new sync log. Returns sync log ID."""
        with self.transaction() as session:
            repo = get_sync_log_repository(session)
            sync_log = repo.create(SyncLogCreate(repository_id=repository_id, operation=operation))
            session.commit()

            logger.info("Sync started", repository_id=repository_id, operation=operation, sync_log_id=sync_log.id)
            return sync_log.id

    @log_execution_time
    def complete_sync_log(
        self,
        sync_log_id: int,
        status: SyncStatus,
        stats: Dict[str, Any],
        error_message: Optional[str] = None
    ) -> bool:
        """Complete a sync log with results."""
        with self.transaction() as session:
            repo = get_sync_log_repository(session)

            update_data = SyncLogUpdate(
                sync_completed_at=utcnow(),
                sync_status=status,
                revision=stats.get("revision"),
                files_written=stats.get("files_written", 0),
                files_pruned=stats.get("files_pruned", 0),
                files_pushed=stats.get("files_pushed", 0),
                files_deleted_remote=stats.get("files_deleted_remote", 0),
                error_message=error_message,
                execution_time_seconds=stats.get("duration")
            )

            sync_log = repo.update(sync_log_id, update_data)
            if sync_log:
                session.commit()

                logger.info(
                    "Sync completed",
                    sync_log_id=sync_log_id,
                    status=status.value,
                    error=error_message
                )
                return True

            return False

    @log_execution_time
    def get_sync_history(self, repository_id: int, limit: int = 10) -> List[SyncLogResponse]:
        """Get sync history for a repository."""
        with self.transaction() as session:
            repo = get_sync_log_repository(session)
            return [SyncLogResponse.model_validate(log) for log in repo.get_recent_logs(repository_id, limit)]

    @log_execution_time
    def get_failed_syncs(self, hours: int = 24) -> List[SyncLogResponse]:
        """Get failed syncs within specified hours."""
        with self.transaction() as session:
            repo = get_sync_log_repository(session)
            return [SyncLogResponse.model_validate(log) for log in repo.get_failed_logs(hours)]

    @log_execution_time
    def get_database_stats(self) -> Dict[str, Any]:
        """Get overall database statistics."""
        with self.transaction() as session:
            return {
                "repositories": {
                    "total": session.query(RepositoryModel).count(),
                    "enabled": session.query(RepositoryModel).filter(
                        RepositoryModel.enabled == True  # noqa: E712
                    ).count(),
                },
                "sync_logs": {
                    "total": session.query(SyncLogModel).count(),
                    "failed": session.query(SyncLogModel).filter(
                        SyncLogModel.sync_status == SyncStatus.FAILED.value
                    ).count(),
                },
            }


# Global service instance
_db_service: Optional[DatabaseService] = None


def get_database_service() -> DatabaseService:
    """Get the global database service instance."""
    global _db_service
    if _db_service is None:
        _db_service = DatabaseService()
    return _db_service
