"""Bookkeeping database for managed repositories and their sync history."""

from .database import DatabaseManager, close_database, get_db_manager, init_database
from .models import (
    RepositoryCreate,
    RepositoryModel,
    RepositoryResponse,
    RepositoryUpdate,
    SyncLogCreate,
    SyncLogModel,
    SyncLogResponse,
    SyncLogUpdate,
    SyncStatus,
)
from .operations import (
    ManagedRepoRepository,
    SyncLogRepository,
    get_repository_repository,
    get_sync_log_repository,
)
from .service import DatabaseService, get_database_service

__all__ = [
    "DatabaseManager", "get_db_manager", "init_database", "close_database",
    "RepositoryModel", "RepositoryCreate", "RepositoryUpdate", "RepositoryResponse",
    "SyncLogModel", "SyncLogCreate", "SyncLogUpdate", "SyncLogResponse", "SyncStatus",
    "ManagedRepoRepository", "SyncLogRepository",
    "get_repository_repository", "get_sync_log_repository",
    "DatabaseService", "get_database_service",
]
