"""Managed repositories and serialized engine operations."""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from .locator import RepositoryReference
from .pull import ProgressCallback
from .results import StatusReport, SyncResult, SyncStats
from .sync_engine import (
    DEFAULT_PUSH_MESSAGE,
    DEFAULT_SYNC_MESSAGE,
    FORCE_MODE_LOCAL,
    FORCE_MODE_REMOTE,
    SyncEngine,
)
from ..api_clients.base import BaseRemoteClient
from ..config.settings import AppSettings, get_settings
from ..database import (
    DatabaseService,
    RepositoryCreate,
    RepositoryResponse,
    RepositoryUpdate,
    SyncStatus,
)
from ..exceptions import ReposyncError
from ..utils.logging import get_logger, log_async_execution_time


OPERATIONS = ("pull", "push", "sync", "force_remote", "force_local")


class RepositoryConnector:
    """Runs engine operations one at a time per local path and branch.

    Also keeps the list of managed repositories, their schedules and their
    last successful sync time in the database.
    """

    def __init__(
        self,
        client: BaseRemoteClient,
        database_service: DatabaseService,
        settings: Optional[AppSettings] = None,
        engine: Optional[SyncEngine] = None
    ):
        """Initialize the repository connector.

        Args:
            client: Remote repository client
            database_service: Database service for persistence
            settings: Application settings
            engine: Sync engine (built from ``client`` when omitted)
        """
        self.settings = settings or get_settings()
        self.db_service = database_service
        self.engine = engine or SyncEngine(client, self.settings)
        self.logger = get_logger(self.__class__.__name__)

        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

        self.logger.info("Repository connector initialized")

    def lock_for(self, local_path: str, branch: str) -> asyncio.Lock:
        """Return the lock guarding one local path and branch."""
        key = (local_path, branch)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def is_busy(self, local_path: str, branch: str) -> bool:
        lock = self._locks.get((local_path, branch))
        return lock is not None and lock.locked()

    async def _serialized(
        self,
        ref: RepositoryReference,
        operation: Callable[[], Awaitable]
    ):
        lock = self.lock_for(ref.local_path, ref.branch)
        if lock.locked():
            self.logger.info(
                "Waiting for running operation",
                repository=ref.full_name,
                branch=ref.branch,
                local_path=ref.local_path
            )
        async with lock:
            return await operation()

    # Ad-hoc operations

    async def pull(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        ref = await self.engine.resolve(reference, local_path, branch)
        return await self._serialized(
            ref, lambda: self.engine.pull(ref.full_name, ref.local_path, ref.branch, progress)
        )

    async def push(
        self,
        reference: str,
        local_path: Optional[str] = None,
        message: str = DEFAULT_PUSH_MESSAGE,
        branch: Optional[str] = None
    ) -> SyncResult:
        ref = await self.engine.resolve(reference, local_path, branch)
        return await self._serialized(
            ref, lambda: self.engine.push(ref.full_name, ref.local_path, message, ref.branch)
        )

    async def sync(
        self,
        reference: str,
        local_path: Optional[str] = None,
        message: str = DEFAULT_SYNC_MESSAGE,
        branch: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        ref = await self.engine.resolve(reference, local_path, branch)
        return await self._serialized(
            ref, lambda: self.engine.sync(ref.full_name, ref.local_path, message, ref.branch, progress)
        )

    async def force_sync(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None,
        mode: str = FORCE_MODE_REMOTE,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        ref = await self.engine.resolve(reference, local_path, branch)
        return await self._serialized(
            ref, lambda: self.engine.force_sync(ref.full_name, ref.local_path, ref.branch, mode, progress)
        )

    async def fetch_status(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None
    ) -> StatusReport:
        ref = await self.engine.resolve(reference, local_path, branch)
        return await self._serialized(
            ref, lambda: self.engine.fetch_status(ref.full_name, ref.local_path, ref.branch)
        )

    # Managed repositories

    @log_async_execution_time
    async def add_repository(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None,
        schedule_cron: Optional[str] = None,
        enabled: bool = True
    ) -> RepositoryResponse:
        """Resolve ``reference`` and remember it under ``owner/repo``.

        Registering a repository that is already known updates its path,
        branch and schedule.
        """
        ref = await self.engine.resolve(reference, local_path, branch)

        record = self.db_service.upsert_repository(
            RepositoryCreate(
                owner=ref.owner,
                repo=ref.repo,
                local_path=ref.local_path,
                branch=ref.branch,
                schedule_cron=schedule_cron,
                enabled=enabled
            )
        )

        self.logger.info(
            "Repository added",
            full_name=record.full_name,
            branch=record.branch,
            local_path=record.local_path,
            schedule_cron=record.schedule_cron
        )
        return record

    def remove_repository(self, full_name: str) -> bool:
        removed = self.db_service.delete_repository(full_name)
        if removed:
            self.logger.info("Repository removed", full_name=full_name)
        return removed

    def get_repository(self, full_name: str) -> Optional[RepositoryResponse]:
        return self.db_service.get_repository(full_name)

    def list_repositories(self, enabled_only: bool = False) -> List[RepositoryResponse]:
        return self.db_service.get_all_repositories(enabled_only=enabled_only)

    def set_schedule(self, full_name: str, schedule_cron: Optional[str]) -> Optional[RepositoryResponse]:
        """Set or clear (``None``) the cron expression of one repository."""
        return self.db_service.update_repository(full_name, RepositoryUpdate(schedule_cron=schedule_cron))

    def schedule_all(self, schedule_cron: Optional[str]) -> int:
        """Apply one cron expression to every managed repository."""
        updated = 0
        for record in self.list_repositories():
            if self.set_schedule(record.full_name, schedule_cron):
                updated += 1
        self.logger.info("Schedule applied to all repositories", schedule_cron=schedule_cron, updated=updated)
        return updated

    @log_async_execution_time
    async def sync_repository(
        self,
        full_name: str,
        operation: str = "sync",
        message: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Run one operation on a managed repository and record the outcome.

        Engine errors are captured in the returned result and in the sync
        log instead of being raised.

        Raises:
            ValueError: If the repository is unknown or the operation invalid
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")

        record = self.db_service.get_repository(full_name)
        if not record:
            raise ValueError(f"Repository {full_name} not found")

        ref = RepositoryReference(
            owner=record.owner,
            repo=record.repo,
            branch=record.branch,
            local_path=record.local_path
        )

        start_time = time.monotonic()
        sync_log_id = self.db_service.start_sync_log(record.id, operation)

        try:
            result = await self._serialized(ref, lambda: self._run(ref, operation, message, progress))
        except Exception as e:
            result = self._failed_result(ref, operation, e, time.monotonic() - start_time)
            log = self.logger.error if isinstance(e, ReposyncError) else self.logger.exception
            log(
                "Repository operation failed",
                full_name=full_name,
                operation=operation,
                error_type=type(e).__name__,
                error=str(e)
            )

        status = SyncStatus.COMPLETED if result.success else SyncStatus.FAILED
        self.db_service.complete_sync_log(sync_log_id, status, result.to_dict(), result.error_message)
        self.db_service.update_repository_sync_status(full_name, status, revision=result.revision)

        return result

    @staticmethod
    def _failed_result(ref: RepositoryReference, operation: str, error: Exception, duration: float) -> SyncResult:
        return SyncResult(
            operation=operation,
            repository=ref.full_name,
            branch=ref.branch,
            local_path=ref.local_path,
            success=False,
            error_message=str(error) or type(error).__name__,
            duration=duration
        )

    async def _run(
        self,
        ref: RepositoryReference,
        operation: str,
        message: Optional[str],
        progress: Optional[ProgressCallback]
    ) -> SyncResult:
        if operation == "pull":
            return await self.engine.pull(ref.full_name, ref.local_path, ref.branch, progress)
        if operation == "push":
            return await self.engine.push(
                ref.full_name, ref.local_path, message or DEFAULT_PUSH_MESSAGE, ref.branch
            )
        if operation == "sync":
            return await self.engine.sync(
                ref.full_name, ref.local_path, message or DEFAULT_SYNC_MESSAGE, ref.branch, progress
            )
        mode = FORCE_MODE_REMOTE if operation == "force_remote" else FORCE_MODE_LOCAL
        return await self.engine.force_sync(ref.full_name, ref.local_path, ref.branch, mode, progress)

    @log_async_execution_time
    async def sync_all(self, operation: str = "sync") -> SyncStats:
        """Run ``operation`` on every enabled repository.

        Repositories are processed concurrently; one failure does not stop
        the others.
        """
        start_time = time.monotonic()
        records = self.list_repositories(enabled_only=True)

        self.logger.info("Starting sync of all repositories", repositories=len(records), operation=operation)

        outcomes = await asyncio.gather(
            *(self.sync_repository(record.full_name, operation) for record in records),
            return_exceptions=True
        )

        results = []
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                # Raised before the operation started, e.g. the record vanished
                self.logger.error("Repository skipped", full_name=record.full_name, error=str(outcome))
                ref = RepositoryReference(record.owner, record.repo, record.branch, record.local_path)
                outcome = self._failed_result(ref, operation, outcome, 0.0)
            results.append(outcome)

        stats = SyncStats(
            total_repositories=len(records),
            successful_syncs=sum(1 for r in results if r.success),
            failed_syncs=sum(1 for r in results if not r.success),
            total_files_changed=sum(r.files_changed for r in results),
            total_duration=time.monotonic() - start_time,
            results=list(results)
        )

        self.logger.info(
            "All repositories synced",
            total=stats.total_repositories,
            successful=stats.successful_syncs,
            failed=stats.failed_syncs,
            success_rate=f"{stats.success_rate:.1f}%"
        )
        return stats
