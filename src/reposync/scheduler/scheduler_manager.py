"""Scheduler manager wiring managed repositories to cron timers."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .cron import should_have_run_since
from .job_scheduler import CronScheduler
from ..config.settings import AppSettings, get_settings
from ..core import RepositoryConnector, SyncResult
from ..database import RepositoryResponse
from ..exceptions import SchedulerError
from ..utils.logging import get_logger, log_async_execution_time


class SchedulerManager:
    """Keeps one cron timer per scheduled repository and backfills missed runs."""

    def __init__(
        self,
        connector: RepositoryConnector,
        cron_scheduler: Optional[CronScheduler] = None,
        settings: Optional[AppSettings] = None
    ):
        """Initialize scheduler manager.

        Args:
            connector: Repository connector running the operations
            cron_scheduler: Timer owner (a new one is created when omitted)
            settings: Application settings
        """
        self.connector = connector
        self.settings = settings or get_settings()
        self.cron_scheduler = cron_scheduler or CronScheduler(self.settings.scheduling)
        self.logger = get_logger(self.__class__.__name__)

        self._is_running = False
        self.start_time: Optional[datetime] = None
        self.last_gap_check: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    @log_async_execution_time
    async def start(self) -> None:
        """Schedule every enabled repository, then catch up on missed runs."""
        if self._is_running:
            self.logger.warning("Scheduler manager is already running")
            return

        try:
            self.cron_scheduler.start()
            self.reload_schedules()
        except Exception as e:
            self.logger.error("Failed to start scheduler manager", error=str(e))
            self.cron_scheduler.shutdown()
            raise SchedulerError(f"Failed to start scheduler manager: {e}") from e

        self._is_running = True
        self.start_time = datetime.now(timezone.utc)

        if self.settings.scheduling.gap_correction_enabled:
            await self.check_missed_syncs()

        self.logger.info(
            "Scheduler manager started successfully",
            scheduled=len(self.cron_scheduler.scheduled_ids())
        )

    async def stop(self) -> None:
        if not self._is_running:
            self.logger.warning("Scheduler manager is not running")
            return

        self._is_running = False
        self.cron_scheduler.shutdown()
        self.logger.info("Scheduler manager stopped successfully")

    def reload_schedules(self) -> int:
        """Replace all timers with those stored in the database."""
        for task_id in self.cron_scheduler.scheduled_ids():
            self.cron_scheduler.stop(task_id)

        records = self.connector.db_service.get_scheduled_repositories()
        for record in records:
            self.schedule_repository(record)

        self.logger.info("Schedules reloaded", scheduled=len(records))
        return len(records)

    def schedule_repository(self, record: RepositoryResponse) -> bool:
        """Start (or restart) the timer of one repository."""
        if not record.schedule_cron or not record.enabled:
            self.cron_scheduler.stop(record.full_name)
            return False

        full_name = record.full_name

        async def run_scheduled_sync():
            await self.connector.sync_repository(full_name)

        self.cron_scheduler.schedule(full_name, record.schedule_cron, run_scheduled_sync)
        return True

    def set_schedule(self, full_name: str, schedule_cron: Optional[str]) -> Optional[RepositoryResponse]:
        """Store a new cron expression and apply it immediately."""
        record = self.connector.set_schedule(full_name, schedule_cron)
        if record is None:
            return None
        self.schedule_repository(record)
        return record

    def schedule_all(self, schedule_cron: Optional[str]) -> int:
        updated = self.connector.schedule_all(schedule_cron)
        self.reload_schedules()
        return updated

    def is_due(self, record: RepositoryResponse, now: Optional[datetime] = None) -> bool:
        """Whether ``record`` missed a run since its last successful sync.

        Never-synced repositories are not due. Repositories without a cron
        expression fall back to a fixed safety interval.
        """
        if record.last_sync_at is None:
            return False

        now = now or datetime.now().astimezone()
        scheduling = self.settings.scheduling

        if record.schedule_cron:
            return should_have_run_since(
                record.schedule_cron,
                record.last_sync_at,
                now,
                scheduling.max_lookback_days
            )
        return now - record.last_sync_at >= timedelta(hours=scheduling.fallback_interval_hours)

    @log_async_execution_time
    async def check_missed_syncs(self, now: Optional[datetime] = None) -> List[SyncResult]:
        """Run a catch-up sync for every enabled repository that missed one."""
        self.last_gap_check = datetime.now(timezone.utc)
        results: List[SyncResult] = []

        for record in self.connector.list_repositories(enabled_only=True):
            if not self.is_due(record, now):
                continue

            self.logger.info(
                "Missed scheduled sync detected, catching up",
                full_name=record.full_name,
                last_sync_at=record.last_sync_at.isoformat(),
                schedule_cron=record.schedule_cron
            )
            results.append(await self.connector.sync_repository(record.full_name))

        self.logger.info("Gap correction finished", caught_up=len(results))
        return results

    async def trigger_sync(self, full_name: str, operation: str = "sync") -> SyncResult:
        """Run one operation now, outside the schedule."""
        try:
            return await self.connector.sync_repository(full_name, operation)
        except ValueError as e:
            raise SchedulerError(f"Failed to trigger {operation} for {full_name}: {e}") from e

    def get_scheduler_status(self) -> Dict[str, Any]:
        uptime = None
        if self.start_time:
            uptime = (datetime.now(timezone.utc) - self.start_time).total_seconds()

        return {
            "is_running": self._is_running,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "uptime_seconds": uptime,
            "last_gap_check": self.last_gap_check.isoformat() if self.last_gap_check else None,
            "scheduler": self.cron_scheduler.get_status(),
        }
