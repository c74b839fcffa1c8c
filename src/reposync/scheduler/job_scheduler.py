"""Per-task cron timers on top of APScheduler."""

import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .cron import is_valid, matches
from ..config.settings import SchedulingSettings, get_settings
from ..exceptions import SchedulerError
from ..utils.logging import get_logger


Task = Callable[[], Union[None, Awaitable[Any]]]


@dataclass
class ScheduledTask:
    """Bookkeeping for one scheduled id."""

    id: str
    cron: str
    task: Task
    last_fired: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0


def _local_now() -> datetime:
    return datetime.now().astimezone()


class CronScheduler:
    """Runs tasks whose cron expression matches the current minute.

    Each task id owns one interval job that ticks every ``tick_seconds``
    and fires the task when its expression matches. Scheduling an id that
    is already scheduled replaces it. Instances are independent; create one
    per process and pass it to whatever needs it.
    """

    def __init__(
        self,
        settings: Optional[SchedulingSettings] = None,
        clock: Callable[[], datetime] = _local_now
    ):
        """Initialize cron scheduler.

        Args:
            settings: Scheduling settings (defaults to application settings)
            clock: Source of the current local time
        """
        self.settings = settings or get_settings().scheduling
        self.clock = clock
        self.logger = get_logger(self.__class__.__name__)

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                'coalesce': True,  # Combine multiple pending executions
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': 30
            }
        )
        self.tasks: Dict[str, ScheduledTask] = {}

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start ticking. Must be called with a running event loop."""
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("Cron scheduler started", tick_seconds=self.settings.tick_seconds)

    def shutdown(self, wait: bool = False) -> None:
        """Stop every task and the underlying scheduler."""
        for task_id in list(self.tasks):
            self.stop(task_id)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            self.logger.info("Cron scheduler stopped")

    def schedule(self, task_id: str, cron: str, task: Task) -> ScheduledTask:
        """Schedule ``task`` under ``task_id``, replacing any previous timer.

        Raises:
            SchedulerError: If the job cannot be registered
        """
        self.stop(task_id)

        if not is_valid(cron):
            self.logger.warning("Cron expression is malformed and will never fire", task_id=task_id, cron=cron)

        entry = ScheduledTask(id=task_id, cron=cron, task=task)
        try:
            self.scheduler.add_job(
                self.tick,
                trigger=IntervalTrigger(seconds=self.settings.tick_seconds),
                args=[task_id],
                id=task_id,
                name=f"Cron: {task_id}",
                replace_existing=True
            )
        except Exception as e:
            raise SchedulerError(f"Failed to schedule {task_id}: {e}") from e

        self.tasks[task_id] = entry
        self.start()

        self.logger.info("Task scheduled", task_id=task_id, cron=cron)
        return entry

    def stop(self, task_id: str) -> bool:
        """Cancel the timer for ``task_id``. Unknown ids are ignored."""
        entry = self.tasks.pop(task_id, None)
        try:
            self.scheduler.remove_job(task_id)
        except JobLookupError:
            pass

        if entry is not None:
            self.logger.info("Task stopped", task_id=task_id)
        return entry is not None

    def is_scheduled(self, task_id: str) -> bool:
        return task_id in self.tasks

    def scheduled_ids(self) -> List[str]:
        return sorted(self.tasks)

    async def tick(self, task_id: str) -> bool:
        """Fire ``task_id`` if its expression matches the current minute.

        Task failures are logged and counted; they never cancel the timer.

        Returns:
            True if the task ran
        """
        entry = self.tasks.get(task_id)
        if entry is None:
            return False

        now = self.clock().replace(second=0, microsecond=0)
        if not matches(entry.cron, now) or entry.last_fired == now:
            return False

        entry.last_fired = now
        entry.run_count += 1
        self.logger.info("Executing scheduled task", task_id=task_id, at=now.isoformat())

        try:
            outcome = entry.task()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            entry.error_count += 1
            self.logger.error("Scheduled task failed", task_id=task_id, error=str(e))

        return True

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "tasks": {
                task_id: {
                    "cron": entry.cron,
                    "last_fired": entry.last_fired.isoformat() if entry.last_fired else None,
                    "run_count": entry.run_count,
                    "error_count": entry.error_count,
                }
                for task_id, entry in self.tasks.items()
            },
        }
