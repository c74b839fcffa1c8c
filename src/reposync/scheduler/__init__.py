"""Scheduler package for timed and missed-run syncs."""

from .cron import is_valid, matches, should_have_run_since
from .job_scheduler import CronScheduler, ScheduledTask
from .scheduler_manager import SchedulerManager

__all__ = [
    "is_valid",
    "matches",
    "should_have_run_since",
    "CronScheduler",
    "ScheduledTask",
    "SchedulerManager"
]
