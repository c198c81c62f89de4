"""
Scheduled unattended backups via the system crontab.

Usage:
    from cardsafe.scheduler import Scheduler, ScheduleInterval

    scheduler = Scheduler()
    scheduler.install_schedule(ScheduleInterval.DAILY)
    print(scheduler.get_schedule_status().next_run)
    scheduler.uninstall_schedule()
"""

from cardsafe.scheduler.cron import (
    CronNotAvailableError,
    ScheduleInterval,
    Scheduler,
    SchedulerError,
    ScheduleStatus,
)

__all__ = [
    "Scheduler",
    "ScheduleInterval",
    "ScheduleStatus",
    "SchedulerError",
    "CronNotAvailableError",
]
