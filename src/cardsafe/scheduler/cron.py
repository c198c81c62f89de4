"""
Scheduler for unattended backups.

Installs a system crontab entry that runs ``cardsafe backup --auto --quiet``
at a fixed interval (hourly, daily or weekly) and keeps a small state file
recording whether scheduling is enabled and how the last run went.

The unattended run cannot prompt for a password, so it reads it from the
CARDSAFE_BACKUP_PASSWORD environment variable or from the file named by
``backup.password_file`` in the configuration.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from cardsafe.config.settings import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)

# Marks the crontab lines owned by cardsafe
CRON_MARKER = "# cardsafe scheduled backup"
BACKUP_ARGS = "backup --auto --quiet"


class ScheduleInterval(Enum):
    """Supported schedule intervals."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def cron_schedule(self) -> str:
        """Cron expression: minute hour day month weekday."""
        if self == ScheduleInterval.HOURLY:
            return "0 * * * *"
        elif self == ScheduleInterval.WEEKLY:
            return "0 2 * * 0"  # Sundays at 2:00 AM
        return "0 2 * * *"  # Daily at 2:00 AM

    @classmethod
    def from_string(cls, value: str) -> ScheduleInterval:
        """Parse interval from string."""
        value = value.lower().strip()
        for interval in cls:
            if interval.value == value:
                return interval
        raise ValueError(f"Invalid interval: {value}. Must be hourly, daily, or weekly.")


@dataclass
class ScheduleStatus:
    """
    Persisted scheduler state.

    Attributes:
        enabled: Whether a crontab entry is installed.
        interval: The configured backup interval.
        next_run: Expected time of the next scheduled backup.
        last_run: Time of the last unattended backup.
        last_run_success: Whether the last unattended backup succeeded.
        last_run_error: Error message from the last failed run, if any.
    """

    enabled: bool = False
    interval: str = "daily"
    next_run: datetime | None = None
    last_run: datetime | None = None
    last_run_success: bool | None = None
    last_run_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert status to dictionary."""
        return {
            "enabled": self.enabled,
            "interval": self.interval,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_run_success": self.last_run_success,
            "last_run_error": self.last_run_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleStatus:
        """Create status from dictionary."""
        return cls(
            enabled=data.get("enabled", False),
            interval=data.get("interval", "daily"),
            next_run=datetime.fromisoformat(data["next_run"]) if data.get("next_run") else None,
            last_run=datetime.fromisoformat(data["last_run"]) if data.get("last_run") else None,
            last_run_success=data.get("last_run_success"),
            last_run_error=data.get("last_run_error"),
        )


class SchedulerError(Exception):
    """Base exception for scheduler errors."""

    pass


class CronNotAvailableError(SchedulerError):
    """Raised when the system crontab cannot be read or written."""

    pass


class Scheduler:
    """
    Manages the auto-backup crontab entry.

    Usage:
        scheduler = Scheduler()
        scheduler.install_schedule("daily")
        scheduler.get_schedule_status().next_run
        scheduler.uninstall_schedule()
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        """
        Initialize the scheduler.

        Args:
            config_dir: Base configuration directory. Defaults to ~/.cardsafe
        """
        self._config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self._scheduler_dir = self._config_dir / "scheduler"
        self._state_file = self._scheduler_dir / "state.json"

    def install_schedule(self, interval: ScheduleInterval | str) -> ScheduleStatus:
        """
        Install (or replace) the auto-backup crontab entry.

        Raises:
            ValueError: If the interval is not recognized.
            CronNotAvailableError: If the crontab cannot be updated.
        """
        if isinstance(interval, str):
            interval = ScheduleInterval.from_string(interval)

        cron_line = f"{interval.cron_schedule} {self._get_command()} {BACKUP_ARGS}"
        lines = self._without_own_entries(self._read_crontab())
        lines.extend([CRON_MARKER, f"{cron_line} {CRON_MARKER}"])
        self._write_crontab(lines)

        status = self._load_state()
        status.enabled = True
        status.interval = interval.value
        status.next_run = self._calculate_next_run(interval)
        self._save_state(status)

        logger.info(f"Installed cron entry: {cron_line}")
        return status

    def uninstall_schedule(self) -> ScheduleStatus:
        """Remove the auto-backup crontab entry, if any."""
        status = self._load_state()

        try:
            current = self._read_crontab()
        except CronNotAvailableError as e:
            logger.warning(f"Could not read crontab: {e}")
        else:
            remaining = self._without_own_entries(current)
            if remaining != current:
                self._write_crontab(remaining)
                logger.info("Removed cron entries")

        status.enabled = False
        status.next_run = None
        self._save_state(status)
        return status

    def get_schedule_status(self) -> ScheduleStatus:
        """Return the persisted schedule status."""
        return self._load_state()

    def record_run(self, success: bool, error: str | None = None) -> ScheduleStatus:
        """Record the outcome of an unattended backup run."""
        status = self._load_state()
        status.last_run = datetime.now(UTC)
        status.last_run_success = success
        status.last_run_error = error
        if status.enabled:
            status.next_run = self._calculate_next_run(
                ScheduleInterval.from_string(status.interval)
            )
        self._save_state(status)
        return status

    def _read_crontab(self) -> list[str]:
        try:
            result = subprocess.run(
                ["crontab", "-l"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (subprocess.SubprocessError, OSError) as e:
            raise CronNotAvailableError(f"Cannot read crontab: {e}") from e

        # Non-zero means no crontab for this user yet
        if result.returncode != 0 or not result.stdout.strip():
            return []
        return result.stdout.strip().split("\n")

    def _write_crontab(self, lines: list[str]) -> None:
        new_crontab = "\n".join(lines) + "\n" if lines else ""
        try:
            process = subprocess.run(
                ["crontab", "-"],
                input=new_crontab,
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (subprocess.SubprocessError, OSError) as e:
            raise CronNotAvailableError(f"Cannot write crontab: {e}") from e

        if process.returncode != 0:
            raise CronNotAvailableError(
                f"Failed to install crontab entry: {process.stderr.strip()}"
            )

    @staticmethod
    def _without_own_entries(lines: list[str]) -> list[str]:
        return [line for line in lines if CRON_MARKER not in line]

    def _calculate_next_run(self, interval: ScheduleInterval) -> datetime:
        """Next run time in UTC for the given interval."""
        now = datetime.now(UTC)

        if interval == ScheduleInterval.HOURLY:
            return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)

        next_run = now.replace(hour=2, minute=0, second=0, microsecond=0)
        if interval == ScheduleInterval.WEEKLY:
            # Python weekday(): Monday is 0, Sunday is 6
            days_until_sunday = (6 - now.weekday()) % 7
            if days_until_sunday == 0 and now.hour >= 2:
                days_until_sunday = 7
            return next_run + timedelta(days=days_until_sunday)

        if now.hour >= 2:
            next_run += timedelta(days=1)
        return next_run

    def _get_command(self) -> str:
        """Full path to the cardsafe command, or ``python -m cardsafe``."""
        try:
            result = subprocess.run(
                ["which", "cardsafe"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            if result.returncode == 0 and result.stdout.strip():
                return result.stdout.strip()
        except (subprocess.SubprocessError, OSError):
            pass

        return f"{sys.executable} -m cardsafe"

    def _load_state(self) -> ScheduleStatus:
        """Load scheduler state from disk."""
        if not self._state_file.exists():
            return ScheduleStatus()

        try:
            with open(self._state_file) as f:
                data = json.load(f)
            return ScheduleStatus.from_dict(data)
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.warning(f"Could not load scheduler state: {e}")
            return ScheduleStatus()

    def _save_state(self, status: ScheduleStatus) -> None:
        """Save scheduler state to disk."""
        try:
            self._scheduler_dir.mkdir(parents=True, exist_ok=True)
            with open(self._state_file, "w") as f:
                json.dump(status.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Could not save scheduler state: {e}")
