"""
Tests for the auto-backup scheduler.

The system crontab is never touched; subprocess.run is patched with a
fake that keeps the crontab in memory.
"""

import shutil
import subprocess
import tempfile
import unittest
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

from cardsafe.scheduler import (
    CronNotAvailableError,
    ScheduleInterval,
    Scheduler,
    ScheduleStatus,
)
from cardsafe.scheduler.cron import CRON_MARKER


class FakeCrontab:
    """In-memory stand-in for the crontab command."""

    def __init__(self, content: str | None = None) -> None:
        self.content = content

    def __call__(self, cmd, input=None, **kwargs):
        if cmd[0] == "which":
            return subprocess.CompletedProcess(cmd, 0, stdout="/usr/local/bin/cardsafe\n", stderr="")
        if cmd == ["crontab", "-l"]:
            if self.content is None:
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="no crontab")
            return subprocess.CompletedProcess(cmd, 0, stdout=self.content, stderr="")
        if cmd == ["crontab", "-"]:
            self.content = input
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        raise AssertionError(f"unexpected command {cmd}")


class TestScheduleInterval(unittest.TestCase):
    """Tests for ScheduleInterval."""

    def test_cron_schedules(self) -> None:
        self.assertEqual(ScheduleInterval.HOURLY.cron_schedule, "0 * * * *")
        self.assertEqual(ScheduleInterval.DAILY.cron_schedule, "0 2 * * *")
        self.assertEqual(ScheduleInterval.WEEKLY.cron_schedule, "0 2 * * 0")

    def test_from_string(self) -> None:
        self.assertEqual(ScheduleInterval.from_string(" Weekly "), ScheduleInterval.WEEKLY)
        with self.assertRaises(ValueError):
            ScheduleInterval.from_string("monthly")


class TestScheduleStatus(unittest.TestCase):
    def test_round_trip(self) -> None:
        status = ScheduleStatus(
            enabled=True,
            interval="hourly",
            next_run=datetime(2026, 10, 18, 3, 0, tzinfo=UTC),
            last_run_success=False,
            last_run_error="boom",
        )
        self.assertEqual(ScheduleStatus.from_dict(status.to_dict()), status)


class TestScheduler(unittest.TestCase):
    """Tests for Scheduler."""

    def setUp(self) -> None:
        self.temp_dir = Path(tempfile.mkdtemp())
        self.scheduler = Scheduler(self.temp_dir)

    def tearDown(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_status_defaults_when_no_state(self) -> None:
        status = self.scheduler.get_schedule_status()
        self.assertFalse(status.enabled)
        self.assertIsNone(status.last_run)

    def test_install_adds_entry_and_keeps_others(self) -> None:
        fake = FakeCrontab("0 0 * * * /usr/bin/other-job\n")

        with patch("cardsafe.scheduler.cron.subprocess.run", side_effect=fake):
            status = self.scheduler.install_schedule("hourly")

        self.assertTrue(status.enabled)
        self.assertEqual(status.interval, "hourly")
        self.assertIsNotNone(status.next_run)
        lines = fake.content.strip().split("\n")
        self.assertEqual(lines[0], "0 0 * * * /usr/bin/other-job")
        self.assertIn("0 * * * * /usr/local/bin/cardsafe backup --auto --quiet", fake.content)
        self.assertTrue((self.temp_dir / "scheduler" / "state.json").exists())

    def test_install_replaces_previous_entry(self) -> None:
        fake = FakeCrontab()

        with patch("cardsafe.scheduler.cron.subprocess.run", side_effect=fake):
            self.scheduler.install_schedule(ScheduleInterval.DAILY)
            self.scheduler.install_schedule(ScheduleInterval.WEEKLY)

        self.assertEqual(fake.content.count("backup --auto"), 1)
        self.assertIn("0 2 * * 0", fake.content)

    def test_uninstall_removes_only_own_entries(self) -> None:
        fake = FakeCrontab("0 0 * * * /usr/bin/other-job\n")

        with patch("cardsafe.scheduler.cron.subprocess.run", side_effect=fake):
            self.scheduler.install_schedule("daily")
            status = self.scheduler.uninstall_schedule()

        self.assertFalse(status.enabled)
        self.assertNotIn(CRON_MARKER, fake.content)
        self.assertIn("other-job", fake.content)
        self.assertFalse(self.scheduler.get_schedule_status().enabled)

    def test_install_without_crontab_binary(self) -> None:
        with patch(
            "cardsafe.scheduler.cron.subprocess.run",
            side_effect=FileNotFoundError("crontab"),
        ):
            with self.assertRaises(CronNotAvailableError):
                self.scheduler.install_schedule("daily")

    def test_record_run(self) -> None:
        status = self.scheduler.record_run(False, "No backup password available")

        self.assertFalse(status.last_run_success)
        self.assertEqual(status.last_run_error, "No backup password available")
        reloaded = self.scheduler.get_schedule_status()
        self.assertIsNotNone(reloaded.last_run)
        self.assertFalse(reloaded.last_run_success)

    def test_corrupt_state_file(self) -> None:
        state_dir = self.temp_dir / "scheduler"
        state_dir.mkdir()
        (state_dir / "state.json").write_text("{not json")

        with self.assertLogs("cardsafe.scheduler.cron", level="WARNING"):
            status = self.scheduler.get_schedule_status()

        self.assertFalse(status.enabled)


if __name__ == "__main__":
    unittest.main()
