"""
Backup retention: listing backup files and rotating out old ones.

Listing and cleanup are advisory. A directory that cannot be read lists as
empty, and a file that cannot be deleted is logged and skipped rather than
failing the whole cleanup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

BACKUP_EXTENSION = ".bak"


@dataclass
class BackupFileInfo:
    """Filesystem metadata for one backup file."""

    filename: str
    path: Path
    size: int
    created: datetime
    modified: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "filename": self.filename,
            "path": str(self.path),
            "size": self.size,
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
        }


@dataclass
class CleanupResult:
    """Outcome of a retention cleanup."""

    deleted: int = 0
    failed: list[Path] = field(default_factory=list)


class RetentionManager:
    """
    Keeps the N most recent backups in a directory.

    Usage:
        retention = RetentionManager(Path("~/.cardsafe/data/Backups"))
        for info in retention.list_backups():
            print(info.filename, info.modified)
        retention.cleanup(keep_count=10)
    """

    def __init__(self, backup_dir: Path, extension: str = BACKUP_EXTENSION) -> None:
        self.backup_dir = Path(backup_dir)
        self.extension = extension

    def list_backups(self) -> list[BackupFileInfo]:
        """
        List backup files, most recently modified first.

        Returns:
            Backup file metadata, or an empty list if the directory cannot be read.
        """
        try:
            entries = list(self.backup_dir.iterdir())
        except OSError as e:
            logger.error(f"List backups error: {e}")
            return []

        backups = []
        for entry in entries:
            if not entry.name.endswith(self.extension):
                continue
            try:
                stat = entry.stat()
                if not entry.is_file():
                    continue
            except OSError:
                # Deleted between listing and stat
                continue

            created_ts = getattr(stat, "st_birthtime", stat.st_ctime)
            backups.append(
                BackupFileInfo(
                    filename=entry.name,
                    path=entry,
                    size=stat.st_size,
                    created=datetime.fromtimestamp(created_ts, UTC),
                    modified=datetime.fromtimestamp(stat.st_mtime, UTC),
                )
            )

        backups.sort(key=lambda info: info.modified, reverse=True)
        return backups

    def cleanup(self, keep_count: int = 10) -> CleanupResult:
        """
        Delete all but the ``keep_count`` most recent backups.

        Args:
            keep_count: Number of newest backups to keep.

        Returns:
            CleanupResult counting only files actually removed.

        Raises:
            ValueError: If keep_count is negative.
        """
        if keep_count < 0:
            raise ValueError("keep_count must not be negative")

        result = CleanupResult()

        for info in self.list_backups()[keep_count:]:
            try:
                info.path.unlink()
            except OSError as e:
                logger.error(f"Error deleting backup {info.filename}: {e}")
                result.failed.append(info.path)
            else:
                result.deleted += 1
                logger.debug(f"Deleted old backup {info.filename}")

        if result.deleted or result.failed:
            logger.info(
                f"Backup cleanup kept {keep_count} most recent, "
                f"deleted {result.deleted}, failed {len(result.failed)}"
            )
        return result
