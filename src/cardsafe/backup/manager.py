"""
Backup and restore manager for cardsafe.

Ties the pieces together: collects a snapshot from the record store,
encrypts it into a ``.bak`` file, and restores such files back into
storage. Creation, restore and export raise on failure; listing, cleanup,
verification and unattended auto-backup report failures as result values.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cardsafe.backup.envelope import decrypt_payload, encrypt_payload
from cardsafe.backup.errors import (
    BackupError,
    InvalidBackupStructureError,
    RestoreError,
)
from cardsafe.backup.merge import RestoreCounts, RestoreMerger
from cardsafe.backup.retention import BackupFileInfo, CleanupResult, RetentionManager
from cardsafe.backup.snapshot import BackupPayload, SnapshotCollector
from cardsafe.storage.base import RecordStorage

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "IDCardBackup_"
BACKUP_EXTENSION = ".bak"


def backup_filename(timestamp: str) -> str:
    """Build the backup filename for an ISO timestamp."""
    safe = timestamp.replace(":", "-").replace(".", "-")
    return f"{BACKUP_PREFIX}{safe}{BACKUP_EXTENSION}"


@dataclass
class BackupResult:
    """Result of a backup operation."""

    success: bool
    path: Path | None = None
    filename: str | None = None
    size_bytes: int = 0
    timestamp: str | None = None
    error: str | None = None


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool
    restored: RestoreCounts = field(default_factory=RestoreCounts)
    backup_version: str | None = None
    backup_timestamp: str | None = None


@dataclass
class VerifyResult:
    """Result of a dry-run verification."""

    valid: bool
    version: str | None = None
    timestamp: str | None = None
    data_count: dict[str, int] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result: dict[str, Any] = {"valid": self.valid}
        if self.valid:
            result.update(
                version=self.version,
                timestamp=self.timestamp,
                dataCount=self.data_count,
            )
        else:
            result["error"] = self.error
        return result


class BackupManager:
    """
    Manages encrypted backup files for an ID-card record store.

    Usage:
        manager = BackupManager(store, Path("~/.cardsafe/data/Backups"))
        result = manager.create_backup("Secr3t!")
        restored = await manager.restore_backup(result.path, "Secr3t!")
    """

    def __init__(self, storage: RecordStorage, backup_dir: Path) -> None:
        """
        Initialize backup manager.

        Args:
            storage: Record store to snapshot from and restore into.
            backup_dir: Directory holding ``.bak`` files.
        """
        self.storage = storage
        self.backup_dir = Path(backup_dir)
        self.retention = RetentionManager(self.backup_dir, extension=BACKUP_EXTENSION)

    def get_backup_directory(self) -> Path:
        """Return the backup directory, creating it if needed."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        return self.backup_dir

    def create_backup(self, password: str) -> BackupResult:
        """
        Create an encrypted backup of all record collections.

        Args:
            password: Backup password.

        Returns:
            BackupResult describing the written file.

        Raises:
            EncryptionError: If the payload cannot be encrypted.
            OSError: If the file cannot be written.
        """
        payload = SnapshotCollector(self.storage).collect()
        encrypted = encrypt_payload(payload.to_dict(), password)

        filename = backup_filename(payload.timestamp)
        path = self.get_backup_directory() / filename
        self._write_secure_file(path, encrypted.encode("ascii"))

        size_bytes = path.stat().st_size
        logger.info(f"Backup created: {path} ({size_bytes:,} bytes)")

        return BackupResult(
            success=True,
            path=path,
            filename=filename,
            size_bytes=size_bytes,
            timestamp=payload.timestamp,
        )

    async def restore_backup(self, backup_path: Path, password: str) -> RestoreResult:
        """
        Decrypt a backup file and merge it into storage.

        Args:
            backup_path: Path to a ``.bak`` file.
            password: Backup password.

        Returns:
            RestoreResult with per-collection counts. Individual record
            failures are listed in ``restored.failures``.

        Raises:
            RestoreError: If the file does not exist.
            DecryptionError: Wrong password or corrupted file.
            InvalidBackupStructureError: Payload has no ``data`` object.
        """
        backup_path = Path(backup_path)
        if not backup_path.is_file():
            raise RestoreError(f"Backup file not found: {backup_path}")

        text = backup_path.read_bytes().decode("utf-8", errors="replace")
        payload = decrypt_payload(text, password)

        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise InvalidBackupStructureError()

        counts = await RestoreMerger(self.storage).merge(payload["data"])

        logger.info(f"Restore completed from {backup_path.name}: {counts.to_dict()}")

        return RestoreResult(
            success=True,
            restored=counts,
            backup_version=payload.get("version"),
            backup_timestamp=payload.get("timestamp"),
        )

    def verify_backup(self, backup_path: Path, password: str) -> VerifyResult:
        """
        Check that a backup decrypts and has the expected shape.

        Storage is never touched.

        Args:
            backup_path: Path to a ``.bak`` file.
            password: Backup password.

        Returns:
            VerifyResult; ``valid`` is False with an error message on failure.
        """
        try:
            text = Path(backup_path).read_bytes().decode("utf-8", errors="replace")
            payload = decrypt_payload(text, password)
            if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
                raise InvalidBackupStructureError()
        except (BackupError, OSError) as e:
            return VerifyResult(valid=False, error=str(e))

        return VerifyResult(
            valid=True,
            version=payload.get("version"),
            timestamp=payload.get("timestamp"),
            data_count=BackupPayload.from_dict(payload).counts(),
        )

    def list_backups(self) -> list[BackupFileInfo]:
        """List backup files, newest first."""
        return self.retention.list_backups()

    def cleanup_old_backups(self, keep_count: int = 10) -> CleanupResult:
        """Delete all but the ``keep_count`` newest backups."""
        return self.retention.cleanup(keep_count)

    def export_backup(self, source: Path, destination: Path) -> bool:
        """
        Copy a backup file to another location, byte for byte.

        Raises:
            BackupError: If the copy fails.
        """
        try:
            shutil.copyfile(source, destination)
        except OSError as e:
            logger.error(f"Export backup error: {e}")
            raise BackupError("Failed to export backup") from e

        logger.info(f"Backup exported to {destination}")
        return True

    def auto_backup(self, password: str, keep_count: int = 10) -> BackupResult:
        """
        Create a backup and rotate old ones without raising.

        Meant for unattended runs; any failure is returned in the result.
        """
        try:
            result = self.create_backup(password)
            self.cleanup_old_backups(keep_count)
        except Exception as e:
            logger.exception("Auto backup failed")
            return BackupResult(success=False, error=str(e))
        return result

    def _write_secure_file(self, path: Path, data: bytes) -> None:
        """Write a file readable only by its owner, via temp file and rename."""
        temp_path = path.with_name(f".{path.name}.{datetime.now(UTC):%H%M%S%f}.tmp")

        try:
            temp_path.write_bytes(data)

            try:
                os.chmod(temp_path, 0o600)
            except OSError:
                # Windows or permission error - continue anyway
                pass

            temp_path.replace(path)

        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise
