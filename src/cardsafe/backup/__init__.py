"""
Encrypted backup and restore for cardsafe.

Backups are single base64 text files holding an AES-256-GCM envelope around
a JSON snapshot of users, templates, credentials and predefined fields.

Usage:
    from cardsafe.backup import BackupManager

    # Create a backup
    manager = BackupManager(store, backup_dir)
    result = manager.create_backup(password)

    # Restore from backup
    result = await manager.restore_backup(result.path, password)

    # Check a backup without touching storage
    check = manager.verify_backup(backup_path, password)
"""

from cardsafe.backup.envelope import decrypt_payload, derive_key, encrypt_payload
from cardsafe.backup.errors import (
    BackupError,
    CorruptEnvelopeError,
    DecryptionError,
    EncryptionError,
    InvalidBackupStructureError,
    RestoreError,
)
from cardsafe.backup.manager import (
    BackupManager,
    BackupResult,
    RestoreResult,
    VerifyResult,
)
from cardsafe.backup.merge import RecordFailure, RestoreCounts, RestoreMerger
from cardsafe.backup.retention import BackupFileInfo, CleanupResult, RetentionManager
from cardsafe.backup.snapshot import BackupPayload, SnapshotCollector

__all__ = [
    "BackupManager",
    "BackupResult",
    "RestoreResult",
    "VerifyResult",
    "BackupPayload",
    "SnapshotCollector",
    "RestoreMerger",
    "RestoreCounts",
    "RecordFailure",
    "RetentionManager",
    "BackupFileInfo",
    "CleanupResult",
    "encrypt_payload",
    "decrypt_payload",
    "derive_key",
    "BackupError",
    "EncryptionError",
    "DecryptionError",
    "CorruptEnvelopeError",
    "RestoreError",
    "InvalidBackupStructureError",
]
