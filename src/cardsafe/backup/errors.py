"""Exceptions raised by the backup engine."""

# Wrong password and corrupted file deliberately share one message
DECRYPT_FAILED_MESSAGE = "Failed to decrypt backup - Invalid password or corrupted file"


class BackupError(Exception):
    """Base exception for backup and restore errors."""

    pass


class EncryptionError(BackupError):
    """Raised when a payload cannot be serialized or encrypted."""

    def __init__(self, message: str = "Failed to encrypt backup") -> None:
        super().__init__(message)


class DecryptionError(BackupError):
    """
    Raised when an envelope cannot be decrypted.

    Covers authentication-tag mismatch (wrong password or tampering),
    malformed base64 and unparseable plaintext alike.
    """

    def __init__(self, message: str = DECRYPT_FAILED_MESSAGE) -> None:
        super().__init__(message)


class CorruptEnvelopeError(DecryptionError):
    """Raised when an envelope is too short to hold its fixed-size prefix."""

    pass



class RestoreError(BackupError):
    """Error during restore operation."""

    pass


class InvalidBackupStructureError(RestoreError):
    """Raised when a decrypted payload lacks the expected data object."""

    def __init__(self, message: str = "Invalid backup file structure") -> None:
        super().__init__(message)
