"""
Snapshot collection: the plaintext side of a backup.

The collector reads the four record collections from storage and assembles
them into one versioned payload:

    {
      "version": "1.0.0",
      "timestamp": "2026-10-18T12:34:56.789Z",
      "data": {"users": [...], "templates": [...],
               "credentials": [...], "fields": [...]}
    }

Each collection is read independently. If one accessor fails, that section
is backed up as an empty list and the rest of the snapshot still proceeds,
so a damaged table never blocks backing up the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from cardsafe.storage.base import RecordStorage

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = "1.0.0"

# Payload sections in restore order
SECTIONS = ("users", "templates", "credentials", "fields")


def iso_timestamp(moment: datetime | None = None) -> str:
    """Format a UTC time as ISO-8601 with milliseconds and a Z suffix."""
    moment = (moment or datetime.now(UTC)).astimezone(UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


@dataclass
class BackupPayload:
    """The decrypted content of a backup file."""

    version: str
    timestamp: str
    users: list[dict[str, Any]] = field(default_factory=list)
    templates: list[dict[str, Any]] = field(default_factory=list)
    credentials: list[dict[str, Any]] = field(default_factory=list)
    fields: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON payload shape."""
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "data": {
                "users": self.users,
                "templates": self.templates,
                "credentials": self.credentials,
                "fields": self.fields,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupPayload:
        """Create from a payload dictionary; non-list sections become empty."""
        sections = data.get("data") or {}
        return cls(
            version=data.get("version", "unknown"),
            timestamp=data.get("timestamp", ""),
            **{name: _as_list(sections.get(name)) for name in SECTIONS},
        )

    def counts(self) -> dict[str, int]:
        """Number of records per section."""
        return {name: len(getattr(self, name)) for name in SECTIONS}


class SnapshotCollector:
    """
    Builds a BackupPayload from a record store.

    Usage:
        collector = SnapshotCollector(store)
        payload = collector.collect()
        payload.counts()  # {"users": 12, "templates": 3, ...}
    """

    def __init__(self, storage: RecordStorage) -> None:
        self.storage = storage

    def collect(self) -> BackupPayload:
        """
        Read all four collections and stamp version and capture time.

        Returns:
            BackupPayload, with any unreadable section left empty.
        """
        readers: dict[str, Callable[[], list[dict[str, Any]] | None]] = {
            "users": self.storage.get_all_users,
            "templates": self.storage.get_all_templates,
            "credentials": self.storage.get_all_credentials,
            "fields": self.storage.get_all_predefined_fields,
        }

        sections = {name: self._read_section(name, reader) for name, reader in readers.items()}

        payload = BackupPayload(
            version=PAYLOAD_VERSION,
            timestamp=iso_timestamp(),
            **sections,
        )

        logger.info(f"Backup data collected: {payload.counts()}")
        return payload

    def _read_section(
        self,
        name: str,
        reader: Callable[[], list[dict[str, Any]] | None],
    ) -> list[dict[str, Any]]:
        try:
            records = reader()
        except Exception as e:
            logger.error(f"Error getting {name}: {e}")
            return []
        return list(records or [])


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
