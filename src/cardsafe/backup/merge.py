"""
Restore merging: writing a decrypted payload back into storage.

Restore is additive. Each record is upserted by its natural key (template
name, credential username, field label; users by their own id), and records
already in storage that the backup does not mention are left alone.

Every record is merged on its own. When one record fails (missing required
field, constraint violation, storage error) the failure is logged and
recorded, the record is not counted, and merging continues with the next
record and the remaining collections. Nothing already merged is rolled back.

Each collection is handled by a RecordMerger strategy. Credentials use an
AsyncRecordMerger because storing one may require a slow password hash;
those records are awaited one at a time. The other three collections run
in a plain loop.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from cardsafe.storage.base import RecordStorage
from cardsafe.storage.models import Credential, PredefinedField, Template, User

logger = logging.getLogger(__name__)


@dataclass
class RecordFailure:
    """One record that could not be merged."""

    entity: str
    index: int
    key: str | None
    error: str


@dataclass
class RestoreCounts:
    """
    Per-collection count of successfully merged records.

    ``failures`` lists the records that were skipped; it is not part of
    the counters returned by to_dict().
    """

    users: int = 0
    templates: int = 0
    credentials: int = 0
    fields: int = 0
    failures: list[RecordFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        """Success counters keyed by collection."""
        return {
            "users": self.users,
            "templates": self.templates,
            "credentials": self.credentials,
            "fields": self.fields,
        }

    @property
    def total(self) -> int:
        return self.users + self.templates + self.credentials + self.fields

    def add_success(self, entity: str) -> None:
        setattr(self, entity, getattr(self, entity) + 1)


class RecordMerger(ABC):
    """Strategy that merges one record of a collection into storage."""

    #: Payload section handled by this merger
    entity: str = ""
    #: Record key used to identify the record in failure reports
    key_field: str | None = None

    def __init__(self, storage: RecordStorage) -> None:
        self.storage = storage

    @abstractmethod
    def merge_one(self, record: dict[str, Any]) -> None:
        """Upsert a single record. Raises on failure."""

    def record_key(self, record: Any) -> str | None:
        if self.key_field and isinstance(record, dict):
            value = record.get(self.key_field)
            return None if value is None else str(value)
        return None


class AsyncRecordMerger(RecordMerger):
    """Strategy whose merge_one must be awaited."""

    @abstractmethod
    async def merge_one(self, record: dict[str, Any]) -> None:  # type: ignore[override]
        """Upsert a single record. Raises on failure."""


class UserMerger(RecordMerger):
    entity = "users"
    key_field = "id"

    def merge_one(self, record: dict[str, Any]) -> None:
        self.storage.upsert_user(User.from_dict(record))


class TemplateMerger(RecordMerger):
    entity = "templates"
    key_field = "name"

    def merge_one(self, record: dict[str, Any]) -> None:
        self.storage.upsert_template(Template.from_dict(record))


class CredentialMerger(AsyncRecordMerger):
    entity = "credentials"
    key_field = "username"

    async def merge_one(self, record: dict[str, Any]) -> None:
        await self.storage.upsert_credential(Credential.from_dict(record))


class FieldMerger(RecordMerger):
    entity = "fields"
    key_field = "label"

    def merge_one(self, record: dict[str, Any]) -> None:
        self.storage.upsert_predefined_field(PredefinedField.from_dict(record))


def default_mergers(storage: RecordStorage) -> list[RecordMerger]:
    """The four collection mergers in restore order."""
    return [
        UserMerger(storage),
        TemplateMerger(storage),
        CredentialMerger(storage),
        FieldMerger(storage),
    ]


class RestoreMerger:
    """
    Merges payload data into storage with per-record failure isolation.

    Usage:
        merger = RestoreMerger(store)
        counts = await merger.merge(payload["data"])
        counts.to_dict()  # {"users": 4, "templates": 2, ...}
    """

    def __init__(
        self,
        storage: RecordStorage,
        mergers: list[RecordMerger] | None = None,
    ) -> None:
        self.storage = storage
        self.mergers = mergers if mergers is not None else default_mergers(storage)

    async def merge(self, data: dict[str, Any]) -> RestoreCounts:
        """
        Merge every collection in ``data``.

        Args:
            data: The payload's ``data`` object.

        Returns:
            RestoreCounts with successes per collection and skipped records.
        """
        counts = RestoreCounts()

        for merger in self.mergers:
            records = data.get(merger.entity)
            if not isinstance(records, list):
                if records is not None:
                    logger.warning(f"Skipping {merger.entity}: expected a list")
                continue

            for index, record in enumerate(records):
                try:
                    if isinstance(merger, AsyncRecordMerger):
                        await merger.merge_one(record)
                    else:
                        merger.merge_one(record)
                except Exception as e:
                    failure = RecordFailure(
                        entity=merger.entity,
                        index=index,
                        key=merger.record_key(record),
                        error=str(e),
                    )
                    counts.failures.append(failure)
                    label = f"#{index} ({failure.key})" if failure.key else f"#{index}"
                    logger.error(f"Error restoring {merger.entity} record {label}: {e}")
                else:
                    counts.add_success(merger.entity)

        logger.info(
            f"Restore merged {counts.total} records {counts.to_dict()}, "
            f"{len(counts.failures)} skipped"
        )
        return counts
