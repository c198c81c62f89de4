"""
Tests for snapshot collection.

Tests cover:
- Payload shape, version and timestamp format
- Isolation of failing collection accessors
"""

import re
import unittest
from datetime import UTC, datetime
from unittest.mock import MagicMock

from cardsafe.backup.snapshot import (
    PAYLOAD_VERSION,
    BackupPayload,
    SnapshotCollector,
    iso_timestamp,
)

TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def _fake_storage() -> MagicMock:
    storage = MagicMock()
    storage.get_all_users.return_value = [{"id": 1, "photo": "a"}, {"id": 2, "photo": "b"}]
    storage.get_all_templates.return_value = [{"name": "Staff", "templateData": {}}]
    storage.get_all_credentials.return_value = [{"username": "admin", "password": "h"}]
    storage.get_all_predefined_fields.return_value = [{"label": "Name"}]
    return storage


class TestIsoTimestamp(unittest.TestCase):
    """Tests for the payload timestamp format."""

    def test_millisecond_precision(self):
        moment = datetime(2026, 10, 18, 12, 34, 56, 789123, tzinfo=UTC)
        self.assertEqual(iso_timestamp(moment), "2026-10-18T12:34:56.789Z")

    def test_default_is_now(self):
        self.assertRegex(iso_timestamp(), TIMESTAMP_PATTERN)


class TestSnapshotCollector(unittest.TestCase):
    """Tests for SnapshotCollector."""

    def test_collect_all_sections(self):
        payload = SnapshotCollector(_fake_storage()).collect()

        self.assertEqual(payload.version, PAYLOAD_VERSION)
        self.assertRegex(payload.timestamp, TIMESTAMP_PATTERN)
        self.assertEqual(
            payload.counts(),
            {"users": 2, "templates": 1, "credentials": 1, "fields": 1},
        )

    def test_failing_accessor_yields_empty_section(self):
        """One broken collection does not stop the others."""
        storage = _fake_storage()
        storage.get_all_templates.side_effect = RuntimeError("table missing")

        with self.assertLogs("cardsafe.backup.snapshot", level="ERROR") as logs:
            payload = SnapshotCollector(storage).collect()

        self.assertEqual(payload.templates, [])
        self.assertEqual(len(payload.users), 2)
        self.assertEqual(len(payload.fields), 1)
        self.assertIn("Error getting templates", logs.output[0])

    def test_none_result_yields_empty_section(self):
        storage = _fake_storage()
        storage.get_all_credentials.return_value = None

        payload = SnapshotCollector(storage).collect()

        self.assertEqual(payload.credentials, [])


class TestBackupPayload(unittest.TestCase):
    """Tests for BackupPayload conversion."""

    def test_to_dict_shape(self):
        payload = BackupPayload(version="1.0.0", timestamp="t", users=[{"id": 1}])
        data = payload.to_dict()

        self.assertEqual(set(data), {"version", "timestamp", "data"})
        self.assertEqual(set(data["data"]), {"users", "templates", "credentials", "fields"})
        self.assertEqual(data["data"]["users"], [{"id": 1}])

    def test_from_dict_non_list_sections(self):
        payload = BackupPayload.from_dict(
            {"version": "1.0.0", "timestamp": "t", "data": {"users": "oops", "fields": [{}]}}
        )

        self.assertEqual(payload.users, [])
        self.assertEqual(payload.templates, [])
        self.assertEqual(payload.fields, [{}])


if __name__ == "__main__":
    unittest.main()
