"""
Tests for the record store, data models and password hashing.

Tests cover:
- Database initialization and schema versioning
- Upserts keyed by natural key
- Model conversion and required-field validation
- Password hashing, verification and strength checks
"""

from __future__ import annotations

import shutil
import sqlite3
import tempfile
import unittest
from pathlib import Path

from cardsafe.storage import (
    Credential,
    PasswordHasher,
    PredefinedField,
    RecordStore,
    StorageError,
    Template,
    User,
    check_strength,
    validate_password,
)
from cardsafe.storage.record_store import DATABASE_FILE, SCHEMA_VERSION


class TestRecordStoreInit(unittest.TestCase):
    """Tests for RecordStore initialization."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.data_dir = Path(self.temp_dir) / "data"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_creates_database(self):
        store = RecordStore(self.data_dir)

        self.assertTrue((self.data_dir / DATABASE_FILE).exists())
        self.assertEqual(store.db_path, self.data_dir / DATABASE_FILE)

    def test_schema_version_recorded(self):
        RecordStore(self.data_dir)

        conn = sqlite3.connect(self.data_dir / DATABASE_FILE)
        try:
            (version,) = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        finally:
            conn.close()
        self.assertEqual(version, SCHEMA_VERSION)

    def test_reopen_keeps_data(self):
        RecordStore(self.data_dir).upsert_user(User(photo="a.png"))
        self.assertEqual(len(RecordStore(self.data_dir).get_all_users()), 1)

    def test_empty_counts(self):
        store = RecordStore(self.data_dir)
        self.assertEqual(
            store.counts(),
            {"users": 0, "templates": 0, "credentials": 0, "fields": 0},
        )

    def test_seed_default_fields_once(self):
        store = RecordStore(self.data_dir)

        self.assertEqual(store.seed_default_fields(), 1)
        self.assertEqual(store.seed_default_fields(), 0)

        fields = store.get_all_predefined_fields()
        self.assertEqual(fields[0]["label"], "Profile Photo")
        self.assertEqual(fields[0]["fieldType"], "photo")
        self.assertTrue(fields[0]["isRequired"])


class TestRecordStoreUpserts(unittest.IsolatedAsyncioTestCase):
    """Tests for RecordStore write accessors."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.store = RecordStore(Path(self.temp_dir), hasher=PasswordHasher(iterations=1000))

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_user_insert_and_update_by_id(self):
        user_id = self.store.upsert_user(User(photo="a.png", additional_data={"Name": "Ann"}))

        self.store.upsert_user(User(photo="b.png", additional_data={"Name": "Anne"}, id=user_id))

        users = self.store.get_all_users()
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0]["photo"], "b.png")
        self.assertEqual(users[0]["additionalData"], {"Name": "Anne"})

    def test_user_insert_keeps_given_id(self):
        self.store.upsert_user(User(photo="a.png", id=42))
        self.assertEqual(self.store.get_all_users()[0]["id"], 42)

    def test_template_upsert_by_name(self):
        first = self.store.upsert_template(Template(name="Staff", template_data={"v": 1}))
        second = self.store.upsert_template(
            Template(name="Staff", template_data={"v": 2}, card_width_mm=100.0)
        )

        self.assertEqual(first, second)
        templates = self.store.get_all_templates()
        self.assertEqual(len(templates), 1)
        self.assertEqual(templates[0]["templateData"], {"v": 2})
        self.assertEqual(templates[0]["cardWidthMm"], 100.0)

    def test_field_upsert_by_label(self):
        self.store.upsert_predefined_field(PredefinedField(label="Dept", display_order=1))
        self.store.upsert_predefined_field(
            PredefinedField(label="Dept", default_value="IT", is_active=False)
        )

        fields = self.store.get_all_predefined_fields()
        self.assertEqual(len(fields), 1)
        self.assertEqual(fields[0]["defaultValue"], "IT")
        self.assertFalse(fields[0]["isActive"])

    async def test_credential_plaintext_is_hashed(self):
        await self.store.upsert_credential(Credential(username="admin", password="Adm1n!pass"))

        stored = self.store.get_all_credentials()[0]["password"]
        self.assertNotEqual(stored, "Adm1n!pass")
        self.assertTrue(PasswordHasher.is_hashed(stored))
        self.assertTrue(self.store.hasher.verify("Adm1n!pass", stored))

    async def test_credential_upsert_by_username(self):
        await self.store.upsert_credential(Credential(username="admin", password="first"))
        await self.store.upsert_credential(Credential(username="admin", password="second"))

        credentials = self.store.get_all_credentials()
        self.assertEqual(len(credentials), 1)
        self.assertTrue(self.store.hasher.verify("second", credentials[0]["password"]))

    async def test_credential_empty_password(self):
        with self.assertRaises(ValueError):
            await self.store.upsert_credential(Credential(username="admin", password=""))

    def test_corrupt_json_column(self):
        conn = sqlite3.connect(self.store.db_path)
        try:
            conn.execute("INSERT INTO users (photo, additionalData) VALUES ('p', '{broken')")
            conn.commit()
        finally:
            conn.close()

        with self.assertRaises(StorageError):
            self.store.get_all_users()


class TestModels(unittest.TestCase):
    """Tests for model conversion."""

    def test_user_round_trip_keys(self):
        data = User(photo="a.png", additional_data={"Name": "Ann"}, id=3).to_dict()
        self.assertEqual(data["additionalData"], {"Name": "Ann"})
        self.assertEqual(User.from_dict(data).id, 3)

    def test_user_missing_photo(self):
        with self.assertRaises(ValueError) as ctx:
            User.from_dict({"id": 1})
        self.assertIn("photo", str(ctx.exception))

    def test_user_not_an_object(self):
        with self.assertRaises(ValueError):
            User.from_dict("user")

    def test_user_bad_id(self):
        with self.assertRaises(ValueError):
            User.from_dict({"photo": "a", "id": "abc"})

    def test_template_default_dimensions(self):
        template = Template.from_dict({"name": "T", "templateData": {}})
        self.assertEqual(template.card_width_mm, 85.6)
        self.assertEqual(template.card_height_mm, 54.0)

    def test_template_blank_name(self):
        with self.assertRaises(ValueError):
            Template.from_dict({"name": "  ", "templateData": {}})

    def test_credential_requires_password(self):
        with self.assertRaises(ValueError):
            Credential.from_dict({"username": "admin"})

    def test_field_defaults(self):
        field = PredefinedField.from_dict({"label": "Dept"})
        self.assertEqual(field.field_type, "text")
        self.assertTrue(field.is_active)
        self.assertFalse(field.is_required)
        self.assertEqual(field.to_dict()["displayOrder"], 0)


class TestPasswordHasher(unittest.TestCase):
    """Tests for PasswordHasher."""

    def setUp(self):
        self.hasher = PasswordHasher(iterations=1000)

    def test_hash_and_verify(self):
        encoded = self.hasher.hash("Adm1n!pass")

        self.assertTrue(encoded.startswith("pbkdf2_sha256$1000$"))
        self.assertTrue(self.hasher.verify("Adm1n!pass", encoded))
        self.assertFalse(self.hasher.verify("wrong", encoded))

    def test_salted(self):
        self.assertNotEqual(self.hasher.hash("same"), self.hasher.hash("same"))

    def test_verify_uses_encoded_iterations(self):
        encoded = PasswordHasher(iterations=500).hash("pw")
        self.assertTrue(self.hasher.verify("pw", encoded))

    def test_verify_garbage(self):
        self.assertFalse(self.hasher.verify("pw", "not-a-hash"))
        self.assertFalse(self.hasher.verify("", self.hasher.hash("pw")))

    def test_is_hashed(self):
        self.assertTrue(PasswordHasher.is_hashed(self.hasher.hash("pw")))
        self.assertFalse(PasswordHasher.is_hashed("plaintext"))
        self.assertFalse(PasswordHasher.is_hashed(None))

    def test_verify_malformed_segments(self):
        """Encoded hashes with undecodable segments fail verification."""
        self.assertFalse(self.hasher.verify("x", "pbkdf2_sha256$1000$a$a"))
        self.assertFalse(self.hasher.verify("x", "pbkdf2_sha256$0$YWJjZA==$YWJjZA=="))

    def test_is_hashed_bcrypt(self):
        for prefix in ("$2a$", "$2b$", "$2y$"):
            with self.subTest(prefix=prefix):
                value = f"{prefix}10$N9qo8uLOickgx2ZMRZoMyeIjZAgcfl7p92ldGxad68LJZdL17lhWy"
                self.assertTrue(PasswordHasher.is_hashed(value))

        self.assertFalse(PasswordHasher.is_hashed("$2a$10$tooshort"))

    def test_empty_password(self):
        with self.assertRaises(ValueError):
            self.hasher.hash("")

    def test_invalid_iterations(self):
        with self.assertRaises(ValueError):
            PasswordHasher(iterations=0)


class TestPasswordPolicy(unittest.TestCase):
    """Tests for check_strength and validate_password."""

    def test_strong(self):
        result = check_strength("Adm1n!pass")
        self.assertEqual(result["strength"], "strong")
        self.assertEqual(result["score"], 5)
        self.assertEqual(result["max_score"], 5)

    def test_weak(self):
        result = check_strength("abc")
        self.assertEqual(result["strength"], "weak")
        self.assertFalse(result["checks"]["length"])

    def test_validate_accepts(self):
        validate_password("Passw0rdX")

    def test_validate_too_short(self):
        with self.assertRaises(ValueError) as ctx:
            validate_password("Ab1!")
        self.assertIn("at least 8", str(ctx.exception))

    def test_validate_too_weak(self):
        with self.assertRaises(ValueError):
            validate_password("alllowercase")

    def test_validate_missing(self):
        with self.assertRaises(ValueError):
            validate_password("")


if __name__ == "__main__":
    unittest.main()
