"""
SQLite record store for cardsafe.

This module provides the RecordStore class, the bundled implementation of
the RecordStorage interface. It keeps the ID-card application's four record
collections in a single SQLite database:

    data/
        idcard.db
            users              # card holders (photo + additional data)
            templates          # card layouts, unique by name
            auth               # login credentials, unique by username
            predefined_fields  # field definitions, unique by label

Design Decisions:
    - Connection-per-operation, so no handle is held across awaits
    - Upserts use SQLite's ON CONFLICT clause on the natural key
    - Users have no natural key; they are matched by row id, and a restored
      user keeps its original id when that id is free
    - Login passwords are stored only as PasswordHasher hashes; values that
      are already hashes (for example from a backup) are stored unchanged
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cardsafe.storage.base import RecordStorage
from cardsafe.storage.models import Credential, PredefinedField, Template, User
from cardsafe.storage.passwords import PasswordHasher

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a record store operation fails."""

    pass


DATABASE_FILE = "idcard.db"

# Database schema version for migrations
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS auth (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT UNIQUE NOT NULL,
    password TEXT NOT NULL,
    createdAt DATETIME DEFAULT CURRENT_TIMESTAMP,
    updatedAt DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS predefined_fields (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT UNIQUE NOT NULL,
    defaultValue TEXT,
    fieldType TEXT DEFAULT 'text',
    isRequired INTEGER DEFAULT 0,
    isActive INTEGER DEFAULT 1,
    displayOrder INTEGER DEFAULT 0,
    createdAt DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS templates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    thumbnail TEXT,
    templateData TEXT NOT NULL,
    cardWidthMm REAL DEFAULT 85.6,
    cardHeightMm REAL DEFAULT 54,
    createdAt DATETIME DEFAULT CURRENT_TIMESTAMP,
    updatedAt DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    photo TEXT NOT NULL,
    additionalData TEXT,
    createdAt DATETIME DEFAULT CURRENT_TIMESTAMP,
    updatedAt DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

DEFAULT_FIELDS = [
    PredefinedField(
        label="Profile Photo",
        default_value="",
        field_type="photo",
        is_required=True,
        display_order=4,
    ),
]


class RecordStore(RecordStorage):
    """
    SQLite-backed record storage.

    Example:
        store = RecordStore(data_dir=Path("./data"))

        store.upsert_template(Template(name="Staff", template_data={"elements": []}))
        await store.upsert_credential(Credential(username="admin", password="Adm1n!pass"))

        templates = store.get_all_templates()

    Attributes:
        data_dir: Directory containing the database.
        db_path: Path to the SQLite database file.
        hasher: Hasher applied to plaintext credential passwords.
    """

    def __init__(
        self,
        data_dir: Path | str | None = None,
        hasher: PasswordHasher | None = None,
    ) -> None:
        """
        Initialize the record store, creating the schema if needed.

        Args:
            data_dir: Directory for the database. Defaults to ~/.cardsafe/data
            hasher: Password hasher for new credentials.
        """
        if data_dir is None:
            data_dir = Path.home() / ".cardsafe" / "data"
        elif isinstance(data_dir, str):
            data_dir = Path(data_dir)

        self.data_dir = data_dir
        self.db_path = data_dir / DATABASE_FILE
        self.hasher = hasher or PasswordHasher()

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._init_database()

    def _init_database(self) -> None:
        """Initialize the database schema."""
        try:
            with self._get_connection() as conn:
                conn.executescript(CREATE_TABLES_SQL)

                row = conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                ).fetchone()

                if row is None:
                    conn.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (SCHEMA_VERSION, datetime.now(UTC).isoformat()),
                    )
                    logger.info(f"Initialized database schema version {SCHEMA_VERSION}")
                elif row[0] < SCHEMA_VERSION:
                    logger.warning(
                        f"Database schema version {row[0]} is older than "
                        f"expected version {SCHEMA_VERSION}"
                    )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize database {self.db_path}: {e}") from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a database connection in autocommit mode.

        Yields:
            SQLite connection with row factory set.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            with self._get_connection() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}") from e

    # -------------------------------------------------------------------------
    # Read accessors
    # -------------------------------------------------------------------------

    def get_all_users(self) -> list[dict[str, Any]]:
        """Return every user, oldest first."""
        rows = self._query("SELECT * FROM users ORDER BY id ASC")
        return [
            User(
                photo=row["photo"],
                additional_data=_load_json(row["additionalData"], {}),
                id=row["id"],
                created_at=row["createdAt"],
                updated_at=row["updatedAt"],
            ).to_dict()
            for row in rows
        ]

    def get_all_templates(self) -> list[dict[str, Any]]:
        """Return every template with decoded canvas data."""
        rows = self._query("SELECT * FROM templates ORDER BY id ASC")
        return [
            Template(
                name=row["name"],
                template_data=_load_json(row["templateData"], None),
                thumbnail=row["thumbnail"],
                card_width_mm=row["cardWidthMm"],
                card_height_mm=row["cardHeightMm"],
                id=row["id"],
                created_at=row["createdAt"],
                updated_at=row["updatedAt"],
            ).to_dict()
            for row in rows
        ]

    def get_all_credentials(self) -> list[dict[str, Any]]:
        """Return every credential including its password hash."""
        rows = self._query("SELECT * FROM auth ORDER BY id ASC")
        return [
            Credential(
                username=row["username"],
                password=row["password"],
                id=row["id"],
                created_at=row["createdAt"],
                updated_at=row["updatedAt"],
            ).to_dict()
            for row in rows
        ]

    def get_all_predefined_fields(self) -> list[dict[str, Any]]:
        """Return every field definition in display order."""
        rows = self._query(
            "SELECT * FROM predefined_fields ORDER BY displayOrder ASC, id ASC"
        )
        return [
            PredefinedField(
                label=row["label"],
                default_value=row["defaultValue"],
                field_type=row["fieldType"],
                is_required=bool(row["isRequired"]),
                is_active=bool(row["isActive"]),
                display_order=row["displayOrder"],
                id=row["id"],
                created_at=row["createdAt"],
            ).to_dict()
            for row in rows
        ]

    def counts(self) -> dict[str, int]:
        """Row counts per collection, for diagnostics."""
        tables = {
            "users": "users",
            "templates": "templates",
            "credentials": "auth",
            "fields": "predefined_fields",
        }
        result = {}
        for name, table in tables.items():
            (count,) = self._query(f"SELECT COUNT(*) FROM {table}")[0]  # noqa: S608
            result[name] = count
        return result

    # -------------------------------------------------------------------------
    # Write accessors
    # -------------------------------------------------------------------------

    def upsert_user(self, user: User) -> int:
        """
        Update the user with ``user.id`` if it exists, otherwise insert.

        A new row reuses ``user.id`` when given, so restoring into an empty
        database preserves user identities.

        Raises:
            StorageError: If the write fails (e.g. missing photo).
        """
        additional = json.dumps(user.additional_data or {})
        try:
            with self._get_connection() as conn:
                if user.id is not None:
                    cursor = conn.execute(
                        "UPDATE users SET photo = ?, additionalData = ?, "
                        "updatedAt = CURRENT_TIMESTAMP WHERE id = ?",
                        (user.photo, additional, user.id),
                    )
                    if cursor.rowcount:
                        return user.id
                    cursor = conn.execute(
                        "INSERT INTO users (id, photo, additionalData) VALUES (?, ?, ?)",
                        (user.id, user.photo, additional),
                    )
                else:
                    cursor = conn.execute(
                        "INSERT INTO users (photo, additionalData) VALUES (?, ?)",
                        (user.photo, additional),
                    )
                return int(cursor.lastrowid or 0)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save user: {e}") from e

    def upsert_template(self, template: Template) -> int:
        """
        Insert a template or update the one with the same name.

        Raises:
            StorageError: If the write fails.
        """
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO templates (name, thumbnail, templateData, cardWidthMm, cardHeightMm)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        thumbnail = excluded.thumbnail,
                        templateData = excluded.templateData,
                        cardWidthMm = excluded.cardWidthMm,
                        cardHeightMm = excluded.cardHeightMm,
                        updatedAt = CURRENT_TIMESTAMP
                    """,
                    (
                        template.name,
                        template.thumbnail,
                        json.dumps(template.template_data),
                        template.card_width_mm,
                        template.card_height_mm,
                    ),
                )
                row = conn.execute(
                    "SELECT id FROM templates WHERE name = ?", (template.name,)
                ).fetchone()
                return int(row["id"])
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save template '{template.name}': {e}") from e

    async def upsert_credential(self, credential: Credential) -> int:
        """
        Insert a credential or update the one with the same username.

        Plaintext passwords are hashed in a worker thread; values that are
        already hashes are stored unchanged so restored credentials keep
        working with their original password.

        Raises:
            StorageError: If the write fails.
            ValueError: If the password is empty.
        """
        password = credential.password
        if not self.hasher.is_hashed(password):
            password = await asyncio.to_thread(self.hasher.hash, password)

        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO auth (username, password) VALUES (?, ?)
                    ON CONFLICT(username) DO UPDATE SET
                        password = excluded.password,
                        updatedAt = CURRENT_TIMESTAMP
                    """,
                    (credential.username, password),
                )
                row = conn.execute(
                    "SELECT id FROM auth WHERE username = ?", (credential.username,)
                ).fetchone()
                return int(row["id"])
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to save credential '{credential.username}': {e}"
            ) from e

    def upsert_predefined_field(self, field: PredefinedField) -> int:
        """
        Insert a field or update the one with the same label.

        Raises:
            StorageError: If the write fails.
        """
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO predefined_fields
                        (label, defaultValue, fieldType, isRequired, isActive, displayOrder)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(label) DO UPDATE SET
                        defaultValue = excluded.defaultValue,
                        fieldType = excluded.fieldType,
                        isRequired = excluded.isRequired,
                        isActive = excluded.isActive,
                        displayOrder = excluded.displayOrder
                    """,
                    (
                        field.label,
                        field.default_value,
                        field.field_type,
                        1 if field.is_required else 0,
                        1 if field.is_active else 0,
                        field.display_order,
                    ),
                )
                row = conn.execute(
                    "SELECT id FROM predefined_fields WHERE label = ?", (field.label,)
                ).fetchone()
                return int(row["id"])
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save field '{field.label}': {e}") from e

    def seed_default_fields(self) -> int:
        """
        Create the default field definitions if the table is empty.

        Returns:
            Number of fields created.
        """
        (count,) = self._query("SELECT COUNT(*) FROM predefined_fields")[0]
        if count:
            return 0

        for field in DEFAULT_FIELDS:
            self.upsert_predefined_field(field)
        logger.info(f"Created {len(DEFAULT_FIELDS)} default predefined fields")
        return len(DEFAULT_FIELDS)


def _load_json(value: str | None, default: Any) -> Any:
    """Decode a JSON column, raising StorageError on corrupt content."""
    if value is None or value == "":
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise StorageError(f"Corrupt JSON column: {e}") from e
