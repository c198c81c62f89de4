"""
Record storage for the ID-card application.

This module provides the storage interface the backup engine depends on and
a bundled SQLite implementation of it.

Features:
    - Four collections: users, templates, credentials, predefined fields
    - Natural-key upserts (template name, username, field label)
    - Login passwords stored only as PBKDF2 hashes

Usage:
    from cardsafe.storage import RecordStore

    store = RecordStore()
    store.seed_default_fields()
    users = store.get_all_users()
"""

from cardsafe.storage.base import RecordStorage
from cardsafe.storage.models import (
    Credential,
    PredefinedField,
    Template,
    User,
)
from cardsafe.storage.passwords import (
    PasswordHasher,
    check_strength,
    validate_password,
)
from cardsafe.storage.record_store import RecordStore, StorageError

__all__ = [
    # Interface and implementation
    "RecordStorage",
    "RecordStore",
    # Data models
    "User",
    "Template",
    "Credential",
    "PredefinedField",
    # Passwords
    "PasswordHasher",
    "check_strength",
    "validate_password",
    # Exceptions
    "StorageError",
]
