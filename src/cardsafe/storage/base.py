"""
Record storage interface.

The backup engine depends on this interface rather than on a concrete
database, so it can be handed any store (the bundled SQLite RecordStore,
or a fake in tests). Every method may fail independently.

Read accessors return plain dictionaries in the backup wire format (see
``Model.to_dict()``). Write accessors take model instances and upsert them
by their natural key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from cardsafe.storage.models import Credential, PredefinedField, Template, User


class RecordStorage(ABC):
    """Abstract store for users, templates, credentials and fields."""

    @abstractmethod
    def get_all_users(self) -> list[dict[str, Any]]:
        """Return every user record."""

    @abstractmethod
    def get_all_templates(self) -> list[dict[str, Any]]:
        """Return every template, including its canvas data."""

    @abstractmethod
    def get_all_credentials(self) -> list[dict[str, Any]]:
        """Return every credential, with its password hash."""

    @abstractmethod
    def get_all_predefined_fields(self) -> list[dict[str, Any]]:
        """Return every field definition ordered by display order."""

    @abstractmethod
    def upsert_user(self, user: User) -> int:
        """Update the user with ``user.id`` if it exists, else insert. Returns the row id."""

    @abstractmethod
    def upsert_template(self, template: Template) -> int:
        """Insert or update a template keyed by name. Returns the row id."""

    @abstractmethod
    async def upsert_credential(self, credential: Credential) -> int:
        """
        Insert or update a credential keyed by username.

        Awaitable because storing a plaintext password requires an
        expensive hash. Returns the row id.
        """

    @abstractmethod
    def upsert_predefined_field(self, field: PredefinedField) -> int:
        """Insert or update a field keyed by label. Returns the row id."""
