"""
Data models for the record store.

This module defines the dataclasses used to represent the four persisted
record types: users, card templates, login credentials and predefined fields.

Schema Design Decisions:
    - Dictionary keys are camelCase to match the database columns and the
      backup payload format, so backups stay interoperable across versions
    - Timestamps are kept as the strings SQLite produced them as
    - Structured data (additionalData, templateData) is stored as JSON TEXT
      and exposed as decoded Python objects
    - from_dict() raises ValueError when a required field is missing so
      callers can reject one malformed record without touching the rest
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Default card dimensions (ISO/IEC 7810 ID-1), in millimeters
DEFAULT_CARD_WIDTH_MM = 85.6
DEFAULT_CARD_HEIGHT_MM = 54.0


def _require(data: dict[str, Any], key: str, kind: str) -> Any:
    """Return a required value or raise ValueError naming the missing field."""
    if not isinstance(data, dict):
        raise ValueError(f"{kind} record must be an object, got {type(data).__name__}")
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"{kind} record is missing required field '{key}'")
    return value


@dataclass
class User:
    """
    A card holder record.

    Attributes:
        photo: Reference to the identifying photo (data URL or path).
        additional_data: Free-form field values keyed by field label.
        id: Row identity, None for records not yet stored.
    """

    photo: str
    additional_data: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage and backups."""
        return {
            "id": self.id,
            "photo": self.photo,
            "additionalData": self.additional_data,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        """Create from dictionary."""
        photo = _require(data, "photo", "User")
        additional = data.get("additionalData") or {}
        if not isinstance(additional, dict):
            raise ValueError("User field 'additionalData' must be an object")
        return cls(
            photo=str(photo),
            additional_data=additional,
            id=_optional_int(data.get("id")),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Template:
    """A card layout: canvas elements plus physical card size."""

    name: str
    template_data: Any
    thumbnail: str | None = None
    card_width_mm: float = DEFAULT_CARD_WIDTH_MM
    card_height_mm: float = DEFAULT_CARD_HEIGHT_MM
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage and backups."""
        return {
            "id": self.id,
            "name": self.name,
            "thumbnail": self.thumbnail,
            "templateData": self.template_data,
            "cardWidthMm": self.card_width_mm,
            "cardHeightMm": self.card_height_mm,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Template:
        """Create from dictionary. Missing dimensions fall back to ID-1 size."""
        name = _require(data, "name", "Template")
        template_data = _require(data, "templateData", "Template")
        return cls(
            name=str(name),
            template_data=template_data,
            thumbnail=data.get("thumbnail"),
            card_width_mm=float(data.get("cardWidthMm") or DEFAULT_CARD_WIDTH_MM),
            card_height_mm=float(data.get("cardHeightMm") or DEFAULT_CARD_HEIGHT_MM),
            id=_optional_int(data.get("id")),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Credential:
    """
    A login credential.

    The password is always the stored hash; plaintext only exists transiently
    while a new credential is being created.
    """

    username: str
    password: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage and backups."""
        return {
            "id": self.id,
            "username": self.username,
            "password": self.password,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        """Create from dictionary."""
        return cls(
            username=str(_require(data, "username", "Credential")),
            password=str(_require(data, "password", "Credential")),
            id=_optional_int(data.get("id")),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class PredefinedField:
    """A field definition shared by user forms and template elements."""

    label: str
    default_value: str | None = None
    field_type: str = "text"
    is_required: bool = False
    is_active: bool = True
    display_order: int = 0
    id: int | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage and backups."""
        return {
            "id": self.id,
            "label": self.label,
            "defaultValue": self.default_value,
            "fieldType": self.field_type,
            "isRequired": self.is_required,
            "isActive": self.is_active,
            "displayOrder": self.display_order,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PredefinedField:
        """Create from dictionary."""
        label = _require(data, "label", "Field")
        is_active = data.get("isActive")
        return cls(
            label=str(label),
            default_value=data.get("defaultValue"),
            field_type=str(data.get("fieldType") or "text"),
            is_required=bool(data.get("isRequired")),
            is_active=True if is_active is None else bool(is_active),
            display_order=int(data.get("displayOrder") or 0),
            id=_optional_int(data.get("id")),
            created_at=data.get("createdAt"),
        )


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid id: {value!r}") from e
