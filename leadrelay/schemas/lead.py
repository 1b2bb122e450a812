from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, field_validator

NOTES_MAX_LENGTH = 2000


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"


class ContactMethod(str, Enum):
    PHONE = "phone"
    TEXT = "text"
    WHATSAPP = "whatsapp"
    UNKNOWN = "unknown"


def _coerce_enum(enum_cls, value: Any):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in enum_cls:
            if member.value == normalized:
                return member
    return enum_cls("unknown")


class LeadFields(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    priority: Priority = Priority.UNKNOWN
    contact_method: ContactMethod = ContactMethod.UNKNOWN
    notes: str = ""

    @field_validator("name", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list, bool)):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, value: Any) -> Priority:
        return _coerce_enum(Priority, value)

    @field_validator("contact_method", mode="before")
    @classmethod
    def coerce_contact_method(cls, value: Any) -> ContactMethod:
        return _coerce_enum(ContactMethod, value)

    @field_validator("notes", mode="before")
    @classmethod
    def bound_notes(cls, value: Any) -> str:
        if value is None or isinstance(value, (dict, list)):
            return ""
        return str(value)[:NOTES_MAX_LENGTH]

    @classmethod
    def salvage(cls, raw_reply: Optional[str] = "") -> "LeadFields":
        """All-unknown record carrying the raw model output in notes."""
        return cls(notes=(raw_reply or "")[:NOTES_MAX_LENGTH])

    def sheet_row(self, timestamp: str) -> list[str]:
        return [
            timestamp,
            self.name or "",
            self.phone or "",
            self.priority.value,
            self.contact_method.value,
            self.notes or "",
        ]
