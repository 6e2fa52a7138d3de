"""
Identity-provider lifecycle event payloads.

The provider posts ``user.created`` / ``user.updated`` / ``user.deleted``
events; only profile fields are ever read from them.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class IdentityEventType(str, Enum):
    CREATED = "user.created"
    UPDATED = "user.updated"
    DELETED = "user.deleted"


class EmailAddress(BaseModel):
    id: str
    email_address: EmailStr


class IdentityUserData(BaseModel):
    id: str = Field(min_length=1)
    email_addresses: list[EmailAddress] = Field(default_factory=list)
    primary_email_address_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None

    def primary_email(self) -> Optional[str]:
        for entry in self.email_addresses:
            if entry.id == self.primary_email_address_id:
                return entry.email_address
        return None

    def display_name(self, fallback: str) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or fallback


class IdentityEvent(BaseModel):
    type: IdentityEventType
    data: IdentityUserData


class IdentityEventResult(BaseModel):
    type: IdentityEventType
    external_id: str
    outcome: str  # created | unchanged | updated | deleted | ignored
