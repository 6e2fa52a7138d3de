"""User model."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, VersionMixin


class User(UUIDMixin, TimestampMixin, VersionMixin, SQLModel, table=True):
    __tablename__ = "users"

    external_id: str = Field(unique=True, nullable=False, index=True)  # identity provider subject
    email: str = Field(nullable=False, index=True)
    display_name: str = Field(nullable=False)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    role: str = Field(nullable=False, default="user")  # super_admin | org_admin | manager | user | viewer
    # NULL only for super_admin
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
