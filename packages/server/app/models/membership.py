"""Project membership (join table carrying the project role)."""

import uuid

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, VersionMixin


class ProjectMembership(UUIDMixin, TimestampMixin, VersionMixin, SQLModel, table=True):
    __tablename__ = "project_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="uq_memberships_user_project"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="member")  # owner | admin | member | viewer
