from typing import Optional
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from .common import ProjectRole, ProjectStatus


class ProjectRead(BaseModel):
    id: UUID
    org_id: UUID
    name: str
    slug: str
    description: Optional[str] = None
    status: ProjectStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectMemberAdd(BaseModel):
    user_id: UUID
    role: ProjectRole = ProjectRole.MEMBER


class ProjectMemberUpdate(BaseModel):
    role: ProjectRole
    expected_version: Optional[int] = Field(default=None, ge=1)


class ProjectMemberRead(BaseModel):
    user_id: UUID
    project_id: UUID
    role: ProjectRole
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}
