"""
Organization and permission-check schemas shared between the server and
its clients.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import CheckMode, Permission, Scope


class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PermissionCheckRequest(BaseModel):
    """Ask whether the caller holds one or more permissions in an org/project."""
    permissions: list[Permission] = Field(min_length=1)
    mode: CheckMode = CheckMode.ALL
    project_id: Optional[uuid.UUID] = None


class DecisionResponse(BaseModel):
    allowed: bool
    reason: str
    matched_scope: Optional[Scope] = None


class PermissionCheckResponse(BaseModel):
    decision: DecisionResponse
    organization_permissions: list[Permission] = Field(default_factory=list)
    project_permissions: list[Permission] = Field(default_factory=list)
