"""User and organization-role schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, UUID4

from .common import OrgRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class UserProvisionRequest(BaseModel):
    """Attach a user that has no organization yet."""
    user_id: UUID4
    role: OrgRole = OrgRole.USER


class UserRoleUpdateRequest(BaseModel):
    """Change another user's organization role."""
    role: OrgRole
    expected_version: Optional[int] = Field(
        default=None,
        ge=1,
        description="Version the caller last read; the update is rejected if the row changed since",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserResponse(BaseModel):
    """Single user response."""
    id: UUID4
    email: str
    display_name: str
    role: OrgRole
    org_id: Optional[UUID4] = None
    image_url: Optional[str] = None
    version: int
    created_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    """List of users in an org."""
    data: List[UserResponse]


class LandingResponse(BaseModel):
    path: str
    accessible_paths: List[str] = Field(default_factory=list)
    requested_path: Optional[str] = None
    can_access: Optional[bool] = None
