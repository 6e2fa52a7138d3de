"""
User management endpoints.

GET    /api/v1/orgs/{org_id}/users                   - List org members
POST   /api/v1/orgs/{org_id}/users                   - Provision a user into the org
PATCH  /api/v1/orgs/{org_id}/users/{user_id}/role    - Change a user's org role
DELETE /api/v1/orgs/{org_id}/users/{user_id}         - Delete a user
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.context import ResourceRef, TenantContext
from app.authz.engine import RoleChange
from app.authz.guard import enforce, require, resource_ref_from_path
from app.core.database import get_session
from app.services import users as user_service
from docify_shared.schemas.common import Permission
from docify_shared.schemas.users import (
    UserListResponse,
    UserProvisionRequest,
    UserResponse,
    UserRoleUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=UserListResponse, tags=["Users"])
async def list_users(
    context: TenantContext = Depends(require(Permission.VIEW_USERS)),
    session: AsyncSession = Depends(get_session),
):
    """List all members of the org."""
    users = await user_service.list_org_users(context.organization.id, session)
    return UserListResponse(data=[UserResponse.model_validate(u) for u in users])


@router.post("", response_model=UserResponse, status_code=201, tags=["Users"])
async def provision_user(
    body: UserProvisionRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Attach a user with no organization to this org, below the caller's rank."""
    base = resource_ref_from_path(request.path_params)
    ref = ResourceRef(org_id=base.org_id, target_user_id=body.user_id, unassigned_target=True)
    context = await enforce(
        request,
        session,
        ref,
        Permission.INVITE_USERS,
        change=RoleChange(org_role=body.role),
    )
    user = await user_service.provision_user(context, body.role, session)
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/role", response_model=UserResponse, tags=["Users"])
async def change_role(
    body: UserRoleUpdateRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Change another user's organization role. 409 if ``expected_version`` is stale."""
    ref = resource_ref_from_path(request.path_params, target_param="user_id")
    context = await enforce(
        request,
        session,
        ref,
        Permission.MANAGE_USERS,
        change=RoleChange(org_role=body.role),
    )
    user = await user_service.change_org_role(context, body.role, body.expected_version, session)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=204, tags=["Users"])
async def delete_user(
    context: TenantContext = Depends(require(Permission.MANAGE_USERS, target_param="user_id")),
    session: AsyncSession = Depends(get_session),
):
    """Delete a user and their project memberships."""
    target = context.target.principal
    await user_service.delete_user_cascade(target.id, session, expected_version=target.version)
