"""
Project endpoints: read and membership.

GET    /api/v1/orgs/{org_id}/projects/{project_id}
POST   /api/v1/orgs/{org_id}/projects/{project_id}/members
PATCH  /api/v1/orgs/{org_id}/projects/{project_id}/members/{user_id}
DELETE /api/v1/orgs/{org_id}/projects/{project_id}/members/{user_id}
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.context import ResourceRef, TenantContext
from app.authz.engine import RoleChange
from app.authz.guard import enforce, require, resource_ref_from_path
from app.core.database import get_session
from app.core.errors import NotFound
from app.models.project import Project
from app.services import memberships as membership_service
from docify_shared.schemas.common import Permission
from docify_shared.schemas.projects import (
    ProjectMemberAdd,
    ProjectMemberRead,
    ProjectMemberUpdate,
    ProjectRead,
)

router = APIRouter()


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    context: TenantContext = Depends(require(Permission.VIEW_PROJECT)),
    session: AsyncSession = Depends(get_session),
):
    project = await session.get(Project, context.project.id)
    if not project:
        raise NotFound("Project not found")
    return ProjectRead.model_validate(project)


@router.post(
    "/{project_id}/members",
    response_model=ProjectMemberRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    body: ProjectMemberAdd,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Add a user of this org to the project."""
    base = resource_ref_from_path(request.path_params)
    ref = ResourceRef(org_id=base.org_id, project_id=base.project_id, target_user_id=body.user_id)
    context = await enforce(
        request,
        session,
        ref,
        Permission.MANAGE_MEMBERS,
        change=RoleChange(project_role=body.role),
    )
    membership = await membership_service.add_member(context, body.role, session)
    return ProjectMemberRead.model_validate(membership)


@router.patch("/{project_id}/members/{user_id}", response_model=ProjectMemberRead)
async def update_member(
    body: ProjectMemberUpdate,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Change a member's project role. 409 if ``expected_version`` is stale."""
    ref = resource_ref_from_path(request.path_params, target_param="user_id")
    context = await enforce(
        request,
        session,
        ref,
        Permission.MANAGE_MEMBERS,
        change=RoleChange(project_role=body.role),
    )
    membership = await membership_service.update_member_role(
        context, body.role, body.expected_version, session
    )
    return ProjectMemberRead.model_validate(membership)


@router.delete("/{project_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    context: TenantContext = Depends(
        require(Permission.MANAGE_MEMBERS, target_param="user_id")
    ),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member from the project."""
    await membership_service.remove_member(context, session)
