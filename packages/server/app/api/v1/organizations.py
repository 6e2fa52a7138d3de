"""
Organization endpoints.

GET    /api/v1/orgs/{org_id}                     - Get org details
POST   /api/v1/orgs/{org_id}/permissions/check   - Evaluate permissions for the caller
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.context import ResourceRef, TenantContext
from app.authz.engine import decide, effective_permissions
from app.authz.guard import load_context, require, resource_ref_from_path
from app.core.database import get_session
from app.core.errors import NotFound
from app.models.organization import Organization
from docify_shared.schemas.common import Permission, Scope
from docify_shared.schemas.organizations import (
    DecisionResponse,
    OrgResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
)

router = APIRouter()


@router.get("", response_model=OrgResponse, tags=["Organizations"])
async def get_org(
    context: TenantContext = Depends(require(Permission.VIEW_ORGANIZATION)),
    session: AsyncSession = Depends(get_session),
):
    """Get org details."""
    org = await session.get(Organization, context.organization.id)
    if not org:
        raise NotFound("Organization not found")
    return OrgResponse.model_validate(org)


@router.post(
    "/permissions/check",
    response_model=PermissionCheckResponse,
    tags=["Organizations"],
)
async def check_permissions(
    body: PermissionCheckRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """
    Report whether the caller holds ``permissions`` in this org (and project).

    Always 200 for an authenticated caller on an existing resource; the
    verdict is in ``decision.allowed``.
    """
    base = resource_ref_from_path(request.path_params)
    ref = ResourceRef(org_id=base.org_id, project_id=body.project_id)
    context = await load_context(request, session, ref)

    decision = decide(context, body.permissions, body.mode)
    granted = effective_permissions(context)
    return PermissionCheckResponse(
        decision=DecisionResponse(
            allowed=decision.allowed,
            reason=decision.reason,
            matched_scope=decision.matched_scope,
        ),
        organization_permissions=sorted(granted[Scope.ORGANIZATION], key=lambda p: p.value),
        project_permissions=sorted(granted[Scope.PROJECT], key=lambda p: p.value),
    )
