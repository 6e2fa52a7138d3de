"""
Per-request tenant context.

``build_tenant_context`` loads the target organization, the optional
project, the caller's membership on that project and, for routes that act
on another user, that user and their membership. The result is a frozen
snapshot built once per request and handed to the decision engine and then
to the route handler; nothing downstream re-queries the store to decide.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.authz.catalog import TOP_ROLE, parse_org_role, parse_project_role, parse_project_status
from app.core.errors import NotFound
from app.models.membership import ProjectMembership
from app.models.organization import Organization
from app.models.project import Project
from app.models.user import User
from docify_shared.schemas.common import OrgRole, ProjectRole, ProjectStatus


@dataclass(frozen=True)
class Principal:
    id: uuid.UUID
    external_id: str
    email: str
    role: OrgRole
    org_id: Optional[uuid.UUID]
    version: int

    @property
    def is_top_role(self) -> bool:
        return self.role == TOP_ROLE

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            external_id=user.external_id,
            email=user.email,
            role=parse_org_role(user.role),
            org_id=user.org_id,
            version=user.version,
        )


@dataclass(frozen=True)
class OrganizationRef:
    id: uuid.UUID
    slug: str
    name: str


@dataclass(frozen=True)
class ProjectRef:
    id: uuid.UUID
    org_id: uuid.UUID
    slug: str
    status: ProjectStatus


@dataclass(frozen=True)
class MembershipRef:
    user_id: uuid.UUID
    project_id: uuid.UUID
    role: ProjectRole
    version: int

    @classmethod
    def from_row(cls, row: ProjectMembership) -> "MembershipRef":
        return cls(
            user_id=row.user_id,
            project_id=row.project_id,
            role=parse_project_role(row.role),
            version=row.version,
        )


@dataclass(frozen=True)
class TargetPrincipal:
    """The user a mutating request acts on, with their membership if any."""

    principal: Principal
    membership: Optional[MembershipRef] = None


@dataclass(frozen=True)
class ResourceRef:
    org_id: uuid.UUID
    project_id: Optional[uuid.UUID] = None
    target_user_id: Optional[uuid.UUID] = None
    # Also admit a target with no organization (provisioning)
    unassigned_target: bool = False


@dataclass(frozen=True)
class TenantContext:
    principal: Principal
    organization: OrganizationRef
    project: Optional[ProjectRef] = None
    membership: Optional[MembershipRef] = None
    target: Optional[TargetPrincipal] = None

    @property
    def same_tenant(self) -> bool:
        return self.principal.org_id == self.organization.id


async def _membership(
    session: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID
) -> Optional[MembershipRef]:
    result = await session.execute(
        select(ProjectMembership).where(
            ProjectMembership.user_id == user_id,
            ProjectMembership.project_id == project_id,
        )
    )
    row = result.scalar_one_or_none()
    return MembershipRef.from_row(row) if row else None


async def build_tenant_context(
    user: User, ref: ResourceRef, session: AsyncSession
) -> TenantContext:
    """Load everything a decision needs. Raises NotFound on missing or cross-tenant resources."""
    principal = Principal.from_user(user)

    org = await session.get(Organization, ref.org_id)
    if not org:
        raise NotFound("Organization not found")
    organization = OrganizationRef(id=org.id, slug=org.slug, name=org.name)

    project: Optional[ProjectRef] = None
    membership: Optional[MembershipRef] = None
    if ref.project_id is not None:
        row = await session.get(Project, ref.project_id)
        if not row or row.org_id != org.id:
            raise NotFound("Project not found")
        project = ProjectRef(
            id=row.id, org_id=row.org_id, slug=row.slug, status=parse_project_status(row.status)
        )
        membership = await _membership(session, principal.id, project.id)

    target: Optional[TargetPrincipal] = None
    if ref.target_user_id is not None:
        target = await _load_target(
            session, ref.target_user_id, organization, project, ref.unassigned_target
        )

    return TenantContext(
        principal=principal,
        organization=organization,
        project=project,
        membership=membership,
        target=target,
    )


async def _load_target(
    session: AsyncSession,
    user_id: uuid.UUID,
    organization: OrganizationRef,
    project: Optional[ProjectRef],
    unassigned: bool = False,
) -> TargetPrincipal:
    row = await session.get(User, user_id)
    if not row:
        raise NotFound("User not found in this organization")
    target = Principal.from_user(row)
    # Top-role users belong to no organization but are still addressable
    in_scope = target.org_id == organization.id or (unassigned and target.org_id is None)
    if not in_scope and not target.is_top_role:
        raise NotFound("User not found in this organization")

    membership = None
    if project is not None:
        membership = await _membership(session, target.id, project.id)
    return TargetPrincipal(principal=target, membership=membership)
