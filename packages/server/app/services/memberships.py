"""
Project membership service: add, re-role and remove members.

Every write here acts on ``context.target``, which the guard has already
checked against the self/top-role protections, the escalation ceiling and
the project's organization.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.authz.context import MembershipRef, TenantContext
from app.core.errors import Conflict, NotFound
from app.models.membership import ProjectMembership
from docify_shared.schemas.common import ProjectRole

log = structlog.get_logger()


def _target_membership(context: TenantContext) -> MembershipRef:
    membership = context.target.membership if context.target else None
    if membership is None:
        raise NotFound("Membership not found")
    return membership


async def _owner_count(context: TenantContext, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(ProjectMembership)
        .where(
            ProjectMembership.project_id == context.project.id,
            ProjectMembership.role == ProjectRole.OWNER.value,
        )
    )
    return result.scalar_one()


async def add_member(
    context: TenantContext, role: ProjectRole, session: AsyncSession
) -> ProjectMembership:
    """Add the target user to the context project."""
    target = context.target
    if target.membership is not None:
        raise Conflict("User is already a member of this project")

    membership = ProjectMembership(
        user_id=target.principal.id,
        project_id=context.project.id,
        role=role.value,
    )
    session.add(membership)
    try:
        await session.flush()
    except IntegrityError:
        # Lost a race with another add for the same (user, project)
        raise Conflict("User is already a member of this project") from None

    log.info(
        "membership.added",
        user_id=str(target.principal.id),
        project_id=str(context.project.id),
        actor_id=str(context.principal.id),
        role=role.value,
    )
    return membership


async def update_member_role(
    context: TenantContext,
    new_role: ProjectRole,
    expected_version: Optional[int],
    session: AsyncSession,
) -> ProjectMembership:
    """
    Change the target's project role with a compare-and-set on ``version``.

    Pinned to the membership version the decision was made on; see
    ``users.change_org_role``.
    """
    current = _target_membership(context)
    if expected_version is not None and expected_version != current.version:
        raise Conflict(
            "Membership was modified since it was read; re-read and retry",
            meta={"user_id": str(current.user_id), "expected_version": expected_version},
        )
    if current.role == ProjectRole.OWNER and new_role != ProjectRole.OWNER:
        if await _owner_count(context, session) <= 1:
            raise Conflict("Cannot demote the last owner of a project")

    version = current.version
    result = await session.execute(
        update(ProjectMembership)
        .where(
            ProjectMembership.user_id == current.user_id,
            ProjectMembership.project_id == current.project_id,
            ProjectMembership.version == version,
        )
        .values(role=new_role.value, version=ProjectMembership.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise Conflict(
            "Membership was modified concurrently; re-read and retry",
            meta={"user_id": str(current.user_id), "expected_version": version},
        )

    membership = (
        await session.execute(
            select(ProjectMembership)
            .where(
                ProjectMembership.user_id == current.user_id,
                ProjectMembership.project_id == current.project_id,
            )
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    log.info(
        "membership.role_changed",
        user_id=str(current.user_id),
        project_id=str(current.project_id),
        actor_id=str(context.principal.id),
        old_role=current.role.value,
        new_role=new_role.value,
        version=membership.version,
    )
    return membership


async def remove_member(context: TenantContext, session: AsyncSession) -> None:
    """Remove the target's membership from the context project."""
    current = _target_membership(context)
    if current.role == ProjectRole.OWNER and await _owner_count(context, session) <= 1:
        raise Conflict("Cannot remove the last owner of a project")

    result = await session.execute(
        delete(ProjectMembership)
        .where(
            ProjectMembership.user_id == current.user_id,
            ProjectMembership.project_id == current.project_id,
            ProjectMembership.version == current.version,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise Conflict("Membership was modified concurrently; re-read and retry")

    log.info(
        "membership.removed",
        user_id=str(current.user_id),
        project_id=str(context.project.id),
        actor_id=str(context.principal.id),
    )
