"""
User management service: org listing, role changes, cascade delete.

Authorization has already happened by the time these run; callers pass the
``TenantContext`` the guard produced and nothing here compares roles.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.authz.context import TenantContext
from app.core.errors import Conflict, NotFound
from app.models.membership import ProjectMembership
from app.models.user import User
from docify_shared.schemas.common import OrgRole

log = structlog.get_logger()


async def list_org_users(org_id: uuid.UUID, session: AsyncSession) -> list[User]:
    """List all users that belong to an org."""
    result = await session.execute(
        select(User).where(User.org_id == org_id).order_by(User.email)
    )
    return list(result.scalars().all())


async def change_org_role(
    context: TenantContext,
    new_role: OrgRole,
    expected_version: Optional[int],
    session: AsyncSession,
) -> User:
    """
    Set the target's organization role with a compare-and-set on ``version``.

    The write is pinned to the version the authorization decision was made
    on. A client ``expected_version`` that differs from it, or any change to
    the row since the context was built, is a Conflict.
    """
    target = context.target
    version = target.principal.version
    if expected_version is not None and expected_version != version:
        raise Conflict(
            "User was modified since it was read; re-read and retry",
            meta={"user_id": str(target.principal.id), "expected_version": expected_version},
        )

    result = await session.execute(
        update(User)
        .where(User.id == target.principal.id, User.version == version)
        .values(role=new_role.value, version=User.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise Conflict(
            "User was modified concurrently; re-read and retry",
            meta={"user_id": str(target.principal.id), "expected_version": version},
        )

    user = (
        await session.execute(
            select(User)
            .where(User.id == target.principal.id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    log.info(
        "user.role_changed",
        user_id=str(user.id),
        org_id=str(context.organization.id),
        actor_id=str(context.principal.id),
        old_role=target.principal.role.value,
        new_role=new_role.value,
        version=user.version,
    )
    return user


async def delete_user_cascade(
    user_id: uuid.UUID,
    session: AsyncSession,
    expected_version: Optional[int] = None,
) -> int:
    """
    Delete a user and their project memberships in the caller's transaction.

    With ``expected_version`` the row is claimed first with a compare-and-set,
    so a user changed since the caller read it is a Conflict and nothing is
    deleted. Returns the number of memberships removed.
    """
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    if expected_version is not None:
        claimed = await session.execute(
            update(User)
            .where(User.id == user_id, User.version == expected_version)
            .values(version=User.version + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise Conflict(
                "User was modified since it was read; re-read and retry",
                meta={"user_id": str(user_id), "expected_version": expected_version},
            )

    result = await session.execute(
        delete(ProjectMembership).where(ProjectMembership.user_id == user_id)
    )
    await session.delete(user)
    await session.flush()

    removed = result.rowcount or 0
    log.info("user.deleted", user_id=str(user_id), memberships_removed=removed)
    return removed


async def provision_user(
    context: TenantContext, role: OrgRole, session: AsyncSession
) -> User:
    """Attach a user with no organization to the context org at ``role``."""
    target = context.target.principal
    if target.org_id is not None:
        raise Conflict("User already belongs to an organization")

    result = await session.execute(
        update(User)
        .where(
            User.id == target.id,
            User.version == target.version,
            User.org_id.is_(None),
        )
        .values(org_id=context.organization.id, role=role.value, version=User.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise Conflict(
            "User was modified since it was read; re-read and retry",
            meta={"user_id": str(target.id), "expected_version": target.version},
        )

    user = (
        await session.execute(
            select(User).where(User.id == target.id).execution_options(populate_existing=True)
        )
    ).scalar_one()

    log.info(
        "user.provisioned",
        user_id=str(user.id),
        org_id=str(context.organization.id),
        actor_id=str(context.principal.id),
        role=role.value,
    )
    return user
