"""
Tests for role, membership and cascade-delete services.
"""

from __future__ import annotations

import pytest
from sqlalchemy import update
from sqlmodel import select

from app.authz.context import ResourceRef, build_tenant_context
from app.core.errors import Conflict, NotFound
from app.models.membership import ProjectMembership
from app.models.user import User
from app.services import memberships as membership_service
from app.services import users as user_service
from docify_shared.schemas.common import OrgRole, ProjectRole


@pytest.fixture
async def tenant(seed):
    org = await seed.org("acme")
    project = await seed.project(org)
    admin = await seed.user(org, role="org_admin")
    target = await seed.user(org, role="user")
    return {"org": org, "project": project, "admin": admin, "target": target}


async def _context(session, actor, org, project=None, target=None):
    ref = ResourceRef(
        org_id=org.id,
        project_id=project.id if project else None,
        target_user_id=target.id if target else None,
    )
    return await build_tenant_context(actor, ref, session)


class TestChangeOrgRole:
    async def test_bumps_version(self, session, tenant):
        ctx = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])
        user = await user_service.change_org_role(ctx, OrgRole.MANAGER, None, session)
        await session.commit()
        assert user.role == "manager"
        assert user.version == 2

    async def test_stale_version_conflicts(self, session, tenant):
        ctx = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])
        with pytest.raises(Conflict):
            await user_service.change_org_role(ctx, OrgRole.MANAGER, 7, session)

    async def test_losing_writer_gets_conflict(self, session, session_factory, tenant):
        # Both writers read version 1 before either commits
        first = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])
        second = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])

        await user_service.change_org_role(first, OrgRole.MANAGER, None, session)
        await session.commit()
        with pytest.raises(Conflict):
            await user_service.change_org_role(second, OrgRole.VIEWER, None, session)
        await session.rollback()

        async with session_factory() as fresh:
            stored = await fresh.get(User, tenant["target"].id)
            assert stored.role == "manager"
            assert stored.version == 2


class TestListOrgUsers:
    async def test_lists_only_own_org(self, session, seed, tenant):
        other = await seed.org("globex")
        await seed.user(other)
        users = await user_service.list_org_users(tenant["org"].id, session)
        assert {u.id for u in users} == {tenant["admin"].id, tenant["target"].id}


class TestDeleteUserCascade:
    async def test_removes_memberships_and_user(self, session, seed, session_factory, tenant):
        second = await seed.project(tenant["org"], slug="second")
        await seed.member(tenant["target"], tenant["project"])
        await seed.member(tenant["target"], second)
        await seed.member(tenant["admin"], second, role="owner")

        removed = await user_service.delete_user_cascade(tenant["target"].id, session)
        await session.commit()
        assert removed == 2

        async with session_factory() as fresh:
            assert await fresh.get(User, tenant["target"].id) is None
            rows = (await fresh.execute(select(ProjectMembership))).scalars().all()
            assert [r.user_id for r in rows] == [tenant["admin"].id]

    async def test_missing_user(self, session, tenant):
        with pytest.raises(NotFound):
            await user_service.delete_user_cascade(tenant["org"].id, session)


class TestMemberships:
    async def test_add_member(self, session, tenant):
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        membership = await membership_service.add_member(ctx, ProjectRole.ADMIN, session)
        await session.commit()
        assert membership.role == "admin"
        assert membership.version == 1

    async def test_add_existing_member_conflicts(self, session, seed, tenant):
        await seed.member(tenant["target"], tenant["project"])
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        with pytest.raises(Conflict):
            await membership_service.add_member(ctx, ProjectRole.MEMBER, session)

    async def test_update_member_role(self, session, seed, tenant):
        await seed.member(tenant["target"], tenant["project"], role="viewer")
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        membership = await membership_service.update_member_role(ctx, ProjectRole.MEMBER, 1, session)
        assert membership.role == "member"
        assert membership.version == 2

    async def test_update_with_stale_version_conflicts(self, session, seed, tenant):
        await seed.member(tenant["target"], tenant["project"], role="viewer")
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        with pytest.raises(Conflict):
            await membership_service.update_member_role(ctx, ProjectRole.MEMBER, 3, session)

    async def test_update_non_member_not_found(self, session, tenant):
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        with pytest.raises(NotFound):
            await membership_service.update_member_role(ctx, ProjectRole.MEMBER, None, session)

    async def test_last_owner_cannot_be_demoted(self, session, seed, tenant):
        await seed.member(tenant["target"], tenant["project"], role="owner")
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        with pytest.raises(Conflict, match="last owner"):
            await membership_service.update_member_role(ctx, ProjectRole.ADMIN, None, session)

    async def test_last_owner_cannot_be_removed(self, session, seed, tenant):
        await seed.member(tenant["target"], tenant["project"], role="owner")
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        with pytest.raises(Conflict, match="last owner"):
            await membership_service.remove_member(ctx, session)

    async def test_owner_removable_when_another_owner_remains(self, session, seed, tenant):
        await seed.member(tenant["target"], tenant["project"], role="owner")
        await seed.member(tenant["admin"], tenant["project"], role="owner")
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        await membership_service.remove_member(ctx, session)
        await session.commit()
        rows = (await session.execute(select(ProjectMembership))).scalars().all()
        assert [r.user_id for r in rows] == [tenant["admin"].id]


async def _concurrent_write(session_factory, model, *criteria, **values):
    """Commit a change from another session, as a racing request would."""
    async with session_factory() as other:
        await other.execute(
            update(model).where(*criteria).values(version=model.version + 1, **values)
        )
        await other.commit()


class TestDecisionPinnedToVersion:
    """Writes must act on the row the authorization decision saw."""

    async def test_role_change_after_promotion_to_top_role_conflicts(self, session, session_factory, tenant):
        ctx = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])
        await session.commit()
        await _concurrent_write(
            session_factory, User, User.id == tenant["target"].id, role="super_admin", org_id=None
        )

        with pytest.raises(Conflict):
            await user_service.change_org_role(ctx, OrgRole.VIEWER, 2, session)
        await session.rollback()
        with pytest.raises(Conflict):
            await user_service.change_org_role(ctx, OrgRole.VIEWER, None, session)
        await session.rollback()

        async with session_factory() as fresh:
            stored = await fresh.get(User, tenant["target"].id)
            assert stored.role == "super_admin"
            assert stored.version == 2

    async def test_expected_version_must_match_context(self, session, tenant):
        ctx = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])
        with pytest.raises(Conflict, match="modified since it was read"):
            await user_service.change_org_role(ctx, OrgRole.MANAGER, 2, session)

    async def test_member_role_change_after_concurrent_update_conflicts(self, session, seed, session_factory, tenant):
        await seed.member(tenant["target"], tenant["project"], role="viewer")
        ctx = await _context(session, tenant["admin"], tenant["org"], tenant["project"], tenant["target"])
        await session.commit()
        await _concurrent_write(
            session_factory,
            ProjectMembership,
            ProjectMembership.user_id == tenant["target"].id,
            role="owner",
        )

        with pytest.raises(Conflict):
            await membership_service.update_member_role(ctx, ProjectRole.MEMBER, 2, session)
        await session.rollback()

        async with session_factory() as fresh:
            row = (
                await fresh.execute(
                    select(ProjectMembership).where(ProjectMembership.user_id == tenant["target"].id)
                )
            ).scalar_one()
            assert row.role == "owner"

    async def test_delete_after_promotion_conflicts(self, session, seed, session_factory, tenant):
        await seed.member(tenant["target"], tenant["project"])
        ctx = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])
        await session.commit()
        await _concurrent_write(session_factory, User, User.id == tenant["target"].id, role="org_admin")

        with pytest.raises(Conflict):
            await user_service.delete_user_cascade(
                ctx.target.principal.id, session, expected_version=ctx.target.principal.version
            )
        await session.rollback()

        async with session_factory() as fresh:
            assert await fresh.get(User, tenant["target"].id) is not None
            assert len((await fresh.execute(select(ProjectMembership))).scalars().all()) == 1

    async def test_delete_with_current_version(self, session, tenant):
        ctx = await _context(session, tenant["admin"], tenant["org"], target=tenant["target"])
        await user_service.delete_user_cascade(
            ctx.target.principal.id, session, expected_version=ctx.target.principal.version
        )
        await session.commit()
        assert (await session.execute(select(User).where(User.id == tenant["target"].id))).first() is None


class TestProvisionUser:
    async def test_attaches_unassigned_user(self, session, seed, tenant):
        newcomer = await seed.user(None)
        ref = ResourceRef(org_id=tenant["org"].id, target_user_id=newcomer.id, unassigned_target=True)
        ctx = await build_tenant_context(tenant["admin"], ref, session)

        user = await user_service.provision_user(ctx, OrgRole.MANAGER, session)
        await session.commit()
        assert user.org_id == tenant["org"].id
        assert user.role == "manager"
        assert user.version == 2

    async def test_user_already_in_org_conflicts(self, session, tenant):
        ref = ResourceRef(org_id=tenant["org"].id, target_user_id=tenant["target"].id, unassigned_target=True)
        ctx = await build_tenant_context(tenant["admin"], ref, session)
        with pytest.raises(Conflict):
            await user_service.provision_user(ctx, OrgRole.USER, session)

    async def test_unassigned_user_hidden_without_flag(self, session, seed, tenant):
        newcomer = await seed.user(None)
        with pytest.raises(NotFound):
            await _context(session, tenant["admin"], tenant["org"], target=newcomer)
