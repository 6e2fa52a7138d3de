"""
Tests for the route guard chain against a real (SQLite) store.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.authz import guard
from app.authz.context import ResourceRef, TenantContext
from app.authz.engine import RoleChange
from app.authz.guard import authorize, resource_ref_from_path
from app.core.config import get_settings
from app.core.errors import Denial, ErrorCode, InternalError, ValidationFailed
from docify_shared.schemas.common import CheckMode, OrgRole, Permission


@pytest.fixture
async def tenant(seed):
    org = await seed.org("acme")
    other = await seed.org("globex")
    project = await seed.project(org)
    foreign_project = await seed.project(other, slug="foreign")
    admin = await seed.user(org, role="org_admin", external_id="ext_admin")
    manager = await seed.user(org, role="manager", external_id="ext_manager")
    return {
        "org": org,
        "other": other,
        "project": project,
        "foreign_project": foreign_project,
        "admin": admin,
        "manager": manager,
    }


class TestAuthorize:
    async def test_authorized_returns_context(self, session, tenant):
        ref = ResourceRef(org_id=tenant["org"].id, project_id=tenant["project"].id)
        outcome = await authorize("ext_admin", ref, Permission.MANAGE_PROJECT, session=session)
        assert isinstance(outcome, TenantContext)
        assert outcome.principal.id == tenant["admin"].id
        assert outcome.project.id == tenant["project"].id
        assert outcome.membership is None

    async def test_missing_identity_is_unauthenticated(self, session, tenant):
        outcome = await authorize(None, ResourceRef(org_id=tenant["org"].id), Permission.VIEW_ORGANIZATION, session=session)
        assert isinstance(outcome, Denial)
        assert outcome.code == ErrorCode.UNAUTHENTICATED
        assert outcome.status_code == 401

    async def test_unknown_identity_is_unauthenticated(self, session, tenant):
        outcome = await authorize("ext_nobody", ResourceRef(org_id=tenant["org"].id), Permission.VIEW_ORGANIZATION, session=session)
        assert outcome.code == ErrorCode.UNAUTHENTICATED

    async def test_missing_org_is_not_found(self, session, tenant):
        outcome = await authorize("ext_admin", ResourceRef(org_id=uuid.uuid4()), Permission.VIEW_ORGANIZATION, session=session)
        assert outcome.code == ErrorCode.NOT_FOUND
        assert outcome.status_code == 404

    async def test_project_from_other_org_is_not_found(self, session, tenant):
        ref = ResourceRef(org_id=tenant["org"].id, project_id=tenant["foreign_project"].id)
        outcome = await authorize("ext_admin", ref, Permission.VIEW_PROJECT, session=session)
        assert outcome.code == ErrorCode.NOT_FOUND

    async def test_cross_tenant_is_unauthorized(self, session, tenant):
        ref = ResourceRef(org_id=tenant["other"].id, project_id=tenant["foreign_project"].id)
        outcome = await authorize("ext_admin", ref, Permission.MANAGE_PROJECT, session=session)
        assert outcome.code == ErrorCode.UNAUTHORIZED
        assert outcome.status_code == 403

    async def test_insufficient_rank_is_unauthorized(self, session, tenant):
        ref = ResourceRef(org_id=tenant["org"].id, project_id=tenant["project"].id)
        outcome = await authorize("ext_manager", ref, Permission.MANAGE_PROJECT, session=session)
        assert outcome.code == ErrorCode.UNAUTHORIZED
        assert "below required rank" in outcome.reason

    async def test_membership_grants_project_scope(self, session, seed, tenant):
        await seed.member(tenant["manager"], tenant["project"], role="admin")
        ref = ResourceRef(org_id=tenant["org"].id, project_id=tenant["project"].id)
        outcome = await authorize("ext_manager", ref, Permission.MANAGE_PROJECT, session=session)
        assert isinstance(outcome, TenantContext)
        assert outcome.membership.role.value == "admin"

    async def test_malformed_permission_is_validation(self, session, tenant):
        outcome = await authorize("ext_admin", ResourceRef(org_id=tenant["org"].id), "launch_rockets", session=session)
        assert outcome.code == ErrorCode.VALIDATION
        assert outcome.status_code == 400

    async def test_malformed_stored_role_is_validation(self, session, seed, tenant):
        await seed.user(tenant["org"], role="emperor", external_id="ext_emperor")
        outcome = await authorize("ext_emperor", ResourceRef(org_id=tenant["org"].id), Permission.VIEW_ORGANIZATION, session=session)
        assert outcome.code == ErrorCode.VALIDATION

    async def test_malformed_stored_project_status_is_validation(self, session, seed, tenant):
        frozen = await seed.project(tenant["org"], slug="frozen", status="frozen")
        ref = ResourceRef(org_id=tenant["org"].id, project_id=frozen.id)
        outcome = await authorize("ext_admin", ref, Permission.VIEW_PROJECT, session=session)
        assert outcome.code == ErrorCode.VALIDATION
        assert "frozen" in outcome.reason

    async def test_target_in_other_org_is_not_found(self, session, seed, tenant):
        stranger = await seed.user(tenant["other"], role="user")
        ref = ResourceRef(org_id=tenant["org"].id, target_user_id=stranger.id)
        outcome = await authorize("ext_admin", ref, Permission.MANAGE_USERS, session=session)
        assert outcome.code == ErrorCode.NOT_FOUND

    async def test_self_role_change_is_unauthorized(self, session, tenant):
        ref = ResourceRef(org_id=tenant["org"].id, target_user_id=tenant["admin"].id)
        outcome = await authorize(
            "ext_admin",
            ref,
            Permission.MANAGE_USERS,
            session=session,
            change=RoleChange(org_role=OrgRole.VIEWER),
        )
        assert outcome.code == ErrorCode.UNAUTHORIZED
        assert outcome.reason == "self-modification forbidden"

    async def test_top_role_target_reachable_but_protected(self, session, seed, tenant):
        root = await seed.user(None, role="super_admin")
        ref = ResourceRef(org_id=tenant["org"].id, target_user_id=root.id)
        outcome = await authorize("ext_admin", ref, Permission.MANAGE_USERS, session=session)
        assert outcome.code == ErrorCode.UNAUTHORIZED
        assert outcome.reason == "cannot modify top-role principal"

    async def test_any_mode(self, session, tenant):
        ref = ResourceRef(org_id=tenant["org"].id)
        outcome = await authorize(
            "ext_manager",
            ref,
            [Permission.MANAGE_BILLING, Permission.VIEW_USERS],
            CheckMode.ANY,
            session=session,
        )
        assert isinstance(outcome, TenantContext)


class TestStoreFailures:
    async def test_timeout_is_internal_error(self, session, tenant, monkeypatch):
        async def slow_resolve(external_id, session):
            await asyncio.sleep(1)

        monkeypatch.setattr(guard, "resolve_principal", slow_resolve)
        monkeypatch.setattr(get_settings(), "store_timeout_seconds", 0.01)

        with pytest.raises(InternalError):
            await authorize("ext_admin", ResourceRef(org_id=tenant["org"].id), Permission.VIEW_ORGANIZATION, session=session)

    async def test_store_error_is_internal_error(self, session, tenant, monkeypatch):
        async def broken_build(user, ref, session):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        monkeypatch.setattr(guard, "build_tenant_context", broken_build)

        with pytest.raises(InternalError) as exc_info:
            await authorize("ext_admin", ResourceRef(org_id=tenant["org"].id), Permission.VIEW_ORGANIZATION, session=session)
        assert "connection refused" not in exc_info.value.message


class TestResourceRefFromPath:
    def test_parses_ids(self):
        org_id, project_id, user_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        ref = resource_ref_from_path(
            {"org_id": str(org_id), "project_id": str(project_id), "user_id": str(user_id)},
            target_param="user_id",
        )
        assert ref == ResourceRef(org_id=org_id, project_id=project_id, target_user_id=user_id)

    def test_malformed_id_is_validation(self):
        with pytest.raises(ValidationFailed):
            resource_ref_from_path({"org_id": "not-a-uuid"})
