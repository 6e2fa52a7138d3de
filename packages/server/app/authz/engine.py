"""
Authorization decision engine.

``decide`` is a pure function of a ``TenantContext`` and the requested
permissions: no I/O, no shared mutable state, safe to call from any number
of concurrent requests.

A permission is granted when either path succeeds:

- organization scope: the caller belongs to the context organization and
  their organization-role rank meets the permission's organization minimum;
- project scope: the context has a project, the caller holds a membership
  on it, and the membership's project-role rank meets the project minimum.

The top role short-circuits to Allow. Requests that act on another
principal (``manage_users`` / ``invite_users`` / ``manage_members`` with a
target in context) are first checked against the self-modification and
top-role protections, which deny regardless of rank, and after a grant
against the escalation ceiling for the scope that granted it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional, Union

from app.authz import catalog
from app.authz.catalog import TOP_ROLE
from app.authz.context import TenantContext
from app.core.errors import ValidationFailed
from docify_shared.schemas.common import CheckMode, OrgRole, Permission, ProjectRole, Scope

SELF_MODIFICATION = "self-modification forbidden"
TOP_ROLE_PROTECTED = "cannot modify top-role principal"
TOP_ROLE_NOT_ASSIGNABLE = "top role cannot be assigned"
NO_MEMBERSHIP = "no membership for this project"
OTHER_TENANT = "principal belongs to a different organization"


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str
    matched_scope: Optional[Scope] = None

    @classmethod
    def allow(cls, scope: Scope, reason: str) -> "AuthorizationDecision":
        return cls(allowed=True, reason=reason, matched_scope=scope)

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationDecision":
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True)
class RoleChange:
    """The role a mutating request wants to give its target, if any."""

    org_role: Optional[OrgRole] = None
    project_role: Optional[ProjectRole] = None


def normalize_permissions(
    permissions: Union[Permission, str, Iterable[Union[Permission, str]]], mode: CheckMode
) -> tuple[Permission, ...]:
    if isinstance(permissions, (Permission, str)):
        permissions = (permissions,)
    requested = tuple(catalog.parse_permission(p) for p in permissions)
    if not requested:
        raise ValidationFailed("At least one permission is required")
    if mode == CheckMode.SINGLE and len(requested) != 1:
        raise ValidationFailed("Single-permission mode takes exactly one permission")
    return requested


# ---------------------------------------------------------------------------
# Pre-conditions
# ---------------------------------------------------------------------------

def _protections(
    context: TenantContext, change: Optional[RoleChange]
) -> Optional[AuthorizationDecision]:
    target = context.target
    if target is not None:
        if target.principal.id == context.principal.id:
            return AuthorizationDecision.deny(SELF_MODIFICATION)
        if target.principal.is_top_role:
            return AuthorizationDecision.deny(TOP_ROLE_PROTECTED)
    if change is not None and change.org_role == TOP_ROLE:
        return AuthorizationDecision.deny(TOP_ROLE_NOT_ASSIGNABLE)
    return None


# ---------------------------------------------------------------------------
# Rank comparison
# ---------------------------------------------------------------------------

def _org_path(context: TenantContext, permission: Permission) -> tuple[bool, str]:
    required = catalog.minimum_rank(permission, Scope.ORGANIZATION)
    if required is None:
        return False, f"{permission.value} not grantable at organization scope"
    if not context.same_tenant:
        return False, OTHER_TENANT
    held = catalog.rank(context.principal.role)
    if held < required:
        return False, f"organization role rank {held} below required rank {required}"
    return True, f"organization role {context.principal.role.value} satisfies {permission.value}"


def _project_path(context: TenantContext, permission: Permission) -> tuple[bool, str]:
    required = catalog.minimum_rank(permission, Scope.PROJECT)
    if required is None:
        return False, f"{permission.value} not grantable at project scope"
    membership = context.membership
    if membership is None or membership.project_id != context.project.id:
        return False, NO_MEMBERSHIP
    held = catalog.rank(membership.role)
    if held < required:
        return False, f"project role rank {held} below required rank {required}"
    return True, f"project role {membership.role.value} satisfies {permission.value}"


def _ceiling(
    context: TenantContext,
    permission: Permission,
    scope: Scope,
    change: Optional[RoleChange],
) -> Optional[str]:
    """Reason the grant would escalate privilege, or None."""
    target = context.target
    if target is None or not catalog.is_principal_mutation(permission):
        return None

    if permission in (Permission.MANAGE_USERS, Permission.INVITE_USERS):
        held = catalog.rank(context.principal.role)
        current = catalog.rank(target.principal.role)
        if current >= held:
            return f"target organization rank {current} not below actor rank {held}"
        if change is not None and change.org_role is not None:
            proposed = catalog.rank(change.org_role)
            if proposed >= held:
                return f"assigned organization rank {proposed} not below actor rank {held}"
        return None

    # manage_members: organization-scope grants may assign any project role
    if scope == Scope.ORGANIZATION:
        return None
    held = catalog.rank(context.membership.role)
    if target.membership is not None:
        current = catalog.rank(target.membership.role)
        if current >= held:
            return f"target project rank {current} not below actor rank {held}"
    if change is not None and change.project_role is not None:
        proposed = catalog.rank(change.project_role)
        if proposed > held:
            return f"assigned project rank {proposed} above actor rank {held}"
    return None


def _decide_one(
    context: TenantContext, permission: Permission, change: Optional[RoleChange]
) -> AuthorizationDecision:
    reasons = []
    paths = [(Scope.ORGANIZATION, _org_path)]
    if context.project is not None:
        paths.append((Scope.PROJECT, _project_path))

    for scope, path in paths:
        granted, reason = path(context, permission)
        if granted:
            escalation = _ceiling(context, permission, scope, change)
            if escalation is None:
                return AuthorizationDecision.allow(scope, reason)
            reason = escalation
        reasons.append(f"{scope.value}: {reason}")

    return AuthorizationDecision.deny(f"{permission.value} denied ({'; '.join(reasons)})")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def decide(
    context: TenantContext,
    permissions: Union[Permission, str, Iterable[Union[Permission, str]]],
    mode: CheckMode = CheckMode.SINGLE,
    change: Optional[RoleChange] = None,
) -> AuthorizationDecision:
    """Allow or deny ``permissions`` for the principal in ``context``."""
    requested = normalize_permissions(permissions, mode)

    if context.target is not None and any(catalog.is_principal_mutation(p) for p in requested):
        blocked = _protections(context, change)
        if blocked is not None:
            return blocked

    if context.principal.is_top_role:
        return AuthorizationDecision.allow(Scope.ORGANIZATION, "top role")

    decisions = [_decide_one(context, p, change) for p in requested]

    if mode == CheckMode.ANY:
        for decision in decisions:
            if decision.allowed:
                return decision
        return AuthorizationDecision.deny("; ".join(d.reason for d in decisions))

    for decision in decisions:
        if not decision.allowed:
            return decision
    if len(decisions) == 1:
        return decisions[0]
    scopes = {d.matched_scope for d in decisions}
    scope = Scope.ORGANIZATION if scopes == {Scope.ORGANIZATION} else Scope.PROJECT
    return AuthorizationDecision.allow(scope, f"all {len(decisions)} permissions granted")


def effective_permissions(context: TenantContext) -> dict[Scope, frozenset[Permission]]:
    """Every permission the principal holds in ``context``, grouped by granting scope."""
    if context.principal.is_top_role:
        return {Scope.ORGANIZATION: frozenset(Permission), Scope.PROJECT: frozenset()}

    org_granted: frozenset[Permission] = frozenset()
    if context.same_tenant:
        org_granted = catalog.org_permissions(context.principal.role)

    project_granted: frozenset[Permission] = frozenset()
    membership = context.membership
    if context.project is not None and membership is not None and membership.project_id == context.project.id:
        project_granted = catalog.project_permissions(membership.role)

    return {Scope.ORGANIZATION: org_granted, Scope.PROJECT: project_granted}
