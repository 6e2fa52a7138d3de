"""
Role hierarchy and permission catalog.

Two independent role families, each a strict total order:

    organization: super_admin > org_admin > manager > user > viewer
    project:      owner > admin > member > viewer

Every permission maps to the lowest rank that satisfies it at each scope,
or ``None`` when the permission cannot be granted at that scope. The table
is validated and frozen once at import; an unknown role or permission
symbol in it is a startup error.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Union

from app.core.errors import ValidationFailed
from docify_shared.schemas.common import OrgRole, Permission, ProjectRole, ProjectStatus, Scope

TOP_ROLE = OrgRole.SUPER_ADMIN

_ORG_RANKS = {
    "viewer": 1,
    "user": 2,
    "manager": 3,
    "org_admin": 4,
    "super_admin": 5,
}

_PROJECT_RANKS = {
    "viewer": 1,
    "member": 2,
    "admin": 3,
    "owner": 4,
}

# permission: (organization minimum, project minimum)
_PERMISSION_TABLE = {
    "manage_organization": ("org_admin", None),
    "view_organization": ("viewer", None),
    "manage_users": ("org_admin", None),
    "invite_users": ("org_admin", None),
    "view_users": ("manager", None),
    "create_project": ("manager", None),
    "manage_project": ("org_admin", "admin"),
    "delete_project": ("super_admin", "owner"),
    "view_project": ("viewer", "viewer"),
    "manage_members": ("org_admin", "admin"),
    "create_document": ("user", "member"),
    "edit_document": ("user", "member"),
    "delete_document": ("manager", "admin"),
    "view_document": ("viewer", "viewer"),
    "publish_document": ("manager", "admin"),
    "view_analytics": ("manager", "admin"),
    "export_data": ("org_admin", "owner"),
    "use_ai_features": ("org_admin", None),
    "manage_ai_settings": ("org_admin", None),
    "manage_system": ("super_admin", None),
    "view_system_logs": ("super_admin", None),
    "manage_billing": ("super_admin", None),
}

# Permissions that act on another principal's role, membership or existence.
_PRINCIPAL_MUTATIONS = ("manage_users", "invite_users", "manage_members")


class CatalogError(RuntimeError):
    """The static role/permission table is inconsistent."""


@dataclass(frozen=True)
class PermissionCatalog:
    org_ranks: Mapping[OrgRole, int]
    project_ranks: Mapping[ProjectRole, int]
    org_minimums: Mapping[Permission, Optional[int]]
    project_minimums: Mapping[Permission, Optional[int]]
    principal_mutations: frozenset[Permission]

    def minimum_rank(self, permission: Permission, scope: Scope) -> Optional[int]:
        table = self.org_minimums if scope == Scope.ORGANIZATION else self.project_minimums
        return table[permission]


def _parse(enum_cls, symbol: str, what: str):
    try:
        return enum_cls(symbol)
    except ValueError:
        raise CatalogError(f"Unknown {what} in permission catalog: {symbol!r}") from None


def _ranks(enum_cls, raw: dict[str, int], what: str) -> Mapping:
    ranks = {_parse(enum_cls, name, what): rank for name, rank in raw.items()}
    missing = set(enum_cls) - set(ranks)
    if missing:
        raise CatalogError(f"{what} without a rank: {sorted(m.value for m in missing)}")
    if len(set(ranks.values())) != len(ranks):
        raise CatalogError(f"{what} ranks must be distinct")
    return MappingProxyType(ranks)


def load_catalog(
    table: dict[str, tuple[Optional[str], Optional[str]]],
    org_ranks: dict[str, int] = _ORG_RANKS,
    project_ranks: dict[str, int] = _PROJECT_RANKS,
    principal_mutations: tuple[str, ...] = _PRINCIPAL_MUTATIONS,
) -> PermissionCatalog:
    """Validate the raw table and build the immutable catalog."""
    org = _ranks(OrgRole, org_ranks, "organization role")
    project = _ranks(ProjectRole, project_ranks, "project role")

    org_minimums: dict[Permission, Optional[int]] = {}
    project_minimums: dict[Permission, Optional[int]] = {}
    for name, (org_min, project_min) in table.items():
        permission = _parse(Permission, name, "permission")
        if org_min is None and project_min is None:
            raise CatalogError(f"Permission {name!r} is not grantable at any scope")
        org_minimums[permission] = (
            org[_parse(OrgRole, org_min, "organization role")] if org_min else None
        )
        project_minimums[permission] = (
            project[_parse(ProjectRole, project_min, "project role")] if project_min else None
        )

    missing = set(Permission) - set(org_minimums)
    if missing:
        raise CatalogError(f"Permissions missing from catalog: {sorted(m.value for m in missing)}")

    return PermissionCatalog(
        org_ranks=org,
        project_ranks=project,
        org_minimums=MappingProxyType(org_minimums),
        project_minimums=MappingProxyType(project_minimums),
        principal_mutations=frozenset(
            _parse(Permission, name, "permission") for name in principal_mutations
        ),
    )


CATALOG = load_catalog(_PERMISSION_TABLE)


# ---------------------------------------------------------------------------
# Symbol parsing (runtime input; malformed symbols are a Validation error)
# ---------------------------------------------------------------------------

def parse_org_role(value: Union[str, OrgRole]) -> OrgRole:
    try:
        return OrgRole(value)
    except ValueError:
        raise ValidationFailed(f"Unknown organization role: {value!r}") from None


def parse_project_role(value: Union[str, ProjectRole]) -> ProjectRole:
    try:
        return ProjectRole(value)
    except ValueError:
        raise ValidationFailed(f"Unknown project role: {value!r}") from None


def parse_project_status(value: Union[str, ProjectStatus]) -> ProjectStatus:
    try:
        return ProjectStatus(value)
    except ValueError:
        raise ValidationFailed(f"Unknown project status: {value!r}") from None


def parse_permission(value: Union[str, Permission]) -> Permission:
    try:
        return Permission(value)
    except ValueError:
        raise ValidationFailed(f"Unknown permission: {value!r}") from None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def rank(role: Union[OrgRole, ProjectRole]) -> int:
    """Rank of a role within its own family; larger is more privileged."""
    if isinstance(role, OrgRole):
        return CATALOG.org_ranks[role]
    if isinstance(role, ProjectRole):
        return CATALOG.project_ranks[role]
    raise ValidationFailed(f"Not a role: {role!r}")


def minimum_rank(permission: Permission, scope: Scope) -> Optional[int]:
    """Lowest rank satisfying ``permission`` at ``scope``; None if unsatisfiable there."""
    return CATALOG.minimum_rank(parse_permission(permission), scope)


def is_principal_mutation(permission: Permission) -> bool:
    return permission in CATALOG.principal_mutations


def org_permissions(role: OrgRole) -> frozenset[Permission]:
    """Every permission an organization role satisfies at organization scope."""
    held = rank(role)
    return frozenset(
        p for p, minimum in CATALOG.org_minimums.items()
        if minimum is not None and held >= minimum
    )


def project_permissions(role: ProjectRole) -> frozenset[Permission]:
    """Every permission a project role satisfies at project scope."""
    held = rank(role)
    return frozenset(
        p for p, minimum in CATALOG.project_minimums.items()
        if minimum is not None and held >= minimum
    )
