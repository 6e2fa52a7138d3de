"""
Dashboard routing: where each organization role lands after sign-in.

UI convenience only. Nothing here grants access; every request behind these
paths still goes through the guard.
"""

from __future__ import annotations

from typing import Optional, Union

from docify_shared.schemas.common import OrgRole

LEAST_PRIVILEGED_PATH = "/dashboard/browse"

_LANDING = {
    OrgRole.SUPER_ADMIN: "/admin/dashboard",
    OrgRole.ORG_ADMIN: "/dashboard/organization",
    OrgRole.MANAGER: "/dashboard/projects",
    OrgRole.USER: "/dashboard/docs",
    OrgRole.VIEWER: LEAST_PRIVILEGED_PATH,
}

# Ordered from most to least privileged; a role reaches its own landing
# path and every path after it.
_PATH_ORDER = [
    "/admin/dashboard",
    "/dashboard/organization",
    "/dashboard/projects",
    "/dashboard/docs",
    "/dashboard/browse",
]


def _coerce(role: Union[OrgRole, str, None]) -> Optional[OrgRole]:
    try:
        return OrgRole(role)
    except ValueError:
        return None


def landing_path(role: Union[OrgRole, str, None]) -> str:
    """Default dashboard path for a role; unrecognized roles get the least-privileged one."""
    known = _coerce(role)
    if known is None:
        return LEAST_PRIVILEGED_PATH
    return _LANDING[known]


def accessible_paths(role: Union[OrgRole, str, None]) -> list[str]:
    start = _PATH_ORDER.index(landing_path(role))
    return _PATH_ORDER[start:]


def can_access_path(role: Union[OrgRole, str, None], requested: str) -> bool:
    return any(requested.startswith(path) for path in accessible_paths(role))
