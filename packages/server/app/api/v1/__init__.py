"""
API v1 Router

Org-scoped endpoints are prefixed with /orgs/{org_id}.
"""

from fastapi import APIRouter
from . import me, organizations, projects, users

router = APIRouter()

router.include_router(me.router, prefix="/me")
router.include_router(organizations.router, prefix="/orgs/{org_id}", tags=["Organizations"])
router.include_router(projects.router, prefix="/orgs/{org_id}/projects", tags=["Projects"])
router.include_router(users.router, prefix="/orgs/{org_id}/users", tags=["Users"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/me/landing",
            "/orgs/{org_id}",
            "/orgs/{org_id}/permissions/check",
            "/orgs/{org_id}/users",
            "/orgs/{org_id}/projects/{project_id}",
            "/orgs/{org_id}/projects/{project_id}/members",
        ],
    }
