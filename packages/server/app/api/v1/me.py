"""
Caller-scoped endpoints.

GET /api/v1/me/landing            - Dashboard landing path for the caller's role
GET /api/v1/me/landing?path=/...  - Same, plus whether the caller may open ``path``
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.authz.context import Principal
from app.authz.dashboard import accessible_paths, can_access_path, landing_path
from app.authz.guard import get_principal
from docify_shared.schemas.users import LandingResponse

router = APIRouter()


@router.get("/landing", response_model=LandingResponse, tags=["Me"])
async def get_landing(
    path: Optional[str] = Query(default=None, max_length=512),
    principal: Principal = Depends(get_principal),
):
    """Where the dashboard should send the caller after sign-in.

    Navigation hint only; the routes behind each path are guarded separately.
    """
    response = LandingResponse(
        path=landing_path(principal.role),
        accessible_paths=accessible_paths(principal.role),
    )
    if path is not None:
        response.requested_path = path
        response.can_access = can_access_path(principal.role, path)
    return response
