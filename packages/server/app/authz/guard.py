"""
Route guard: principal -> tenant context -> decision, once per request.

    UNAUTHENTICATED --resolve--> AUTHENTICATED --build+decide--> AUTHORIZED
           |                            |
           +-------> DENIED <-----------+

``authorize`` returns the ``TenantContext`` on success or a ``Denial``
(unauthenticated / not_found / unauthorized / validation). Store failures
and timeouts are not denials: they raise ``InternalError`` so callers can
retry the whole request. The guard itself never retries.

``require(...)`` and ``enforce(...)`` adapt the guard to FastAPI: the first
as a route dependency for read paths, the second for handlers that need the
request body (the proposed role) before deciding.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Iterable
from enum import Enum
from typing import Optional, TypeVar, Union

import structlog
from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.context import Principal, ResourceRef, TenantContext, build_tenant_context
from app.authz.engine import RoleChange, decide, normalize_permissions
from app.authz.principal import resolve_principal
from app.core.auth import extract_identity
from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import (
    Denial,
    ErrorCode,
    InternalError,
    NotFound,
    Unauthenticated,
    ValidationFailed,
    error_for,
)
from docify_shared.schemas.common import CheckMode, Permission

log = structlog.get_logger()

T = TypeVar("T")

PermissionSpec = Union[Permission, str, Iterable[Union[Permission, str]]]


class GuardState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    AUTHORIZED = "authorized"
    DENIED = "denied"


async def _bounded(awaitable: Awaitable[T], step: str) -> T:
    """Run one store step under the configured deadline."""
    timeout = get_settings().store_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        log.error("authz.internal_error", step=step, error="store timeout", timeout=timeout)
        raise InternalError(f"Store timed out during {step}") from exc
    except (SQLAlchemyError, OSError) as exc:
        log.error("authz.internal_error", step=step, error=repr(exc))
        raise InternalError(f"Store unavailable during {step}") from exc


def _deny(state: GuardState, code: ErrorCode, reason: str, **fields) -> Denial:
    log.info(
        "authz.denied",
        from_state=state.value,
        to_state=GuardState.DENIED.value,
        code=code.value,
        reason=reason,
        **{k: str(v) for k, v in fields.items() if v is not None},
    )
    return Denial(code=code, reason=reason)


async def authorize(
    identity: Optional[str],
    ref: ResourceRef,
    permissions: PermissionSpec,
    mode: CheckMode = CheckMode.SINGLE,
    *,
    session: AsyncSession,
    change: Optional[RoleChange] = None,
) -> Union[TenantContext, Denial]:
    """Run the guard chain for one request."""
    state = GuardState.UNAUTHENTICATED
    try:
        requested = normalize_permissions(permissions, mode)
    except ValidationFailed as exc:
        return _deny(state, ErrorCode.VALIDATION, exc.message)

    user = await _bounded(resolve_principal(identity, session), "resolve_principal")
    if user is None:
        return _deny(state, ErrorCode.UNAUTHENTICATED, "Authentication required")

    state = GuardState.AUTHENTICATED
    try:
        context = await _bounded(build_tenant_context(user, ref, session), "build_tenant_context")
    except NotFound as exc:
        return _deny(state, ErrorCode.NOT_FOUND, exc.message, user_id=user.id, org_id=ref.org_id)
    except ValidationFailed as exc:
        return _deny(state, ErrorCode.VALIDATION, exc.message, user_id=user.id)

    decision = decide(context, requested, mode, change)
    if not decision.allowed:
        return _deny(
            state,
            ErrorCode.UNAUTHORIZED,
            decision.reason,
            user_id=user.id,
            org_id=ref.org_id,
            project_id=ref.project_id,
            target_user_id=ref.target_user_id,
        )

    log.debug(
        "authz.allowed",
        state=GuardState.AUTHORIZED.value,
        user_id=str(user.id),
        org_id=str(ref.org_id),
        scope=decision.matched_scope.value if decision.matched_scope else None,
        permissions=[p.value for p in requested],
    )
    return context


# ---------------------------------------------------------------------------
# FastAPI adapters
# ---------------------------------------------------------------------------

def resource_ref_from_path(
    params: dict[str, str], target_param: Optional[str] = None
) -> ResourceRef:
    """Build a ResourceRef from ``org_id`` / ``project_id`` / target path params."""
    try:
        org_id = uuid.UUID(params["org_id"])
        project_id = uuid.UUID(params["project_id"]) if "project_id" in params else None
        target_id = uuid.UUID(params[target_param]) if target_param else None
    except (KeyError, ValueError):
        raise ValidationFailed("Malformed resource identifier") from None
    return ResourceRef(org_id=org_id, project_id=project_id, target_user_id=target_id)


async def enforce(
    request: Request,
    session: AsyncSession,
    ref: ResourceRef,
    permissions: PermissionSpec,
    mode: CheckMode = CheckMode.SINGLE,
    change: Optional[RoleChange] = None,
) -> TenantContext:
    """Authorize or raise the taxonomy error for the denial."""
    outcome = await authorize(
        extract_identity(request), ref, permissions, mode, session=session, change=change
    )
    if isinstance(outcome, Denial):
        raise error_for(outcome)
    return outcome


def require(
    *permissions: Permission,
    mode: Optional[CheckMode] = None,
    target_param: Optional[str] = None,
):
    """Route dependency: the caller must hold ``permissions`` on the path's resource."""
    if mode is None:
        mode = CheckMode.SINGLE if len(permissions) == 1 else CheckMode.ALL

    async def _dependency(
        request: Request,
        session: AsyncSession = Depends(get_session),
    ) -> TenantContext:
        ref = resource_ref_from_path(request.path_params, target_param)
        return await enforce(request, session, ref, permissions, mode)

    return _dependency


async def get_principal(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> Principal:
    """Authenticated caller, without any tenant context."""
    user = await _bounded(resolve_principal(extract_identity(request), session), "resolve_principal")
    if user is None:
        raise Unauthenticated("Authentication required")
    return Principal.from_user(user)


async def load_context(
    request: Request, session: AsyncSession, ref: ResourceRef
) -> TenantContext:
    """Resolve the caller and build their context without deciding anything."""
    user = await _bounded(resolve_principal(extract_identity(request), session), "resolve_principal")
    if user is None:
        raise Unauthenticated("Authentication required")
    return await _bounded(build_tenant_context(user, ref, session), "build_tenant_context")
