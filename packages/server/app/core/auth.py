"""
Identity tokens.

Requests carry a signed JWT from the identity provider, either as
``Authorization: Bearer <token>`` or in the ``__session`` cookie. The
token's ``sub`` claim is the external identity reference that the
principal resolver looks up; nothing else in the token (roles, orgs) is
trusted, because roles can change between token issue and use.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from starlette.requests import Request

from app.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

SESSION_COOKIE = "__session"


def create_identity_token(
    external_id: str,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed identity token (dev tooling and tests; production tokens come from the provider)."""
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": external_id,
        "iat": now,
        "exp": exp,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_identity_token(token: str) -> dict:
    """Decode and verify a token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def _raw_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def extract_identity(request: Request) -> Optional[str]:
    """External identity reference carried by the request, or None if absent/invalid."""
    token = _raw_token(request)
    if not token:
        return None
    try:
        payload = decode_identity_token(token)
    except jwt.PyJWTError as exc:
        log.info("auth.token_rejected", error=type(exc).__name__)
        return None
    subject = payload.get("sub")
    return subject if isinstance(subject, str) and subject else None
