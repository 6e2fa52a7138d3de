"""
Identity-provider event feed.

Keeps the ``users`` table in step with the provider's user lifecycle:

- ``user.created``  upsert keyed by external id; redelivery is a no-op
- ``user.updated``  profile fields only (email, names, avatar)
- ``user.deleted``  user and memberships removed in one transaction

Role and organization are never read from the feed. New users start as
``user`` with no organization until an administrator provisions them.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import ValidationFailed
from app.models.user import User
from app.services.users import delete_user_cascade
from docify_shared.schemas.common import OrgRole
from docify_shared.schemas.identity import (
    IdentityEvent,
    IdentityEventResult,
    IdentityEventType,
    IdentityUserData,
)

log = structlog.get_logger()

SIGNATURE_HEADER = "X-Identity-Signature"

_PROFILE_FIELDS = ("email", "display_name", "first_name", "last_name", "image_url")


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Check the hex HMAC-SHA256 of the raw body against the signature header.

    Args:
        payload: Raw request body
        signature: X-Identity-Signature header value
        secret: Shared webhook secret

    Returns:
        bool: True if signature is valid
    """
    if not signature or not secret:
        return False
    return hmac.compare_digest(compute_signature(payload, secret), signature)


async def _get_by_external_id(external_id: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()


def _profile(data: IdentityUserData, email: str) -> dict:
    return {
        "email": email,
        "display_name": data.display_name(fallback=email),
        "first_name": data.first_name,
        "last_name": data.last_name,
        "image_url": data.image_url,
    }


def _patch_profile(user: User, profile: dict) -> bool:
    changed = False
    for field in _PROFILE_FIELDS:
        if getattr(user, field) != profile[field]:
            setattr(user, field, profile[field])
            changed = True
    return changed


async def _on_created(data: IdentityUserData, session: AsyncSession) -> str:
    email = data.primary_email()
    if not email:
        raise ValidationFailed("user.created event has no primary email address")

    existing = await _get_by_external_id(data.id, session)
    if existing:
        return "unchanged"

    user = User(external_id=data.id, role=OrgRole.USER.value, org_id=None, **_profile(data, email))
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        # Concurrent delivery of the same event already inserted the row
        await session.rollback()
        log.info("identity.duplicate_create", external_id=data.id)
        return "unchanged"
    return "created"


async def _on_updated(data: IdentityUserData, session: AsyncSession) -> str:
    user = await _get_by_external_id(data.id, session)
    if not user:
        return "ignored"
    email = data.primary_email() or user.email
    if not _patch_profile(user, _profile(data, email)):
        return "unchanged"
    session.add(user)
    await session.flush()
    return "updated"


async def _on_deleted(data: IdentityUserData, session: AsyncSession) -> str:
    user = await _get_by_external_id(data.id, session)
    if not user:
        return "ignored"
    await delete_user_cascade(user.id, session)
    return "deleted"


_HANDLERS = {
    IdentityEventType.CREATED: _on_created,
    IdentityEventType.UPDATED: _on_updated,
    IdentityEventType.DELETED: _on_deleted,
}


async def handle_event(event: IdentityEvent, session: AsyncSession) -> IdentityEventResult:
    """Apply one lifecycle event. Safe to call again with the same event."""
    outcome = await _HANDLERS[event.type](event.data, session)
    log.info(
        f"identity.{event.type.value.split('.', 1)[1]}",
        external_id=event.data.id,
        outcome=outcome,
    )
    return IdentityEventResult(type=event.type, external_id=event.data.id, outcome=outcome)
