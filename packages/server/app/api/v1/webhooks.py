"""
Identity-provider webhook.

POST /webhooks/identity - user.created / user.updated / user.deleted
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import Unauthenticated, ValidationFailed
from app.services import identity as identity_service
from docify_shared.schemas.identity import IdentityEvent, IdentityEventResult

log = structlog.get_logger()

router = APIRouter()


@router.post("/identity", response_model=IdentityEventResult)
async def identity_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
):
    """Apply one signed identity lifecycle event."""
    settings = get_settings()
    payload = await request.body()
    signature = request.headers.get(identity_service.SIGNATURE_HEADER)

    if not settings.identity_webhook_secret:
        if not settings.debug:
            log.error("identity.webhook_unconfigured")
            raise Unauthenticated("Webhook secret not configured")
        log.warning("identity.signature_skipped", reason="no secret in debug mode")
    elif not identity_service.verify_signature(payload, signature, settings.identity_webhook_secret):
        log.warning("identity.bad_signature")
        raise Unauthenticated("Invalid webhook signature")

    try:
        event = IdentityEvent.model_validate_json(payload)
    except ValidationError as exc:
        raise ValidationFailed(f"Malformed identity event ({exc.error_count()} errors)") from None

    return await identity_service.handle_event(event, session)
