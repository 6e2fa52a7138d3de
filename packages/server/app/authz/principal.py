"""
Principal resolution: external identity reference -> internal user row.

One point lookup per request. Results are never cached across requests;
an administrator may change the user's role between two calls.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.user import User


async def resolve_principal(
    external_id: Optional[str], session: AsyncSession
) -> Optional[User]:
    """Return the user for ``external_id``, or None (unauthenticated)."""
    if not external_id:
        return None
    result = await session.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()
