"""
Shared lookups for the audit services: actor resolution and audit loading.
"""
import logging
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from app.models.audit import Audit, AuditAssignment, AuditItem
from app.models.user import User

logger = logging.getLogger(__name__)


async def resolve_actor(
    db: AsyncSession,
    user_id: UUID,
    allow_fallback: Optional[bool] = None,
) -> Tuple[User, Optional[str]]:
    """
    Resolve the authenticated user id to a User row.

    With the fallback enabled an unknown id is attributed to the oldest user
    and a warning message is returned alongside it.

    Raises:
        AuthenticationError: unknown user and fallback disabled
        ValidationError: fallback enabled but no users exist
    """
    if allow_fallback is None:
        allow_fallback = settings.AUDIT_ALLOW_ACTOR_FALLBACK

    user = await db.get(User, user_id)
    if user:
        return user, None

    if not allow_fallback:
        raise AuthenticationError("Unauthorized", details="User not found")

    result = await db.execute(
        select(User).order_by(User.created_at, User.id).limit(1)
    )
    fallback = result.scalar_one_or_none()
    if fallback is None:
        raise ValidationError("No users found in the system")

    logger.warning(f"User {user_id} not found, attributing audit to {fallback.id}")
    return fallback, f"Authenticated user {user_id} not found; audit attributed to {fallback.email}"


LIKE_ESCAPE = "\\"


def contains_pattern(text: str) -> str:
    """ILIKE pattern matching ``text`` literally anywhere; use with escape=LIKE_ESCAPE."""
    escaped = (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def audit_detail_options():
    """Eager-load options for a fully populated audit."""
    return (
        selectinload(Audit.warehouse),
        selectinload(Audit.created_by),
        selectinload(Audit.assignments).selectinload(AuditAssignment.user),
        selectinload(Audit.items).selectinload(AuditItem.product),
        selectinload(Audit.items).selectinload(AuditItem.inventory_item),
    )


async def load_audit(db: AsyncSession, audit_id: UUID) -> Audit:
    """
    Load an audit with warehouse, creator, assignments and items.

    Raises:
        NotFoundError: audit does not exist
    """
    result = await db.execute(
        select(Audit)
        .options(*audit_detail_options())
        .where(Audit.id == audit_id)
        .execution_options(populate_existing=True)
    )
    audit = result.scalar_one_or_none()
    if not audit:
        raise NotFoundError("Audit not found")
    return audit


async def get_audit_header(db: AsyncSession, audit_id: UUID) -> Audit:
    """Load only the audit row. Raises NotFoundError."""
    audit = await db.get(Audit, audit_id)
    if not audit:
        raise NotFoundError("Audit not found")
    return audit
