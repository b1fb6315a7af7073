"""
Audit Reference Number Generation

Format: AUDIT-{YYMMDD}-{SEQUENCE}
    AUDIT-260119-0001, AUDIT-260119-0002, ...

The sequence restarts every local calendar day. The next value is the number
of audits already numbered for the day plus one; the unique constraint on
audits.reference_number catches concurrent writers, in which case the insert
is retried with the following value.

USAGE:
    service = AuditSequenceService(db)
    await service.insert_with_reference(audit)
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import TransactionError
from app.models.audit import Audit

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "AUDIT"
SEQUENCE_PADDING = 4


def format_reference(on: date, sequence: int) -> str:
    """AUDIT-260119-0007 for (2026-01-19, 7)."""
    return f"{REFERENCE_PREFIX}-{on:%y%m%d}-{sequence:0{SEQUENCE_PADDING}d}"


class AuditSequenceService:
    """Allocates daily audit reference numbers."""

    def __init__(self, db: AsyncSession, max_attempts: Optional[int] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.AUDIT_REFERENCE_MAX_ATTEMPTS

    async def next_sequence(self, on: date) -> int:
        """Count of audits already numbered for ``on``, plus one."""
        prefix = f"{REFERENCE_PREFIX}-{on:%y%m%d}-"
        result = await self.db.execute(
            select(func.count(Audit.id)).where(
                Audit.reference_number.like(f"{prefix}%")
            )
        )
        return (result.scalar() or 0) + 1

    async def insert_with_reference(self, audit: Audit, on: Optional[date] = None) -> Audit:
        """
        Number and flush ``audit`` inside a savepoint.

        A uniqueness conflict rolls back only the savepoint and the next
        sequence value is tried.

        Raises:
            TransactionError: no free reference after max_attempts tries
        """
        on = on or datetime.now().date()
        sequence = await self.next_sequence(on)

        for attempt in range(1, self.max_attempts + 1):
            audit.reference_number = format_reference(on, sequence)
            try:
                async with self.db.begin_nested():
                    self.db.add(audit)
                    await self.db.flush()
                return audit
            except IntegrityError:
                logger.warning(
                    f"Reference {audit.reference_number} already taken "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                sequence += 1

        raise TransactionError(
            "Failed to allocate an audit reference number",
            details=f"{self.max_attempts} attempts exhausted for {on.isoformat()}",
        )
