"""
Audit Planning Service.

Creates audits from a warehouse inventory snapshot and drives their lifecycle:
    PLANNED -> IN_PROGRESS -> COMPLETED
    PLANNED / IN_PROGRESS -> CANCELLED

Creation is split in two phases. The primary write (audit row, assignments,
inventory snapshot) is one transaction bounded by
AUDIT_TRANSACTION_TIMEOUT_SECONDS. Enrichment afterwards (re-reading the
audit with its relations) is best-effort and degrades to warnings.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import select, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.exceptions import (
    ValidationError, NotFoundError, InvalidStateError, TransactionError,
)
from app.models.audit import (
    Audit, AuditAssignment, AuditItem, AuditStatus, can_transition,
)
from app.models.inventory import InventoryItem
from app.models.user import User
from app.models.warehouse import Warehouse
from app.schemas.audit import AuditCreate, AuditUpdate, AuditFilter
from app.services.audit_sequence_service import AuditSequenceService
from app.services.audit_support import (
    LIKE_ESCAPE, contains_pattern, resolve_actor, load_audit, get_audit_header,
)
from app.services.zone_membership_service import ZoneMembershipService

logger = logging.getLogger(__name__)


@dataclass
class AuditCreationResult:
    """Created audit plus warnings from best-effort steps."""
    audit: Audit
    warnings: List[str] = field(default_factory=list)
    # False when the post-commit re-read failed and only the bare row is available
    detailed: bool = True


def _unique(ids: Iterable[UUID]) -> List[UUID]:
    seen = set()
    return [i for i in ids if not (i in seen or seen.add(i))]


class AuditPlanningService:
    """Service for planning audits and moving them through their lifecycle."""

    def __init__(self, db: AsyncSession, timeout: Optional[float] = None):
        self.db = db
        self.timeout = timeout if timeout is not None else settings.AUDIT_TRANSACTION_TIMEOUT_SECONDS
        self.sequences = AuditSequenceService(db)
        self.zones = ZoneMembershipService(db)

    # ========================================================================
    # CREATE
    # ========================================================================

    async def create_audit(self, data: AuditCreate, user_id: UUID) -> AuditCreationResult:
        """
        Plan a new audit for a warehouse.

        Snapshots on-hand inventory (quantity > 0) into PENDING audit items,
        optionally limited to zones, and assigns users.

        Raises:
            ValidationError: missing warehouse or start date
            AuthenticationError: user_id does not resolve to a user
            NotFoundError: warehouse does not exist (HTTP 400)
            TransactionError: the write failed or timed out; nothing persisted
        """
        if not data.warehouse_id or not data.start_date:
            raise ValidationError("Missing required fields", details="warehouseId and startDate are required")

        warnings: List[str] = []

        actor, actor_warning = await resolve_actor(self.db, user_id)
        if actor_warning:
            warnings.append(actor_warning)

        warehouse = await self.db.get(Warehouse, data.warehouse_id)
        if not warehouse:
            raise NotFoundError("Warehouse not found", status_code=400)

        try:
            audit = await asyncio.wait_for(
                self._write_audit(data, actor.id, warnings),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            await self.db.rollback()
            logger.error(f"Audit creation for warehouse {data.warehouse_id} timed out after {self.timeout}s")
            raise TransactionError(
                "Failed to create audit",
                details=f"Transaction timed out after {self.timeout} seconds",
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Audit creation for warehouse {data.warehouse_id} failed: {e}", exc_info=True)
            raise TransactionError("Failed to create audit", details=str(e))
        except TransactionError:
            await self.db.rollback()
            raise

        logger.info(
            f"Created audit {audit.reference_number} for warehouse {warehouse.code} "
            f"by {actor.email}"
        )

        try:
            audit = await load_audit(self.db, audit.id)
        except SQLAlchemyError as e:
            logger.warning(f"Audit {audit.reference_number} created but could not be re-read: {e}")
            warnings.append("Audit created but its details could not be loaded")
            return AuditCreationResult(audit=audit, warnings=warnings, detailed=False)

        return AuditCreationResult(audit=audit, warnings=warnings)

    async def _write_audit(self, data: AuditCreate, actor_id: UUID, warnings: List[str]) -> Audit:
        """Primary write: audit row, items, assignments, commit."""
        audit = Audit(
            warehouse_id=data.warehouse_id,
            status=AuditStatus.PLANNED.value,
            start_date=data.start_date,
            end_date=data.end_date,
            notes=data.notes,
            created_by_id=actor_id,
        )
        await self.sequences.insert_with_reference(audit)

        zone_ids = _unique(data.zones)
        bin_ids = await self._resolve_zone_bins(data.warehouse_id, zone_ids, warnings)

        item_count = await self._snapshot_items(audit, bin_ids)
        logger.info(f"Audit {audit.reference_number}: {item_count} items generated")

        await self._assign_users(audit, _unique(data.users), zone_ids, warnings)

        await self.db.commit()
        return audit

    async def _resolve_zone_bins(
        self,
        warehouse_id: UUID,
        zone_ids: List[UUID],
        warnings: List[str],
    ) -> Optional[Set[UUID]]:
        """Bins covered by the zone filter, or None for the whole warehouse."""
        if not zone_ids:
            return None

        index = await self.zones.load_index(warehouse_id)
        bin_ids = index.bins_in(zone_ids)
        if not bin_ids:
            logger.warning(
                f"Zones {[str(z) for z in zone_ids]} contain no bins in warehouse "
                f"{warehouse_id}; auditing the whole warehouse"
            )
            warnings.append("Selected zones contain no bins; zone filter ignored and the whole warehouse is audited")
            return None
        return bin_ids

    async def _snapshot_items(self, audit: Audit, bin_ids: Optional[Set[UUID]] = None) -> int:
        """Create one PENDING audit item per inventory record with stock on hand."""
        query = select(InventoryItem).where(
            InventoryItem.warehouse_id == audit.warehouse_id,
            InventoryItem.quantity > 0,
        )
        if bin_ids is not None:
            query = query.where(InventoryItem.bin_id.in_(bin_ids))
        query = query.order_by(InventoryItem.created_at, InventoryItem.id)

        result = await self.db.execute(query)
        inventory_items = result.scalars().all()

        self.db.add_all([
            AuditItem(
                audit_id=audit.id,
                product_id=inv.product_id,
                inventory_item_id=inv.id,
                expected_quantity=inv.quantity,
            )
            for inv in inventory_items
        ])
        await self.db.flush()
        return len(inventory_items)

    async def _assign_users(
        self,
        audit: Audit,
        user_ids: List[UUID],
        zone_ids: List[UUID],
        warnings: List[str],
    ) -> int:
        """Best-effort assignment insert in its own savepoint."""
        if not user_ids:
            return 0

        result = await self.db.execute(select(User.id).where(User.id.in_(user_ids)))
        known = set(result.scalars().all())
        for user_id in user_ids:
            if user_id not in known:
                logger.warning(f"Audit {audit.reference_number}: user {user_id} not found, assignment skipped")
                warnings.append(f"User {user_id} not found; assignment skipped")

        assigned_zones = json.dumps([str(z) for z in zone_ids]) if zone_ids else None
        assignments = [
            AuditAssignment(audit_id=audit.id, user_id=user_id, assigned_zones=assigned_zones)
            for user_id in user_ids if user_id in known
        ]
        if not assignments:
            return 0

        try:
            async with self.db.begin_nested():
                self.db.add_all(assignments)
                await self.db.flush()
        except SQLAlchemyError as e:
            logger.warning(f"Audit {audit.reference_number}: failed to create assignments: {e}")
            warnings.append("User assignments could not be created")
            return 0
        return len(assignments)

    # ========================================================================
    # READ
    # ========================================================================

    async def get_audit(self, audit_id: UUID) -> Audit:
        """Get an audit with all relations. Raises NotFoundError."""
        return await load_audit(self.db, audit_id)

    async def list_audits(
        self,
        filters: AuditFilter,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Audit], int]:
        """List audits, newest first."""
        query = select(Audit)
        count_query = select(func.count(Audit.id))

        conditions = []
        if filters.status:
            conditions.append(Audit.status == filters.status.value)
        if filters.warehouse_id:
            conditions.append(Audit.warehouse_id == filters.warehouse_id)
        if filters.search:
            pattern = contains_pattern(filters.search)
            conditions.append(or_(
                Audit.reference_number.ilike(pattern, escape=LIKE_ESCAPE),
                Audit.notes.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.options(
            selectinload(Audit.warehouse),
            selectinload(Audit.created_by),
            selectinload(Audit.assignments).selectinload(AuditAssignment.user),
            selectinload(Audit.items),
        ).order_by(Audit.created_at.desc(), Audit.reference_number.desc()).offset(skip).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ========================================================================
    # UPDATE
    # ========================================================================

    async def update_audit(self, audit_id: UUID, data: AuditUpdate) -> Audit:
        """
        Edit dates, notes, assignments or zones of an open audit.

        Supplying users replaces every existing assignment.

        Raises:
            NotFoundError: audit or an assigned user does not exist
            InvalidStateError: audit is COMPLETED or CANCELLED
            ValidationError: start date cleared
        """
        audit = await get_audit_header(self.db, audit_id)
        if audit.status not in (AuditStatus.PLANNED.value, AuditStatus.IN_PROGRESS.value):
            raise InvalidStateError(f"Cannot update audit in {audit.status} status")

        update_data = data.model_dump(exclude_unset=True)

        for field_name in ("start_date", "end_date", "notes"):
            if field_name in update_data:
                setattr(audit, field_name, update_data[field_name])

        if audit.start_date is None:
            raise ValidationError("Start date is required")

        zone_ids = _unique(data.zones) if data.zones is not None else None

        if data.users is not None:
            user_ids = _unique(data.users)
            if user_ids:
                result = await self.db.execute(select(User.id).where(User.id.in_(user_ids)))
                missing = set(user_ids) - set(result.scalars().all())
                if missing:
                    raise NotFoundError(
                        "User not found",
                        details=", ".join(sorted(str(u) for u in missing)),
                        status_code=400,
                    )

            if zone_ids is None:
                zone_ids = await self._current_zone_ids(audit.id)

            result = await self.db.execute(
                select(AuditAssignment).where(AuditAssignment.audit_id == audit.id)
            )
            for assignment in result.scalars().all():
                await self.db.delete(assignment)
            await self.db.flush()

            assigned_zones = json.dumps([str(z) for z in zone_ids]) if zone_ids else None
            self.db.add_all([
                AuditAssignment(audit_id=audit.id, user_id=user_id, assigned_zones=assigned_zones)
                for user_id in user_ids
            ])
        elif zone_ids is not None:
            result = await self.db.execute(
                select(AuditAssignment).where(AuditAssignment.audit_id == audit.id)
            )
            for assignment in result.scalars().all():
                assignment.assigned_zones = json.dumps([str(z) for z in zone_ids]) if zone_ids else None

        audit.updated_at = datetime.now(timezone.utc)
        await self.db.commit()
        logger.info(f"Updated audit {audit.reference_number}")
        return await load_audit(self.db, audit.id)

    async def _current_zone_ids(self, audit_id: UUID) -> List[UUID]:
        result = await self.db.execute(
            select(AuditAssignment.assigned_zones)
            .where(AuditAssignment.audit_id == audit_id, AuditAssignment.assigned_zones.is_not(None))
            .limit(1)
        )
        raw = result.scalar_one_or_none()
        return [UUID(z) for z in json.loads(raw)] if raw else []

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def _transition(self, audit: Audit, target: AuditStatus) -> None:
        if not can_transition(audit.status, target.value):
            raise InvalidStateError(
                f"Invalid status transition from {audit.status} to {target.value}"
            )
        audit.status = target.value
        audit.updated_at = datetime.now(timezone.utc)

    async def start_audit(self, audit_id: UUID) -> Audit:
        """
        Move a PLANNED audit to IN_PROGRESS.

        An audit without items gets them generated from the current warehouse
        stock first.

        Raises:
            InvalidStateError: audit is not PLANNED
            ValidationError: warehouse has no stock to count
        """
        audit = await get_audit_header(self.db, audit_id)
        if audit.status != AuditStatus.PLANNED.value:
            raise InvalidStateError("Only planned audits can be started")

        result = await self.db.execute(
            select(func.count(AuditItem.id)).where(AuditItem.audit_id == audit.id)
        )
        if not result.scalar():
            generated = await self._snapshot_items(audit)
            if not generated:
                raise ValidationError("No inventory items found in this warehouse")
            logger.info(f"Audit {audit.reference_number}: {generated} items generated on start")

        self._transition(audit, AuditStatus.IN_PROGRESS)
        await self.db.commit()
        logger.info(f"Started audit {audit.reference_number}")
        return await load_audit(self.db, audit.id)

    async def cancel_audit(self, audit_id: UUID) -> Audit:
        """Cancel a PLANNED or IN_PROGRESS audit."""
        audit = await get_audit_header(self.db, audit_id)
        self._transition(audit, AuditStatus.CANCELLED)
        await self.db.commit()
        logger.info(f"Cancelled audit {audit.reference_number}")
        return await load_audit(self.db, audit.id)

    async def complete_audit(self, audit_id: UUID) -> Audit:
        """
        Close an IN_PROGRESS audit.

        Inventory quantities are left untouched; reconciliation happens elsewhere.
        """
        audit = await get_audit_header(self.db, audit_id)
        self._transition(audit, AuditStatus.COMPLETED)
        if audit.end_date is None:
            audit.end_date = datetime.now(timezone.utc)
        await self.db.commit()
        logger.info(f"Completed audit {audit.reference_number}")
        return await load_audit(self.db, audit.id)

    async def delete_audit(self, audit_id: UUID) -> None:
        """Delete a PLANNED audit with its items and assignments."""
        audit = await load_audit(self.db, audit_id)
        if audit.status != AuditStatus.PLANNED.value:
            raise InvalidStateError("Only planned audits can be deleted")

        reference = audit.reference_number
        # items and assignments go through the relationship cascade
        await self.db.delete(audit)
        await self.db.commit()
        logger.info(f"Deleted audit {reference}")
