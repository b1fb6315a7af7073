"""
Audit Counting Service.

Records physical counts against the items of an in-progress audit.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func, or_, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import ValidationError, NotFoundError, InvalidStateError
from app.models.audit import AuditItem, AuditStatus, AuditItemStatus, COUNTED_ITEM_STATUSES
from app.models.inventory import InventoryItem
from app.models.product import Product
from app.schemas.audit import CountSubmission, ItemCountUpdate
from app.services.audit_support import LIKE_ESCAPE, contains_pattern, resolve_actor, get_audit_header
from app.services.zone_membership_service import ZoneMembershipService

logger = logging.getLogger(__name__)


@dataclass
class CountSubmissionResult:
    updated_count: int
    is_complete: bool
    items: List[AuditItem]


@dataclass
class AuditProgress:
    total_items: int
    counted_items: int
    percentage: int


@dataclass
class ItemCountResult:
    item: AuditItem
    progress: AuditProgress


class AuditCountingService:
    """Service for entering counts on audit items."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.zones = ZoneMembershipService(db)

    def _item_query(self, audit_id: UUID):
        return (
            select(AuditItem)
            .options(
                selectinload(AuditItem.product),
                selectinload(AuditItem.inventory_item),
            )
            .where(AuditItem.audit_id == audit_id)
        )

    async def submit_counts(
        self,
        audit_id: UUID,
        data: CountSubmission,
        user_id: UUID,
    ) -> CountSubmissionResult:
        """
        Record actual quantities for a batch of audit items.

        The whole batch is validated before any item is touched. Re-counting
        an item overwrites the previous count.

        Raises:
            ValidationError: empty batch, duplicate item, negative quantity, item outside zone
            NotFoundError: audit or item not found
            InvalidStateError: audit is not IN_PROGRESS
            AuthenticationError: user_id does not resolve to a user
        """
        if not data.items:
            raise ValidationError("No items provided")

        audit = await get_audit_header(self.db, audit_id)
        if audit.status != AuditStatus.IN_PROGRESS.value:
            raise InvalidStateError("Audit must be in progress to update items")

        actor, _ = await resolve_actor(self.db, user_id, allow_fallback=False)

        item_ids = [entry.id for entry in data.items]
        duplicates = sorted({str(i) for i in item_ids if item_ids.count(i) > 1})
        if duplicates:
            raise ValidationError("Duplicate audit items in submission", details=", ".join(duplicates))

        result = await self.db.execute(
            self._item_query(audit.id).where(AuditItem.id.in_(item_ids))
        )
        items_by_id = {item.id: item for item in result.scalars().all()}

        missing = [str(i) for i in item_ids if i not in items_by_id]
        if missing:
            raise NotFoundError("Audit item not found", details=", ".join(missing))

        for entry in data.items:
            if entry.actual_quantity < 0:
                raise ValidationError(
                    "Actual quantity cannot be negative",
                    details=f"Item {entry.id}: {entry.actual_quantity}",
                )

        if data.zone_id:
            index = await self.zones.load_index(audit.warehouse_id)
            outside = [
                str(entry.id) for entry in data.items
                if not index.in_zone(items_by_id[entry.id].inventory_item.bin_id, data.zone_id)
            ]
            if outside:
                raise ValidationError("Items are not located in the selected zone", details=", ".join(outside))

        updated = []
        for entry in data.items:
            item = items_by_id[entry.id]
            item.record_count(entry.actual_quantity, actor.id, entry.notes)
            updated.append(item)

        await self.db.flush()

        pending_result = await self.db.execute(
            select(func.count(AuditItem.id)).where(
                AuditItem.audit_id == audit.id,
                AuditItem.actual_quantity.is_(None),
            )
        )
        is_complete = (pending_result.scalar() or 0) == 0

        await self.db.commit()

        discrepancies = sum(1 for item in updated if item.status == AuditItemStatus.DISCREPANCY.value)
        logger.info(
            f"Audit {audit.reference_number}: {len(updated)} items counted by {actor.email} "
            f"({discrepancies} discrepancies), complete={is_complete}"
        )
        return CountSubmissionResult(updated_count=len(updated), is_complete=is_complete, items=updated)

    async def update_item(
        self,
        audit_id: UUID,
        item_id: UUID,
        data: ItemCountUpdate,
        user_id: UUID,
    ) -> ItemCountResult:
        """
        Record the count of a single audit item and return audit progress.

        Notes are kept when none are given. The audit is not completed
        automatically when every item has been counted.

        Raises:
            NotFoundError: audit or item not found
            InvalidStateError: audit is not IN_PROGRESS
            AuthenticationError: user_id does not resolve to a user
        """
        audit = await get_audit_header(self.db, audit_id)
        if audit.status != AuditStatus.IN_PROGRESS.value:
            raise InvalidStateError("Audit must be in progress to update items")

        actor, _ = await resolve_actor(self.db, user_id, allow_fallback=False)

        result = await self.db.execute(
            self._item_query(audit.id).where(AuditItem.id == item_id)
        )
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("Audit item not found")

        notes = data.notes if data.notes is not None else item.notes
        item.record_count(data.actual_quantity, actor.id, notes)
        await self.db.flush()

        progress = await self.get_progress(audit.id)
        await self.db.commit()

        logger.info(
            f"Audit {audit.reference_number}: item {item.id} counted {data.actual_quantity} "
            f"by {actor.email} ({item.status}), progress {progress.percentage}%"
        )
        return ItemCountResult(item=item, progress=progress)

    async def get_progress(self, audit_id: UUID) -> AuditProgress:
        """
        Counting progress of an audit.

        ``percentage`` is the share of items counted without discrepancy
        (COUNTED or RECONCILED), rounded half up.
        """
        counted_statuses = [s.value for s in COUNTED_ITEM_STATUSES]
        clean_statuses = [AuditItemStatus.COUNTED.value, AuditItemStatus.RECONCILED.value]
        result = await self.db.execute(
            select(
                func.count(AuditItem.id),
                func.coalesce(func.sum(case((AuditItem.status.in_(counted_statuses), 1), else_=0)), 0),
                func.coalesce(func.sum(case((AuditItem.status.in_(clean_statuses), 1), else_=0)), 0),
            ).where(AuditItem.audit_id == audit_id)
        )
        total, counted, clean = result.one()

        percentage = 0
        if total:
            share = Decimal(int(clean)) * 100 / Decimal(total)
            percentage = int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return AuditProgress(total_items=total, counted_items=int(counted), percentage=percentage)

    async def list_items(
        self,
        audit_id: UUID,
        zone_id: Optional[UUID] = None,
        status: Optional[AuditItemStatus] = None,
        search: Optional[str] = None,
    ) -> List[Tuple[AuditItem, Optional[UUID]]]:
        """
        Items of an audit with the zone each one sits in, ordered by product name.

        A zone that contains no bins leaves the list unfiltered.
        """
        audit = await get_audit_header(self.db, audit_id)
        index = await self.zones.load_index(audit.warehouse_id)

        query = (
            self._item_query(audit.id)
            .join(Product, AuditItem.product_id == Product.id)
            .join(InventoryItem, AuditItem.inventory_item_id == InventoryItem.id)
        )
        if status:
            query = query.where(AuditItem.status == status.value)
        if search:
            pattern = contains_pattern(search.strip())
            query = query.where(or_(
                Product.name.ilike(pattern, escape=LIKE_ESCAPE),
                Product.sku.ilike(pattern, escape=LIKE_ESCAPE),
            ))
        if zone_id:
            bin_ids = index.bins_in([zone_id])
            if bin_ids:
                query = query.where(InventoryItem.bin_id.in_(bin_ids))
            else:
                logger.warning(f"Zone {zone_id} has no bins, returning all items of audit {audit.reference_number}")

        result = await self.db.execute(query.order_by(Product.name, AuditItem.id))
        return [
            (item, index.zone_of(item.inventory_item.bin_id))
            for item in result.scalars().all()
        ]
