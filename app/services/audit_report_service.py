"""
Audit Reporting Service.

Read-only accuracy and variance-value reporting over audits.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import select, func, case, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.models.audit import (
    Audit, AuditItem, AuditStatus, AuditItemStatus, COUNTED_ITEM_STATUSES,
)
from app.models.inventory import InventoryItem
from app.schemas.audit import AuditReport, AuditReportLine, AuditPeriodSummary
from app.services.audit_support import load_audit
from app.services.zone_membership_service import ZoneMembershipService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DEFAULT_PERIOD_DAYS = 30


def accuracy_rate(counted: int, discrepancies: int) -> Decimal:
    """Share of counted items without discrepancy, in percent to one decimal."""
    if counted <= 0:
        return Decimal("0.0")
    rate = Decimal(counted - discrepancies) / Decimal(counted) * 100
    return rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


class AuditReportService:
    """Service for audit reports."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.zones = ZoneMembershipService(db)

    async def _unit_costs(self, product_ids: Iterable[UUID]) -> Dict[UUID, Decimal]:
        """Cost price of each product's earliest inventory record."""
        product_ids = set(product_ids)
        if not product_ids:
            return {}

        result = await self.db.execute(
            select(InventoryItem.product_id, InventoryItem.cost_price)
            .where(InventoryItem.product_id.in_(product_ids))
            .order_by(InventoryItem.created_at, InventoryItem.id)
        )
        costs: Dict[UUID, Decimal] = {}
        for product_id, cost_price in result.all():
            if product_id not in costs:
                costs[product_id] = Decimal(cost_price) if cost_price is not None else ZERO
        return costs

    async def build_report(self, audit_id: UUID) -> AuditReport:
        """
        Accuracy and financial impact of an audit.

        Value sums only include counted items with a non-zero variance and a
        finite, non-zero unit cost. The negative sum is reported as a
        magnitude, so positive - negative == total.
        """
        audit = await load_audit(self.db, audit_id)
        index = await self.zones.load_index(audit.warehouse_id)
        costs = await self._unit_costs(item.product_id for item in audit.items)

        lines = []
        counted = discrepancies = 0
        total_value = positive_value = negative_value = ZERO

        for item in audit.items:
            if item.is_counted:
                counted += 1
            if item.status == AuditItemStatus.DISCREPANCY.value:
                discrepancies += 1

            unit_cost = costs.get(item.product_id, ZERO)
            value_impact: Optional[Decimal] = None
            if item.is_counted and unit_cost.is_finite():
                value_impact = Decimal(item.variance) * unit_cost

                if item.variance and unit_cost != ZERO:
                    total_value += value_impact
                    if value_impact > 0:
                        positive_value += value_impact
                    else:
                        negative_value += -value_impact

            lines.append(AuditReportLine(
                audit_item_id=item.id,
                product_id=item.product_id,
                product_name=item.product.name,
                sku=item.product.sku,
                zone_id=index.zone_of(item.inventory_item.bin_id),
                expected_quantity=item.expected_quantity,
                actual_quantity=item.actual_quantity,
                variance=item.variance,
                status=item.status,
                unit_cost=unit_cost if unit_cost.is_finite() else None,
                value_impact=value_impact,
            ))

        lines.sort(key=lambda line: (line.product_name, str(line.audit_item_id)))
        total_items = len(audit.items)

        return AuditReport(
            audit_id=audit.id,
            reference_number=audit.reference_number,
            status=audit.status,
            warehouse_id=audit.warehouse_id,
            warehouse_name=audit.warehouse.name if audit.warehouse else None,
            start_date=audit.start_date,
            end_date=audit.end_date,
            generated_at=datetime.now(timezone.utc),
            total_items=total_items,
            counted_items=counted,
            pending_items=total_items - counted,
            discrepancy_items=discrepancies,
            accuracy_rate=accuracy_rate(counted, discrepancies),
            total_variance_value=total_value,
            positive_variance_value=positive_value,
            negative_variance_value=negative_value,
            lines=lines,
        )

    async def summarize_period(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        warehouse_id: Optional[UUID] = None,
    ) -> AuditPeriodSummary:
        """Roll up audits created between start_date and end_date (inclusive days)."""
        end_date = end_date or datetime.now(timezone.utc).date()
        start_date = start_date or end_date - timedelta(days=DEFAULT_PERIOD_DAYS)
        if start_date > end_date:
            raise ValidationError("Start date must be on or before end date")

        conditions = [
            Audit.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc),
            Audit.created_at <= datetime.combine(end_date, time.max, tzinfo=timezone.utc),
        ]
        if warehouse_id:
            conditions.append(Audit.warehouse_id == warehouse_id)

        status_result = await self.db.execute(
            select(Audit.status, func.count(Audit.id))
            .where(*conditions)
            .group_by(Audit.status)
        )
        by_status = {status: count for status, count in status_result.all()}

        counted_statuses = [s.value for s in COUNTED_ITEM_STATUSES]
        has_variance = and_(AuditItem.variance.is_not(None), AuditItem.variance != 0)
        item_result = await self.db.execute(
            select(
                func.count(AuditItem.id),
                func.coalesce(func.sum(case((AuditItem.status.in_(counted_statuses), 1), else_=0)), 0),
                func.coalesce(func.sum(case(
                    (or_(AuditItem.status == AuditItemStatus.DISCREPANCY.value, has_variance), 1),
                    else_=0,
                )), 0),
                func.coalesce(func.sum(case((AuditItem.variance > 0, 1), else_=0)), 0),
                func.coalesce(func.sum(case((AuditItem.variance < 0, 1), else_=0)), 0),
                func.coalesce(func.sum(AuditItem.variance), 0),
            )
            .join(Audit, AuditItem.audit_id == Audit.id)
            .where(*conditions)
        )
        total_items, counted, discrepancies, positive, negative, net = item_result.one()

        logger.debug(f"Audit summary {start_date}..{end_date}: {sum(by_status.values())} audits")

        return AuditPeriodSummary(
            start_date=start_date,
            end_date=end_date,
            warehouse_id=warehouse_id,
            total_audits=sum(by_status.values()),
            planned_audits=by_status.get(AuditStatus.PLANNED.value, 0),
            in_progress_audits=by_status.get(AuditStatus.IN_PROGRESS.value, 0),
            completed_audits=by_status.get(AuditStatus.COMPLETED.value, 0),
            cancelled_audits=by_status.get(AuditStatus.CANCELLED.value, 0),
            total_items=total_items,
            counted_items=int(counted),
            discrepancy_items=int(discrepancies),
            accuracy_rate=accuracy_rate(int(counted), int(discrepancies)),
            positive_variance_items=int(positive),
            negative_variance_items=int(negative),
            net_variance_quantity=int(net),
        )
