from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.schemas.audit import AuditCreate, CountEntry, CountSubmission
from app.services.audit_counting_service import AuditCountingService
from app.services.audit_planning_service import AuditPlanningService
from app.services.audit_report_service import AuditReportService, accuracy_rate

pytestmark = pytest.mark.asyncio


async def _started_audit(session, user, warehouse):
    planning = AuditPlanningService(session)
    result = await planning.create_audit(
        AuditCreate(warehouse_id=warehouse.id, start_date=datetime.now(timezone.utc)), user.id
    )
    return await planning.start_audit(result.audit.id)


async def _count(session, audit, user, quantities):
    """quantities: {inventory_item_id: actual}"""
    entries = [
        CountEntry(id=item.id, actual_quantity=quantities[item.inventory_item_id])
        for item in audit.items if item.inventory_item_id in quantities
    ]
    await AuditCountingService(session).submit_counts(audit.id, CountSubmission(items=entries), user.id)


async def test_accuracy_rate_rounding():
    assert accuracy_rate(3, 1) == Decimal("66.7")
    assert accuracy_rate(3, 0) == Decimal("100.0")
    assert accuracy_rate(0, 0) == Decimal("0")


async def test_report_accuracy_and_progress(session, seed):
    user = await seed.user()
    wh = await seed.warehouse(name="North DC")
    inv = [await seed.inventory(wh, quantity=10) for _ in range(4)]
    audit = await _started_audit(session, user, wh)
    await _count(session, audit, user, {inv[0].id: 10, inv[1].id: 10, inv[2].id: 8})

    report = await AuditReportService(session).build_report(audit.id)

    assert report.reference_number == audit.reference_number
    assert report.warehouse_name == "North DC"
    assert report.total_items == 4
    assert report.counted_items == 3
    assert report.pending_items == 1
    assert report.discrepancy_items == 1
    assert report.accuracy_rate == Decimal("66.7")
    assert len(report.lines) == 4


async def test_report_with_nothing_counted(session, seed):
    user = await seed.user()
    wh = await seed.warehouse()
    await seed.inventory(wh, quantity=3)
    audit = await _started_audit(session, user, wh)

    report = await AuditReportService(session).build_report(audit.id)

    assert report.accuracy_rate == Decimal("0")
    assert report.counted_items == 0
    assert report.total_variance_value == Decimal("0")
    assert all(line.value_impact is None for line in report.lines)


async def test_variance_values_split_by_sign(session, seed):
    user = await seed.user()
    wh = await seed.warehouse()
    over = await seed.inventory(wh, quantity=10, cost_price=Decimal("2.50"))
    under = await seed.inventory(wh, quantity=10, cost_price=Decimal("4.00"))
    exact = await seed.inventory(wh, quantity=10, cost_price=Decimal("9.99"))
    audit = await _started_audit(session, user, wh)
    await _count(session, audit, user, {over.id: 14, under.id: 7, exact.id: 10})

    report = await AuditReportService(session).build_report(audit.id)

    assert report.positive_variance_value == Decimal("10.00")
    assert report.negative_variance_value == Decimal("12.00")
    assert report.total_variance_value == Decimal("-2.00")
    assert report.positive_variance_value - report.negative_variance_value == report.total_variance_value

    lines = {line.audit_item_id: line for line in report.lines}
    by_inventory = {item.inventory_item_id: item.id for item in audit.items}
    assert lines[by_inventory[over.id]].value_impact == Decimal("10.00")
    assert lines[by_inventory[under.id]].value_impact == Decimal("-12.00")
    assert lines[by_inventory[exact.id]].value_impact == Decimal("0")


async def test_unit_cost_comes_from_earliest_inventory_record(session, seed):
    user = await seed.user()
    wh = await seed.warehouse()
    other_wh = await seed.warehouse()
    product = await seed.product()
    now = datetime.now(timezone.utc)
    await seed.inventory(other_wh, quantity=1, product=product, cost_price=Decimal("3.00"),
                         created_at=now - timedelta(days=30))
    counted = await seed.inventory(wh, quantity=5, product=product, cost_price=Decimal("8.00"), created_at=now)
    audit = await _started_audit(session, user, wh)
    await _count(session, audit, user, {counted.id: 3})

    report = await AuditReportService(session).build_report(audit.id)

    assert report.lines[0].unit_cost == Decimal("3.00")
    assert report.total_variance_value == Decimal("-6.00")


async def test_missing_or_zero_cost_is_left_out_of_the_sums(session, seed):
    user = await seed.user()
    wh = await seed.warehouse()
    costed = await seed.inventory(wh, quantity=5, cost_price=Decimal("1.00"))
    uncosted = await seed.inventory(wh, quantity=5, cost_price=None)
    audit = await _started_audit(session, user, wh)
    await _count(session, audit, user, {costed.id: 6, uncosted.id: 1})

    report = await AuditReportService(session).build_report(audit.id)

    assert report.total_variance_value == Decimal("1.00")
    assert report.positive_variance_value == Decimal("1.00")
    assert report.negative_variance_value == Decimal("0")
    line = next(l for l in report.lines if l.unit_cost == Decimal("0"))
    assert line.value_impact == Decimal("0")


async def test_non_finite_cost_has_no_value_impact(session, seed, monkeypatch):
    user = await seed.user()
    wh = await seed.warehouse()
    good = await seed.inventory(wh, quantity=5, cost_price=Decimal("2.00"))
    bad = await seed.inventory(wh, quantity=5, cost_price=Decimal("2.00"))
    audit = await _started_audit(session, user, wh)
    await _count(session, audit, user, {good.id: 4, bad.id: 9})
    service = AuditReportService(session)

    async def costs(product_ids):
        return {good.product_id: Decimal("2.00"), bad.product_id: Decimal("NaN")}

    monkeypatch.setattr(service, "_unit_costs", costs)
    report = await service.build_report(audit.id)

    bad_line = next(l for l in report.lines if l.product_id == bad.product_id)
    assert bad_line.value_impact is None
    assert bad_line.unit_cost is None
    assert report.total_variance_value == Decimal("-2.00")
    assert report.negative_variance_value == Decimal("2.00")
    assert report.positive_variance_value == Decimal("0")


async def test_period_summary(session, seed):
    user = await seed.user()
    wh = await seed.warehouse()
    inv = [await seed.inventory(wh, quantity=10) for _ in range(3)]
    planning = AuditPlanningService(session)
    audit = await _started_audit(session, user, wh)
    await _count(session, audit, user, {inv[0].id: 12, inv[1].id: 9, inv[2].id: 10})
    await planning.complete_audit(audit.id)
    await planning.create_audit(
        AuditCreate(warehouse_id=wh.id, start_date=datetime.now(timezone.utc)), user.id
    )

    summary = await AuditReportService(session).summarize_period()

    assert summary.total_audits == 2
    assert summary.completed_audits == 1
    assert summary.planned_audits == 1
    assert summary.total_items == 6
    assert summary.counted_items == 3
    assert summary.discrepancy_items == 2
    assert summary.accuracy_rate == Decimal("33.3")
    assert summary.positive_variance_items == 1
    assert summary.negative_variance_items == 1
    assert summary.net_variance_quantity == 1


async def test_period_summary_excludes_other_ranges_and_warehouses(session, seed):
    user = await seed.user()
    wh = await seed.warehouse()
    other = await seed.warehouse()
    await seed.inventory(wh, quantity=1)
    await _started_audit(session, user, wh)

    service = AuditReportService(session)
    today = datetime.now(timezone.utc).date()

    past = await service.summarize_period(today - timedelta(days=60), today - timedelta(days=31))
    assert past.total_audits == 0

    elsewhere = await service.summarize_period(warehouse_id=other.id)
    assert elsewhere.total_audits == 0
    assert elsewhere.accuracy_rate == Decimal("0")
