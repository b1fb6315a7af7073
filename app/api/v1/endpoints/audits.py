"""
Inventory Audit API Endpoints.

Planning, counting and reporting of physical warehouse audits.
Service errors (app.core.exceptions) are rendered by the handlers in app.main.
"""
from dataclasses import asdict
from datetime import date
from math import ceil
from typing import Optional
import uuid

from fastapi import APIRouter, Query, status

from app.api.deps import DB, CurrentUserId
from app.models.audit import AuditStatus, AuditItemStatus
from app.schemas.audit import (
    AuditCreate, AuditUpdate, AuditFilter, CountSubmission,
    AuditResponse, AuditListItem, AuditDetailResponse, AuditCreateResponse,
    AuditListResponse, AuditItemResponse, AuditItemListResponse,
    CountSubmissionResponse, AuditReport, AuditPeriodSummary,
    ItemCountUpdate, ItemCountResponse, AuditProgressResponse,
)
from app.services.audit_planning_service import AuditPlanningService
from app.services.audit_counting_service import AuditCountingService
from app.services.audit_report_service import AuditReportService

router = APIRouter()


def _item_response(item, zone_id: Optional[uuid.UUID] = None) -> AuditItemResponse:
    return AuditItemResponse.model_validate(item).model_copy(update={"zone_id": zone_id})


# ============================================================================
# AUDITS
# ============================================================================

@router.get(
    "",
    response_model=AuditListResponse,
    summary="List Audits"
)
async def list_audits(
    db: DB,
    current_user_id: CurrentUserId,
    audit_status: Optional[AuditStatus] = Query(None, alias="status"),
    warehouse: Optional[uuid.UUID] = Query(None, description="Warehouse ID"),
    search: Optional[str] = Query(None, max_length=100, description="Reference number or notes"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100, alias="pageSize"),
):
    """List audits, newest first."""
    filters = AuditFilter(status=audit_status, warehouse_id=warehouse, search=search)
    service = AuditPlanningService(db)
    audits, total = await service.list_audits(filters, skip=(page - 1) * size, limit=size)

    return AuditListResponse(
        items=[AuditListItem.model_validate(a) for a in audits],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.post(
    "",
    response_model=AuditCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Audit"
)
async def create_audit(
    data: AuditCreate,
    db: DB,
    current_user_id: CurrentUserId,
):
    """
    Plan an audit for a warehouse.

    Items are generated from current stock, optionally limited to zones.
    Skipped assignments and an ignored zone filter come back as warnings.
    """
    service = AuditPlanningService(db)
    result = await service.create_audit(data, current_user_id)

    if result.detailed:
        audit = AuditDetailResponse.model_validate(result.audit)
    else:
        audit = AuditDetailResponse(**AuditResponse.model_validate(result.audit).model_dump())

    return AuditCreateResponse(audit=audit, warnings=result.warnings)


@router.get(
    "/reports/summary",
    response_model=AuditPeriodSummary,
    summary="Audit Period Summary"
)
async def audit_period_summary(
    db: DB,
    current_user_id: CurrentUserId,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    warehouse: Optional[uuid.UUID] = Query(None, description="Warehouse ID"),
):
    """Audit counts, accuracy and variance for a date range (default: last 30 days)."""
    service = AuditReportService(db)
    return await service.summarize_period(start_date, end_date, warehouse)


@router.get(
    "/{audit_id}",
    response_model=AuditDetailResponse,
    summary="Get Audit"
)
async def get_audit(
    audit_id: uuid.UUID,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Get audit with assignments and items."""
    service = AuditPlanningService(db)
    audit = await service.get_audit(audit_id)
    return AuditDetailResponse.model_validate(audit)


@router.put(
    "/{audit_id}",
    response_model=AuditDetailResponse,
    summary="Update Audit"
)
async def update_audit(
    audit_id: uuid.UUID,
    data: AuditUpdate,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Update a planned or in-progress audit. Supplying users replaces all assignments."""
    service = AuditPlanningService(db)
    audit = await service.update_audit(audit_id, data)
    return AuditDetailResponse.model_validate(audit)


@router.delete(
    "/{audit_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Audit"
)
async def delete_audit(
    audit_id: uuid.UUID,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Delete a planned audit."""
    service = AuditPlanningService(db)
    await service.delete_audit(audit_id)


# ============================================================================
# LIFECYCLE
# ============================================================================

@router.post(
    "/{audit_id}/start",
    response_model=AuditDetailResponse,
    summary="Start Audit"
)
async def start_audit(
    audit_id: uuid.UUID,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Start counting. Generates items from current stock if the audit has none."""
    service = AuditPlanningService(db)
    audit = await service.start_audit(audit_id)
    return AuditDetailResponse.model_validate(audit)


@router.post(
    "/{audit_id}/cancel",
    response_model=AuditDetailResponse,
    summary="Cancel Audit"
)
async def cancel_audit(
    audit_id: uuid.UUID,
    db: DB,
    current_user_id: CurrentUserId,
):
    service = AuditPlanningService(db)
    audit = await service.cancel_audit(audit_id)
    return AuditDetailResponse.model_validate(audit)


@router.post(
    "/{audit_id}/complete",
    response_model=AuditDetailResponse,
    summary="Complete Audit"
)
async def complete_audit(
    audit_id: uuid.UUID,
    db: DB,
    current_user_id: CurrentUserId,
):
    service = AuditPlanningService(db)
    audit = await service.complete_audit(audit_id)
    return AuditDetailResponse.model_validate(audit)


# ============================================================================
# ITEMS & COUNTING
# ============================================================================

@router.get(
    "/{audit_id}/items",
    response_model=AuditItemListResponse,
    summary="List Audit Items"
)
async def list_audit_items(
    audit_id: uuid.UUID,
    db: DB,
    current_user_id: CurrentUserId,
    zone: Optional[uuid.UUID] = Query(None, description="Zone ID"),
    item_status: Optional[AuditItemStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100, description="Product name or SKU"),
):
    """Items to count, ordered by product name."""
    service = AuditCountingService(db)
    rows = await service.list_items(audit_id, zone_id=zone, status=item_status, search=search)
    return AuditItemListResponse(
        items=[_item_response(item, zone_id) for item, zone_id in rows],
        total=len(rows),
    )


@router.put(
    "/{audit_id}/items",
    response_model=CountSubmissionResponse,
    summary="Submit Counts"
)
async def submit_counts(
    audit_id: uuid.UUID,
    data: CountSubmission,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Record actual quantities for audit items of an in-progress audit."""
    service = AuditCountingService(db)
    result = await service.submit_counts(audit_id, data, current_user_id)
    return CountSubmissionResponse(
        updated_count=result.updated_count,
        is_complete=result.is_complete,
        items=[_item_response(item) for item in result.items],
    )


@router.patch(
    "/{audit_id}/items/{item_id}",
    response_model=ItemCountResponse,
    summary="Count Single Item"
)
async def count_audit_item(
    audit_id: uuid.UUID,
    item_id: uuid.UUID,
    data: ItemCountUpdate,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Record the actual quantity of one item and return the audit's progress."""
    service = AuditCountingService(db)
    result = await service.update_item(audit_id, item_id, data, current_user_id)
    return ItemCountResponse(
        item=_item_response(result.item),
        progress=AuditProgressResponse(**asdict(result.progress)),
        message=f"Audit item status updated to {result.item.status}",
    )


# ============================================================================
# REPORT
# ============================================================================

@router.get(
    "/{audit_id}/report",
    response_model=AuditReport,
    summary="Audit Report"
)
async def audit_report(
    audit_id: uuid.UUID,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Accuracy rate and variance value of an audit."""
    service = AuditReportService(db)
    return await service.build_report(audit_id)
