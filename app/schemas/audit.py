"""
Inventory Audit Schemas.

Pydantic schemas for audit planning, counting and reporting.
"""
import json
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.audit import AuditStatus, AuditItemStatus
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class AuditCreate(BaseCreateSchema):
    """Schema for planning a new audit."""
    warehouse_id: UUID
    start_date: datetime
    end_date: Optional[datetime] = None
    notes: Optional[str] = None
    zones: List[UUID] = Field(default_factory=list, description="Zone ids to restrict the audit to")
    users: List[UUID] = Field(default_factory=list, description="User ids to assign")


class AuditUpdate(BaseUpdateSchema):
    """Schema for editing an open audit. Supplying users replaces all assignments."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    notes: Optional[str] = None
    zones: Optional[List[UUID]] = None
    users: Optional[List[UUID]] = None


class AuditFilter(BaseModel):
    """Validated filter for listing audits."""
    status: Optional[AuditStatus] = None
    warehouse_id: Optional[UUID] = None
    search: Optional[str] = Field(None, max_length=100)

    @field_validator("search")
    @classmethod
    def blank_search_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class CountEntry(BaseCreateSchema):
    """Actual quantity for one audit item."""
    id: UUID
    actual_quantity: int = Field(..., ge=0)
    notes: Optional[str] = None


class CountSubmission(BaseCreateSchema):
    """Batch of counts for an in-progress audit."""
    items: List[CountEntry] = Field(default_factory=list)
    zone_id: Optional[UUID] = None


class ItemCountUpdate(BaseUpdateSchema):
    """Count of a single audit item."""
    actual_quantity: int = Field(..., ge=0)
    notes: Optional[str] = None


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class UserBrief(BaseResponseSchema):
    id: UUID
    email: str
    full_name: str


class WarehouseBrief(BaseResponseSchema):
    id: UUID
    code: str
    name: str
    is_active: bool


class ProductBrief(BaseResponseSchema):
    id: UUID
    name: str
    sku: str
    cost_price: Optional[Decimal] = None


class InventoryItemBrief(BaseResponseSchema):
    id: UUID
    bin_id: Optional[UUID] = None
    quantity: int
    cost_price: Optional[Decimal] = None


class AuditAssignmentResponse(BaseResponseSchema):
    """User assignment with the zones it is restricted to."""
    id: UUID
    user_id: UUID
    assigned_zones: Optional[List[UUID]] = None
    user: Optional[UserBrief] = None

    @field_validator("assigned_zones", mode="before")
    @classmethod
    def decode_zones(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v


class AuditItemResponse(BaseResponseSchema):
    """Audit line with expected vs. actual quantity."""
    id: UUID
    audit_id: UUID
    product_id: UUID
    inventory_item_id: UUID
    expected_quantity: int
    actual_quantity: Optional[int] = None
    variance: Optional[int] = None
    status: AuditItemStatus
    notes: Optional[str] = None
    counted_by_id: Optional[UUID] = None
    counted_at: Optional[datetime] = None
    product: Optional[ProductBrief] = None
    inventory_item: Optional[InventoryItemBrief] = None
    zone_id: Optional[UUID] = None


class AuditResponse(BaseResponseSchema):
    """Audit header."""
    id: UUID
    reference_number: str
    warehouse_id: UUID
    status: AuditStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_by_id: UUID
    created_at: datetime
    updated_at: datetime


class AuditListItem(AuditResponse):
    """Audit row for list views with progress counters."""
    warehouse: Optional[WarehouseBrief] = None
    created_by: Optional[UserBrief] = None
    assignments: List[AuditAssignmentResponse] = []
    total_items: int = 0
    counted_items: int = 0
    discrepancy_items: int = 0


class AuditDetailResponse(AuditListItem):
    """Audit with assignments and all items."""
    items: List[AuditItemResponse] = []


class AuditCreateResponse(BaseModel):
    """Created audit plus any best-effort warnings (skipped assignments, ignored zone filter)."""
    audit: AuditDetailResponse
    warnings: List[str] = []


class AuditListResponse(BaseModel):
    """Paginated audit list."""
    items: List[AuditListItem]
    total: int
    page: int
    size: int
    pages: int


class AuditItemListResponse(BaseModel):
    items: List[AuditItemResponse]
    total: int


class CountSubmissionResponse(BaseModel):
    """Result of a count submission. is_complete covers the whole audit."""
    updated_count: int
    is_complete: bool
    items: List[AuditItemResponse]
    message: str = "Audit items updated successfully"


class AuditProgressResponse(BaseModel):
    total_items: int
    counted_items: int
    percentage: int = Field(..., description="Items counted without discrepancy, in percent")


class ItemCountResponse(BaseModel):
    """Single counted item plus progress of the whole audit."""
    item: AuditItemResponse
    progress: AuditProgressResponse
    message: str


# ============================================================================
# REPORT SCHEMAS
# ============================================================================

class AuditReportLine(BaseModel):
    """Per-item variance and value impact."""
    audit_item_id: UUID
    product_id: UUID
    product_name: str
    sku: str
    zone_id: Optional[UUID] = None
    expected_quantity: int
    actual_quantity: Optional[int] = None
    variance: Optional[int] = None
    status: AuditItemStatus
    unit_cost: Optional[Decimal] = None
    value_impact: Optional[Decimal] = None


class AuditReport(BaseModel):
    """Accuracy and financial variance summary of one audit."""
    audit_id: UUID
    reference_number: str
    status: AuditStatus
    warehouse_id: UUID
    warehouse_name: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    generated_at: datetime

    total_items: int
    counted_items: int
    pending_items: int
    discrepancy_items: int
    accuracy_rate: Decimal

    total_variance_value: Decimal
    positive_variance_value: Decimal
    negative_variance_value: Decimal

    lines: List[AuditReportLine] = []


class AuditPeriodSummary(BaseModel):
    """Roll-up of all audits created in a date range."""
    start_date: date
    end_date: date
    warehouse_id: Optional[UUID] = None

    total_audits: int
    planned_audits: int
    in_progress_audits: int
    completed_audits: int
    cancelled_audits: int

    total_items: int
    counted_items: int
    discrepancy_items: int
    accuracy_rate: Decimal

    positive_variance_items: int
    negative_variance_items: int
    net_variance_quantity: int
