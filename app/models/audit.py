"""
Physical Inventory Audit Models.

Models for warehouse audits including:
- Audit header with reference number and lifecycle status
- Per-user zone assignments
- Audit items carrying expected vs. actual quantity
"""
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from uuid import UUID, uuid4

from sqlalchemy import String, Integer, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.warehouse import Warehouse
    from app.models.user import User
    from app.models.product import Product
    from app.models.inventory import InventoryItem


# ============================================================================
# ENUMS
# ============================================================================

class AuditStatus(str, Enum):
    """Lifecycle status of an audit."""
    PLANNED = "PLANNED"            # Created, nothing counted yet
    IN_PROGRESS = "IN_PROGRESS"    # Counting open
    COMPLETED = "COMPLETED"        # Closed by an explicit completion
    CANCELLED = "CANCELLED"


class AuditItemStatus(str, Enum):
    """Status of a single audit line."""
    PENDING = "PENDING"            # Not counted
    COUNTED = "COUNTED"            # Counted, matches expected
    DISCREPANCY = "DISCREPANCY"    # Counted, differs from expected
    RECONCILED = "RECONCILED"      # Set by downstream reconciliation only


AUDIT_STATUS_TRANSITIONS = {
    AuditStatus.PLANNED: {AuditStatus.IN_PROGRESS, AuditStatus.CANCELLED},
    AuditStatus.IN_PROGRESS: {AuditStatus.COMPLETED, AuditStatus.CANCELLED},
    AuditStatus.COMPLETED: set(),
    AuditStatus.CANCELLED: set(),
}

COUNTED_ITEM_STATUSES = (
    AuditItemStatus.COUNTED,
    AuditItemStatus.DISCREPANCY,
    AuditItemStatus.RECONCILED,
)


def can_transition(current: str, target: str) -> bool:
    """Check whether an audit may move from ``current`` to ``target``."""
    try:
        return AuditStatus(target) in AUDIT_STATUS_TRANSITIONS[AuditStatus(current)]
    except ValueError:
        return False


# ============================================================================
# MODELS
# ============================================================================

class Audit(Base):
    """
    A scheduled physical count of a warehouse, optionally limited to zones.

    Reference numbers follow AUDIT-YYMMDD-NNNN and are unique.
    """
    __tablename__ = "audits"
    __table_args__ = (
        Index("idx_audit_warehouse_status", "warehouse_id", "status"),
        Index("idx_audit_created_at", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(
        UUIDType, primary_key=True, default=uuid4
    )
    reference_number: Mapped[str] = mapped_column(
        String(30), unique=True, nullable=False, index=True
    )
    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("warehouses.id"), nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AuditStatus.PLANNED.value
    )

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_by_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    warehouse: Mapped["Warehouse"] = relationship("Warehouse")
    created_by: Mapped["User"] = relationship("User")
    assignments: Mapped[List["AuditAssignment"]] = relationship(
        back_populates="audit",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    items: Mapped[List["AuditItem"]] = relationship(
        back_populates="audit",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    # Progress counters; require ``items`` to be loaded
    @property
    def total_items(self) -> int:
        return len(self.items)

    @property
    def counted_items(self) -> int:
        return sum(1 for item in self.items if item.is_counted)

    @property
    def discrepancy_items(self) -> int:
        return sum(
            1 for item in self.items
            if item.status == AuditItemStatus.DISCREPANCY.value
        )

    def __repr__(self) -> str:
        return f"<Audit {self.reference_number} ({self.status})>"


class AuditAssignment(Base):
    """
    Links a user to an audit.
    ``assigned_zones`` holds a JSON-encoded list of zone ids, or NULL for all zones.
    """
    __tablename__ = "audit_assignments"
    __table_args__ = (
        Index("idx_audit_assignment_audit", "audit_id"),
    )

    id: Mapped[UUID] = mapped_column(
        UUIDType, primary_key=True, default=uuid4
    )
    audit_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("users.id"), nullable=False
    )
    assigned_zones: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    audit: Mapped["Audit"] = relationship(back_populates="assignments")
    user: Mapped["User"] = relationship("User")


class AuditItem(Base):
    """
    One product/location line of an audit.

    ``expected_quantity`` is the on-hand snapshot taken when the line was
    generated and is never updated afterwards.
    """
    __tablename__ = "audit_items"
    __table_args__ = (
        Index("idx_audit_item_audit_status", "audit_id", "status"),
    )

    id: Mapped[UUID] = mapped_column(
        UUIDType, primary_key=True, default=uuid4
    )
    audit_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("products.id"), nullable=False
    )
    inventory_item_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("inventory_items.id"), nullable=False
    )

    expected_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_quantity: Mapped[Optional[int]] = mapped_column(Integer)
    variance: Mapped[Optional[int]] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AuditItemStatus.PENDING.value
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    counted_by_id: Mapped[Optional[UUID]] = mapped_column(
        UUIDType, ForeignKey("users.id")
    )
    counted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    audit: Mapped["Audit"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship("Product")
    inventory_item: Mapped["InventoryItem"] = relationship("InventoryItem")
    counted_by: Mapped[Optional["User"]] = relationship("User")

    @property
    def is_counted(self) -> bool:
        return self.actual_quantity is not None

    def record_count(self, actual_quantity: int, counted_by_id: UUID, notes: Optional[str] = None) -> None:
        """Store a count, derive variance and status. Re-counting overwrites."""
        self.actual_quantity = actual_quantity
        self.variance = actual_quantity - self.expected_quantity
        self.status = (
            AuditItemStatus.COUNTED.value if self.variance == 0
            else AuditItemStatus.DISCREPANCY.value
        )
        self.notes = notes
        self.counted_by_id = counted_by_id
        self.counted_at = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f"<AuditItem {self.id} expected={self.expected_quantity} actual={self.actual_quantity}>"
