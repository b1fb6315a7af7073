"""Inventory models for on-hand stock."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, ForeignKey, Integer, DateTime, Numeric
from sqlalchemy import CheckConstraint
from sqlalchemy.orm import relationship
import uuid

from app.database import Base
from app.db_types import UUIDType


class InventoryItem(Base):
    """
    On-hand quantity of one product at one location.

    A location is a warehouse (optionally a specific bin) or a store.
    Audits snapshot ``quantity`` but never write it back.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_item_quantity_non_negative"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)

    # Product reference
    product_id = Column(UUIDType, ForeignKey("products.id"), nullable=False, index=True)

    # Location
    warehouse_id = Column(UUIDType, ForeignKey("warehouses.id"), index=True)
    store_id = Column(UUIDType, index=True)  # Store-level stock, stores live outside this service
    bin_id = Column(UUIDType, ForeignKey("warehouse_bins.id"), index=True)

    # Stock level
    quantity = Column(Integer, nullable=False, default=0)

    # Cost tracking
    cost_price = Column(Numeric(12, 2))

    status = Column(String(50), default="AVAILABLE", index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    product = relationship("Product", back_populates="inventory_items")
    warehouse = relationship("Warehouse", back_populates="inventory_items")
    bin = relationship("WarehouseBin", back_populates="inventory_items")

    def __repr__(self):
        return f"<InventoryItem {self.id} qty={self.quantity}>"
