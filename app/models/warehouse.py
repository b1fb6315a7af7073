"""Warehouse model for inventory locations."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, DateTime
from sqlalchemy.orm import relationship
import uuid

from app.database import Base
from app.db_types import UUIDType


class Warehouse(Base):
    """Warehouse model for storing inventory locations."""

    __tablename__ = "warehouses"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)

    # Status
    is_active = Column(Boolean, default=True)

    notes = Column(Text)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    zones = relationship(
        "WarehouseZone",
        back_populates="warehouse",
        cascade="all, delete-orphan"
    )
    inventory_items = relationship("InventoryItem", back_populates="warehouse")

    def __repr__(self):
        return f"<Warehouse {self.code}: {self.name}>"
