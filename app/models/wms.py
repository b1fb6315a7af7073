"""WMS location models: the zone, aisle, shelf and bin hierarchy inside a warehouse."""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.warehouse import Warehouse
    from app.models.inventory import InventoryItem


class WarehouseZone(Base):
    """
    Warehouse Zone model.
    Logical division of warehouse into functional areas.
    """
    __tablename__ = "warehouse_zones"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "zone_code", name="uq_warehouse_zone_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Zone identification
    zone_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Zone code e.g., A, B, RCV, COLD"
    )
    zone_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Display order
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="zones")
    aisles: Mapped[List["WarehouseAisle"]] = relationship(
        "WarehouseAisle",
        back_populates="zone",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<WarehouseZone(code='{self.zone_code}')>"


class WarehouseAisle(Base):
    """Aisle inside a zone."""
    __tablename__ = "warehouse_aisles"
    __table_args__ = (
        UniqueConstraint("zone_id", "aisle_code", name="uq_zone_aisle_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    zone_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouse_zones.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    aisle_code: Mapped[str] = mapped_column(String(20), nullable=False)

    zone: Mapped["WarehouseZone"] = relationship("WarehouseZone", back_populates="aisles")
    shelves: Mapped[List["WarehouseShelf"]] = relationship(
        "WarehouseShelf",
        back_populates="aisle",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<WarehouseAisle(code='{self.aisle_code}')>"


class WarehouseShelf(Base):
    """Shelf inside an aisle."""
    __tablename__ = "warehouse_shelves"
    __table_args__ = (
        UniqueConstraint("aisle_id", "shelf_code", name="uq_aisle_shelf_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    aisle_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouse_aisles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    shelf_code: Mapped[str] = mapped_column(String(20), nullable=False)

    aisle: Mapped["WarehouseAisle"] = relationship("WarehouseAisle", back_populates="shelves")
    bins: Mapped[List["WarehouseBin"]] = relationship(
        "WarehouseBin",
        back_populates="shelf",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<WarehouseShelf(code='{self.shelf_code}')>"


class WarehouseBin(Base):
    """
    Warehouse Bin/Storage Location model.
    The smallest addressable location; inventory items may sit in one.
    """
    __tablename__ = "warehouse_bins"
    __table_args__ = (
        UniqueConstraint("shelf_id", "bin_code", name="uq_shelf_bin_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    shelf_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouse_shelves.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Bin identification
    bin_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Bin code e.g., A1-B2-C3"
    )
    barcode: Mapped[Optional[str]] = mapped_column(
        String(100),
        unique=True,
        nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    shelf: Mapped["WarehouseShelf"] = relationship("WarehouseShelf", back_populates="bins")
    inventory_items: Mapped[List["InventoryItem"]] = relationship(
        "InventoryItem",
        back_populates="bin"
    )

    def __repr__(self) -> str:
        return f"<WarehouseBin(code='{self.bin_code}')>"
