"""
Zone membership lookup for warehouse bins.

Bins reach their zone through shelf -> aisle -> zone. The whole mapping of a
warehouse is loaded with one join and reused for every lookup of an operation.
"""
from typing import Dict, Iterable, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.wms import WarehouseZone, WarehouseAisle, WarehouseShelf, WarehouseBin


class ZoneMembershipIndex:
    """Bin id -> zone id mapping for one warehouse."""

    def __init__(self, bin_zones: Dict[UUID, UUID]):
        self._bin_zones = bin_zones

    def zone_of(self, bin_id: Optional[UUID]) -> Optional[UUID]:
        """Zone containing the bin, or None for unplaced stock."""
        if bin_id is None:
            return None
        return self._bin_zones.get(bin_id)

    def bins_in(self, zone_ids: Iterable[UUID]) -> Set[UUID]:
        """All bins located in any of the given zones."""
        wanted = set(zone_ids)
        return {
            bin_id for bin_id, zone_id in self._bin_zones.items()
            if zone_id in wanted
        }

    def in_zone(self, bin_id: Optional[UUID], zone_id: UUID) -> bool:
        return bin_id is not None and self._bin_zones.get(bin_id) == zone_id


class ZoneMembershipService:
    """Builds ZoneMembershipIndex instances."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_index(self, warehouse_id: UUID) -> ZoneMembershipIndex:
        """Resolve every bin of the warehouse to its zone in a single query."""
        result = await self.db.execute(
            select(WarehouseBin.id, WarehouseZone.id)
            .join(WarehouseShelf, WarehouseBin.shelf_id == WarehouseShelf.id)
            .join(WarehouseAisle, WarehouseShelf.aisle_id == WarehouseAisle.id)
            .join(WarehouseZone, WarehouseAisle.zone_id == WarehouseZone.id)
            .where(WarehouseZone.warehouse_id == warehouse_id)
        )
        return ZoneMembershipIndex({bin_id: zone_id for bin_id, zone_id in result.all()})
