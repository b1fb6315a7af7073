# tests/conftest.py
from __future__ import annotations

import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict, Optional, Tuple
import uuid

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Settings are read at import time of app.config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"

from app.core.security import create_access_token  # noqa: E402
from app.database import Base, configure_sqlite_transactions, get_db, register_models  # noqa: E402
from app.main import app  # noqa: E402
from app.models.audit import Audit  # noqa: E402
from app.models.inventory import InventoryItem  # noqa: E402
from app.models.product import Product  # noqa: E402
from app.models.user import User  # noqa: E402
from app.models.warehouse import Warehouse  # noqa: E402
from app.models.wms import WarehouseZone, WarehouseAisle, WarehouseShelf, WarehouseBin  # noqa: E402


# =========================================
# In-memory database per test
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    configure_sqlite_transactions(engine)
    register_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


# =========================================
# Seed data
# =========================================
class Seeder:
    """Creates reference rows. Every call commits, so API requests see the data."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def user(self, email: Optional[str] = None, first_name: str = "Counter", **kwargs) -> User:
        n = self._next()
        return await self._save(User(
            email=email or f"user{n}@example.com",
            first_name=first_name,
            **kwargs,
        ))

    async def warehouse(self, code: Optional[str] = None, name: str = "Main Warehouse") -> Warehouse:
        n = self._next()
        return await self._save(Warehouse(code=code or f"WH{n:03d}", name=name))

    async def zone(self, warehouse: Warehouse, code: Optional[str] = None) -> WarehouseZone:
        n = self._next()
        return await self._save(WarehouseZone(
            warehouse_id=warehouse.id,
            zone_code=code or f"Z{n}",
            zone_name=f"Zone {code or n}",
        ))

    async def bin(self, zone: WarehouseZone) -> WarehouseBin:
        """Aisle, shelf and bin under ``zone``."""
        n = self._next()
        aisle = WarehouseAisle(zone_id=zone.id, aisle_code=f"A{n}")
        self.session.add(aisle)
        await self.session.flush()
        shelf = WarehouseShelf(aisle_id=aisle.id, shelf_code=f"S{n}")
        self.session.add(shelf)
        await self.session.flush()
        return await self._save(WarehouseBin(shelf_id=shelf.id, bin_code=f"B{n}"))

    async def zone_with_bin(self, warehouse: Warehouse, code: Optional[str] = None) -> Tuple[WarehouseZone, WarehouseBin]:
        zone = await self.zone(warehouse, code)
        return zone, await self.bin(zone)

    async def product(self, name: Optional[str] = None, cost_price: Optional[Decimal] = Decimal("10.00")) -> Product:
        n = self._next()
        return await self._save(Product(
            name=name or f"Product {n:03d}",
            sku=f"SKU-{n:04d}",
            cost_price=cost_price,
        ))

    async def inventory(
        self,
        warehouse: Warehouse,
        quantity: int,
        product: Optional[Product] = None,
        bin: Optional[WarehouseBin] = None,
        cost_price: Optional[Decimal] = Decimal("10.00"),
        created_at: Optional[datetime] = None,
    ) -> InventoryItem:
        product = product or await self.product(cost_price=cost_price)
        item = InventoryItem(
            product_id=product.id,
            warehouse_id=warehouse.id,
            bin_id=bin.id if bin else None,
            quantity=quantity,
            cost_price=cost_price,
        )
        if created_at:
            item.created_at = created_at
        return await self._save(item)

    async def audit(
        self,
        warehouse: Warehouse,
        created_by: User,
        reference_number: str,
        status: str = "PLANNED",
    ) -> Audit:
        return await self._save(Audit(
            reference_number=reference_number,
            warehouse_id=warehouse.id,
            status=status,
            start_date=datetime.now(timezone.utc),
            created_by_id=created_by.id,
        ))


@pytest.fixture
def seed(session: AsyncSession) -> Seeder:
    return Seeder(session)


# =========================================
# HTTP client (ASGI, get_db overridden)
# =========================================
@pytest_asyncio.fixture
async def client(async_session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _get_test_db():
        async with async_session_maker() as sess:
            try:
                yield sess
                await sess.commit()
            except Exception:
                await sess.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[uuid.UUID], Dict[str, str]]:
    def _headers(user_id: uuid.UUID) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers
