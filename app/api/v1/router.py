from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Inventory Audits
    audits,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Inventory Audits ====================
api_router.include_router(
    audits.router,
    prefix="/audits",
    tags=["Inventory Audits"]
)
