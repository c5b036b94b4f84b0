from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.sales import router as sales_router
from backend.app.api.v1.endpoints.purchases import router as purchases_router
from backend.app.api.v1.endpoints.stock import router as stock_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(sales_router, tags=["sales"])
router.include_router(purchases_router, tags=["purchases"])
router.include_router(stock_router, tags=["stock"])
