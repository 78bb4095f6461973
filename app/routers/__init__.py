from app.routers.health import router as health_router
from app.routers.medicines import router as medicines_router
from app.routers.stock import router as stock_router

__all__ = [
    "health_router",
    "medicines_router",
    "stock_router",
]
