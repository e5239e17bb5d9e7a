"""FastAPI routers package."""

from .booking import router as booking_router
from .health import router as health_router
from .hold import router as hold_router
from .inventory import router as inventory_router
from .metrics import router as metrics_router

__all__ = [
    "booking_router",
    "health_router",
    "hold_router",
    "inventory_router",
    "metrics_router",
]
