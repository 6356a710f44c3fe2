"""FastAPI routers package."""

from .booking import router as booking_router
from .cron import router as cron_router
from .health import router as health_router
from .metrics import router as metrics_router
from .wallet import router as wallet_router

__all__ = [
    "booking_router",
    "cron_router",
    "health_router",
    "metrics_router",
    "wallet_router",
]
