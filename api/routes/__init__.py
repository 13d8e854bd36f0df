"""API route modules."""

from .cron_routes import router as cron_router
from .habits_routes import router as habits_router
from .health_routes import router as health_router

__all__ = [
    "cron_router",
    "habits_router",
    "health_router",
]
