"""API routers."""

from app.routers.campaigns import router as campaigns_router
from app.routers.jobs import router as jobs_router
from app.routers.subscriptions import router as subscriptions_router

__all__ = [
    "campaigns_router",
    "jobs_router",
    "subscriptions_router",
]
