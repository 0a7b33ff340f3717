"""API Routes"""
from .campaign_assignment import router as campaign_assignment_router
from .cron import router as cron_router

__all__ = [
    "campaign_assignment_router",
    "cron_router"
]
