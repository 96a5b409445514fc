"""
API v1 Router
"""

from fastapi import APIRouter

from . import events
from .events import router_maintenance

router = APIRouter()

router.include_router(events.router, prefix="/events", tags=["Events"])
router.include_router(router_maintenance, tags=["Maintenance"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/events",
            "/events/recent",
            "/events/last",
            "/events/undo-last",
            "/events/export",
            "/cleanup",
        ],
    }
