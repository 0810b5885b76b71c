"""API routers, mounted under /api by app.py (the live feed router is mounted at the root)."""

from fastapi import APIRouter

from .analytics import router as analytics_router
from .events import router as events_router
from .funnels import router as funnels_router
from .live import router as live_router
from .saved_items import router as saved_items_router
from .workspaces import router as workspaces_router

router = APIRouter()
router.include_router(events_router)
router.include_router(analytics_router)
router.include_router(funnels_router)
router.include_router(saved_items_router)
router.include_router(workspaces_router)

__all__ = ['live_router', 'router']
