"""FastAPI API endpoints under /api.

Endpoint groups: health/settings, world templates, sessions (including the
per-turn SSE stream at POST /sessions/{id}/actions) and missions nested
under /api/sessions/{id}/missions.
"""

from fastapi import APIRouter

from .missions import router as missions_router
from .sessions import router as sessions_router
from .settings import router as settings_router
from .templates import router as templates_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(templates_router)
router.include_router(sessions_router)
router.include_router(missions_router)
