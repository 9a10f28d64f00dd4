"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, story (screen, choices, input, restart),
special pages, save slots. All of them act on the one StorySession held in
app.state.session.
"""

from fastapi import APIRouter

from .pages import router as pages_router
from .saves import router as saves_router
from .settings import router as settings_router
from .story import router as story_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(story_router)
router.include_router(pages_router)
router.include_router(saves_router)
