"""Health check and reader settings endpoints."""

from fastapi import APIRouter, Depends

from storyframe.session import StorySession

from .deps import get_session

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(session: StorySession = Depends(get_session)):
    """Reader settings (defaults merged with stored values)."""
    return session.settings.get_all()


@router.patch("/settings")
async def update_settings(body: dict, session: StorySession = Depends(get_session)):
    """Update reader settings (partial merge, unknown keys ignored)."""
    return session.update_settings(body)
