"""Special page endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from storyframe.session import StorySession

from .deps import get_session

router = APIRouter()


@router.get("/pages")
async def list_pages(session: StorySession = Depends(get_session)):
    """Special pages in menu order, when the story defines one."""
    pages = [page.model_dump() for page in session.pages.available_pages()]
    return {"pages": pages, "menu": session.page_menu, "current_page": session.pages.current_page}


@router.post("/pages/return")
async def return_to_story(session: StorySession = Depends(get_session)):
    """Leave the special page and restore the story screen."""
    if not session.return_to_story():
        raise HTTPException(409, "Not viewing a special page")
    return session.view()


@router.get("/pages/{page_id}")
async def get_page(page_id: str, session: StorySession = Depends(get_session)):
    """Display name and plain text of a special page."""
    info = session.pages.page_info(page_id)
    if info is None:
        raise HTTPException(404, "Page not found")
    return info


@router.post("/pages/{page_id}")
async def show_page(page_id: str, session: StorySession = Depends(get_session)):
    """Open a special page."""
    if not session.show_page(page_id):
        raise HTTPException(404, "Page not found")
    return session.view()
