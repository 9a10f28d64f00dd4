"""Story turn endpoints: current screen, choices, user input, restart."""

from fastapi import APIRouter, Depends, HTTPException

from storyframe.session import StorySession

from .deps import get_session
from .models import InputBody

router = APIRouter()


@router.get("/story")
async def get_story(session: StorySession = Depends(get_session)):
    """Current screen: rendered blocks, choices, notifications and flags."""
    return session.view()


@router.get("/story/stats")
async def get_story_stats(session: StorySession = Depends(get_session)):
    """Turn counter, end state, special page count."""
    return session.get_stats()


@router.post("/story/choices/{index}")
async def select_choice(index: int, session: StorySession = Depends(get_session)):
    """Pick a choice by its position in the current choice list."""
    if not session.select_choice(index):
        raise HTTPException(400, f"Invalid choice index: {index}")
    return session.view()


@router.post("/story/input")
async def submit_input(body: InputBody, session: StorySession = Depends(get_session)):
    """Answer the pending user-input prompt."""
    prompt = session.pending_input()
    if prompt is None:
        raise HTTPException(409, "No input is pending")
    if prompt.variable_name != body.variable:
        raise HTTPException(409, f"Pending input is for {prompt.variable_name!r}")
    if not session.submit_input(body.variable, body.value):
        raise HTTPException(400, "Please enter a value")
    return session.view()


@router.post("/story/restart")
async def restart(session: StorySession = Depends(get_session)):
    """Restart the story from the beginning."""
    session.restart()
    return session.view()
