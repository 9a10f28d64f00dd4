"""Access to the story session held by the app."""

from fastapi import HTTPException, Request

from storyframe.session import StorySession


def get_session(request: Request) -> StorySession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(503, "No story loaded")
    return session
