"""Save slot endpoints: list, save, load, delete, export, import."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from storyframe.saves import InvalidSaveError, QuotaExceededError, SaveManager, SaveNotFoundError
from storyframe.session import StorySession

from .deps import get_session

router = APIRouter()


def _check_slot(slot: int) -> None:
    if not SaveManager.valid_slot(slot):
        raise HTTPException(400, f"Invalid slot number: {slot}")


@router.get("/saves")
async def list_saves(session: StorySession = Depends(get_session)):
    """All slots, empty ones included, plus totals."""
    return {"slots": session.saves.list_slots(), "stats": session.saves.get_save_stats()}


@router.post("/saves/{slot}")
async def save_slot(slot: int, session: StorySession = Depends(get_session)):
    """Save the session into a slot."""
    _check_slot(slot)
    try:
        session.saves.save_to_slot(slot)
    except QuotaExceededError as e:
        raise HTTPException(507, str(e))
    return session.saves.get_save_data(slot).model_dump(by_alias=True)


@router.post("/saves/{slot}/load")
async def load_slot(slot: int, session: StorySession = Depends(get_session)):
    """Load a slot into the session."""
    _check_slot(slot)
    try:
        loaded = session.saves.load_from_slot(slot)
    except SaveNotFoundError as e:
        raise HTTPException(404, str(e))
    if not loaded:
        raise HTTPException(400, "Save could not be loaded")
    return session.view()


@router.delete("/saves/{slot}")
async def delete_slot(slot: int, session: StorySession = Depends(get_session)):
    """Delete a slot."""
    _check_slot(slot)
    if not session.saves.delete_slot(slot):
        raise HTTPException(404, "Slot is empty")
    return {"ok": True}


@router.get("/saves/{slot}/export")
async def export_slot(slot: int, session: StorySession = Depends(get_session)):
    """Download a slot as a JSON file."""
    _check_slot(slot)
    data = session.saves.export_from_slot(slot)
    if data is None:
        raise HTTPException(404, "No save data found in this slot to export")
    filename = session.saves.export_filename(slot)
    return Response(
        content=data,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/saves/{slot}/import")
async def import_slot(slot: int, request: Request, session: StorySession = Depends(get_session)):
    """Import an exported save file (raw JSON body) into a slot."""
    _check_slot(slot)
    blob = await request.body()
    try:
        record = session.saves.import_to_slot(slot, blob)
    except InvalidSaveError as e:
        raise HTTPException(400, str(e))
    except QuotaExceededError as e:
        raise HTTPException(507, str(e))
    return record.model_dump(by_alias=True)
