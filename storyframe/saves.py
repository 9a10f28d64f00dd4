"""Save slots: persisted snapshots of a session.

Slots are numbered 0..MAX_SAVE_SLOTS. Slot 0 is the autosave. Each slot is one
JSON file in the saves dir:

    <data_dir>/saves/save-slot-<n>.json

    {
      "gameState": "<engine state blob>",
      "displayState": {"history": [{"item": {...}, "timestamp": ...}, ...]},
      "currentPage": "credits" | null,
      "saveName": "Lighthouse Stairs",
      "description": "You climb the narrow stairs.",
      "timestamp": 1700000000000,
      "version": "1.0",
      "isAutosave": false,
      "stateBeforeUserInput": null
    }

The slot number lives in the file name, not the payload. Exported files have
the same shape, which is what imports are validated against.

Writes go to a temp file that is renamed into place, so a failed write never
leaves a half-written slot. When the store reports a quota error the oldest
manual save (never the autosave, never the slot being written) is evicted
and the write is retried once. Autosave failures are logged, not raised.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from storyframe.models import SaveRecord
from storyframe.text import first_sentence, humanize_name

if TYPE_CHECKING:
    from storyframe.session import StorySession

logger = logging.getLogger(__name__)

AUTOSAVE_SLOT = 0
MAX_SAVE_SLOTS = 5
MAX_IMPORT_SIZE_BYTES = 10 * 1024 * 1024
SAVE_VERSION = "1.0"


class SaveError(RuntimeError):
    """Base class for save slot failures."""


class SaveNotFoundError(SaveError):
    pass


class InvalidSaveError(SaveError):
    """Raised when an imported or stored record cannot be used."""


class StorageQuotaError(SaveError):
    """Raised by the store when a write would exceed its quota."""


class QuotaExceededError(SaveError):
    """Raised when a save still does not fit after evicting the oldest slot."""

    def __init__(self) -> None:
        super().__init__("Storage quota exceeded - please delete some saves manually")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SlotStorage:
    """One JSON file per slot, with an optional total size quota in bytes."""

    def __init__(self, root: Path, quota_bytes: int | None = None) -> None:
        self.root = Path(root)
        self.quota_bytes = quota_bytes
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, slot: int) -> Path:
        return self.root / f"save-slot-{slot}.json"

    def read(self, slot: int) -> str | None:
        path = self.path_for(slot)
        if not path.is_file():
            return None
        return path.read_text()

    def write(self, slot: int, data: str) -> None:
        path = self.path_for(slot)
        if self.quota_bytes is not None:
            used = sum(p.stat().st_size for p in self.root.glob("save-slot-*.json") if p != path)
            if used + len(data.encode()) > self.quota_bytes:
                raise StorageQuotaError(f"Writing slot {slot} would exceed {self.quota_bytes} bytes")
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(data)
        os.replace(tmp, path)

    def remove(self, slot: int) -> bool:
        path = self.path_for(slot)
        if not path.is_file():
            return False
        path.unlink()
        return True


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class SaveManager:
    def __init__(self, storage: SlotStorage, session: StorySession) -> None:
        self.storage = storage
        self.session = session

    @staticmethod
    def valid_slot(slot: Any) -> bool:
        return isinstance(slot, int) and not isinstance(slot, bool) and 0 <= slot <= MAX_SAVE_SLOTS

    # -- reading ------------------------------------------------------------

    def get_save_data(self, slot: int) -> SaveRecord | None:
        """Stored record for slot. Missing or corrupt slots give None."""
        try:
            raw = self.storage.read(slot)
        except OSError:
            logger.exception("Failed to read save slot %d", slot)
            return None
        if raw is None:
            return None
        try:
            return SaveRecord.model_validate_json(raw)
        except (ValidationError, ValueError):
            logger.error("Save slot %d is corrupted", slot)
            return None

    def list_slots(self) -> list[dict[str, Any]]:
        slots = []
        for slot in range(MAX_SAVE_SLOTS + 1):
            record = self.get_save_data(slot)
            slots.append({
                "slot": slot,
                "is_autosave": slot == AUTOSAVE_SLOT,
                "empty": record is None,
                "save_name": record.save_name if record else None,
                "description": record.description if record else None,
                "timestamp": record.timestamp if record else None,
            })
        return slots

    def has_saves(self) -> bool:
        return any(self.get_save_data(slot) is not None for slot in range(MAX_SAVE_SLOTS + 1))

    def get_save_stats(self) -> dict[str, Any]:
        records = [r for r in (self.get_save_data(s) for s in range(MAX_SAVE_SLOTS + 1)) if r]
        oldest = min(records, key=lambda r: r.timestamp, default=None)
        newest = max(records, key=lambda r: r.timestamp, default=None)
        return {
            "total_saves": len(records),
            "has_autosave": self.get_save_data(AUTOSAVE_SLOT) is not None,
            "oldest_save": oldest.model_dump(by_alias=True) if oldest else None,
            "newest_save": newest.model_dump(by_alias=True) if newest else None,
        }

    # -- writing --------------------------------------------------------------

    def save_to_slot(self, slot: int) -> bool:
        if not self.valid_slot(slot):
            logger.error("Invalid slot number: %r", slot)
            return False
        record = self.build_save_data(slot)
        self.write_save_data(slot, record)
        if slot != AUTOSAVE_SLOT:
            self.session.notify(f"Game saved to Slot {slot}!")
        logger.info("Saved slot %d (%s)", slot, record.save_name)
        return True

    def autosave(self) -> bool:
        if self.session.pages.is_viewing():
            return False
        if not self.session.settings.get_setting("autoSave"):
            return False
        try:
            return self.save_to_slot(AUTOSAVE_SLOT)
        except SaveError:
            logger.exception("Autosave failed")
            return False

    def build_save_data(self, slot: int) -> SaveRecord:
        session = self.session
        page_session = session.pages.session if session.pages.is_viewing() else None
        if page_session is not None:
            game_state = page_session.saved_state
            display_state = page_session.saved_display
        else:
            game_state = session.engine.serialize_state()
            display_state = session.display.get_state()

        return SaveRecord(
            game_state=game_state,
            display_state=display_state,
            current_page=session.pages.current_page,
            save_name=self.generate_save_name(slot),
            description=self.generate_description(),
            timestamp=int(time.time() * 1000),
            version=SAVE_VERSION,
            is_autosave=slot == AUTOSAVE_SLOT,
            state_before_user_input=session.state_before_user_input,
        )

    def write_save_data(self, slot: int, record: SaveRecord) -> None:
        data = record.model_dump_json(by_alias=True)
        try:
            self.storage.write(slot, data)
        except StorageQuotaError:
            self.cleanup(exclude=slot)
            try:
                self.storage.write(slot, data)
            except StorageQuotaError as e:
                raise QuotaExceededError() from e

    def cleanup(self, exclude: int | None = None) -> int | None:
        """Evict the oldest manual save other than exclude. Returns the evicted slot."""
        candidates = []
        for slot in range(1, MAX_SAVE_SLOTS + 1):
            if slot == exclude:
                continue
            record = self.get_save_data(slot)
            if record is not None and record.timestamp:
                candidates.append((record.timestamp, slot))
        if not candidates:
            return None
        _, oldest = min(candidates)
        self.storage.remove(oldest)
        logger.info("Removed oldest save from slot %d to free storage", oldest)
        return oldest

    def delete_slot(self, slot: int) -> bool:
        if not self.valid_slot(slot):
            logger.error("Invalid slot number: %r", slot)
            return False
        try:
            removed = self.storage.remove(slot)
        except OSError:
            logger.exception("Failed to delete save slot %d", slot)
            return False
        if removed:
            self.session.notify("Autosave cleared." if slot == AUTOSAVE_SLOT else f"Slot {slot} deleted.")
        return removed

    # -- loading ----------------------------------------------------------------

    def load_from_slot(self, slot: int) -> bool:
        """Load slot into the session. Raises SaveNotFoundError for an empty slot."""
        record = self.get_save_data(slot)
        if record is None:
            where = "autosave" if slot == AUTOSAVE_SLOT else "this slot"
            raise SaveNotFoundError(f"No save data found in {where}")
        if not record.game_state:
            logger.error("Save data is corrupted - missing game state")
            return False
        if not self.session.load_state(record):
            return False
        self.session.notify(f"Game loaded from {slot_label(slot)}!")
        return True

    # -- export / import ----------------------------------------------------------

    def export_from_slot(self, slot: int) -> str | None:
        record = self.get_save_data(slot)
        if record is None:
            logger.error("No save data found in slot %d to export", slot)
            return None
        return json.dumps(record.model_dump(by_alias=True), indent=2)

    def export_filename(self, slot: int) -> str | None:
        record = self.get_save_data(slot)
        if record is None:
            return None
        stamp = datetime.fromtimestamp(record.timestamp / 1000, tz=timezone.utc)
        name = "autosave" if slot == AUTOSAVE_SLOT else f"slot{slot}"
        return f"ink-story-{name}-{stamp.strftime('%Y-%m-%dT%H-%M-%S')}.json"

    def import_to_slot(self, slot: int, blob: str | bytes) -> SaveRecord:
        """Validate an exported save and write it to slot.

        Raises InvalidSaveError for oversized, malformed or unloadable files.
        """
        if not self.valid_slot(slot):
            raise InvalidSaveError(f"Invalid slot number: {slot!r}")
        size = len(blob.encode() if isinstance(blob, str) else blob)
        if size > MAX_IMPORT_SIZE_BYTES:
            raise InvalidSaveError(f"Import file too large (>{MAX_IMPORT_SIZE_BYTES // (1024 * 1024)}MB)")

        try:
            data = json.loads(blob)
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidSaveError(f"Import file is not valid JSON: {e}") from e
        if not isinstance(data, dict) or not data.get("gameState") or not data.get("version"):
            raise InvalidSaveError("Invalid save file format")
        try:
            record = SaveRecord.model_validate(data)
        except ValidationError as e:
            raise InvalidSaveError(f"Invalid save file format: {e}") from e

        try:
            self.session.engine.fork(record.game_state)
        except Exception as e:
            raise InvalidSaveError(f"Save cannot be loaded by this story: {e}") from e

        self.write_save_data(slot, record)
        self.session.notify(f"Save imported to {slot_label(slot)}!")
        return record

    # -- naming -----------------------------------------------------------------

    def generate_save_name(self, slot: int) -> str:
        engine = self.session.engine
        path = engine.current_path
        if path:
            name = humanize_name(path.split(".")[-1])
        else:
            name = f"Turn {engine.turn_index + 1}"
        if slot == AUTOSAVE_SLOT:
            name += " (Auto)"
        return name

    def generate_description(self) -> str:
        return first_sentence(self.session.engine.current_text)


def slot_label(slot: int) -> str:
    return "Autosave" if slot == AUTOSAVE_SLOT else f"Slot {slot}"
