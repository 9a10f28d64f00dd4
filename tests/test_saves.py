"""Tests for save slots: storage, eviction, load, export and import."""

import json
import logging
import re
from unittest.mock import patch

import pytest

from storyframe.models import SaveRecord
from storyframe.saves import (
    MAX_IMPORT_SIZE_BYTES,
    InvalidSaveError,
    QuotaExceededError,
    SaveManager,
    SaveNotFoundError,
    SlotStorage,
    StorageQuotaError,
    slot_label,
)

SMALL_STORY = {
    "knots": {
        "start": [
            {"text": "Once upon a time. Then more."},
            {"choices": [{"text": "Go on", "divert": "next"}]},
        ],
        "next": [
            {"text": "The next part."},
            {"choices": [{"text": "Finish", "divert": "END"}]},
        ],
    },
}


@pytest.fixture
def session(make_session, demo_story):
    session = make_session(demo_story)
    session.submit_input("name", "Ann")
    return session


def _messages(session) -> list[str]:
    return [n["message"] for n in session.surface.notifications]


def _put(storage: SlotStorage, slot: int, timestamp: int, name: str = "") -> str:
    data = SaveRecord(game_state="{}", timestamp=timestamp, save_name=name).model_dump_json(by_alias=True)
    storage.write(slot, data)
    return data


class TestSlotStorage:
    def test_write_read_remove(self, data_dir) -> None:
        storage = SlotStorage(data_dir / "saves")
        storage.write(2, '{"a": 1}')
        assert storage.path_for(2).name == "save-slot-2.json"
        assert storage.read(2) == '{"a": 1}'
        assert storage.remove(2) is True
        assert storage.remove(2) is False
        assert storage.read(2) is None

    def test_quota(self, data_dir) -> None:
        storage = SlotStorage(data_dir / "saves", quota_bytes=100)
        storage.write(1, "x" * 60)
        with pytest.raises(StorageQuotaError):
            storage.write(2, "y" * 60)
        assert storage.read(2) is None
        assert list(storage.root.glob("*.tmp")) == []
        # overwriting a slot does not count its old size
        storage.write(1, "z" * 90)
        assert storage.read(1) == "z" * 90


class TestSaveToSlot:
    def test_save_writes_record(self, session) -> None:
        assert session.saves.save_to_slot(1) is True
        record = session.saves.get_save_data(1)
        assert record.game_state == session.engine.serialize_state()
        assert record.display_state == session.display.get_state()
        assert record.save_name == "Start"
        assert record.is_autosave is False
        assert record.version == "1.0"
        assert record.current_page is None
        assert "Game saved to Slot 1!" in _messages(session)

    def test_file_uses_camel_case(self, session) -> None:
        session.saves.save_to_slot(1)
        data = json.loads(session.saves.storage.read(1))
        assert {"gameState", "displayState", "currentPage", "saveName", "isAutosave"} <= set(data)

    @pytest.mark.parametrize("slot", [-1, 6, "1", True, None])
    def test_invalid_slot(self, session, slot) -> None:
        assert session.saves.save_to_slot(slot) is False

    def test_autosave_is_silent(self, session) -> None:
        assert session.saves.autosave() is True
        record = session.saves.get_save_data(0)
        assert record.is_autosave is True
        assert record.save_name == "Start (Auto)"
        assert not any("saved" in m for m in _messages(session))

    def test_choice_autosaves(self, session) -> None:
        session.select_choice(0)
        assert session.saves.get_save_data(0).save_name == "Stairs (Auto)"

    def test_autosave_disabled(self, session) -> None:
        session.settings.set_setting("autoSave", False)
        assert session.saves.autosave() is False
        session.select_choice(0)
        assert session.saves.get_save_data(0) is None

    def test_no_autosave_on_a_page(self, session) -> None:
        session.show_page("credits")
        assert session.saves.autosave() is False

    def test_saving_on_a_page_stores_the_story(self, session) -> None:
        session.show_page("credits")
        session.saves.save_to_slot(2)
        record = session.saves.get_save_data(2)
        assert record.current_page == "credits"
        assert record.game_state == session.pages.session.saved_state
        assert record.display_state == session.pages.session.saved_display

    def test_description_and_turn_name(self, make_session) -> None:
        session = make_session(SMALL_STORY)
        session.saves.save_to_slot(1)
        assert session.saves.get_save_data(1).description == "Once upon a time."
        session.select_choice(0)
        session.select_choice(0)
        assert session.engine.current_path is None
        assert session.saves.generate_save_name(3) == "Turn 3"


class TestQuota:
    def test_cleanup_evicts_oldest_manual_save(self, session) -> None:
        storage = session.saves.storage
        _put(storage, 0, 100)
        _put(storage, 1, 500)
        _put(storage, 2, 900)
        assert session.saves.cleanup() == 1
        assert storage.read(1) is None
        assert storage.read(0) is not None
        assert storage.read(2) is not None

    def test_cleanup_with_only_autosave(self, session) -> None:
        _put(session.saves.storage, 0, 100)
        assert session.saves.cleanup() is None

    def test_retry_after_eviction(self, session) -> None:
        storage = session.saves.storage
        _put(storage, 1, 500)
        real_write = storage.write
        calls = []

        def flaky_write(slot, data):
            calls.append(slot)
            if len(calls) == 1:
                raise StorageQuotaError("full")
            real_write(slot, data)

        with patch.object(storage, "write", side_effect=flaky_write):
            assert session.saves.save_to_slot(3) is True
        assert calls == [3, 3]
        assert storage.read(1) is None
        assert session.saves.get_save_data(3) is not None

    def test_exhausted_quota_keeps_target_slot(self, session) -> None:
        storage = session.saves.storage
        _put(storage, 1, 500)
        before = _put(storage, 3, 900, name="Keep me")

        with patch.object(storage, "write", side_effect=StorageQuotaError("full")):
            with pytest.raises(QuotaExceededError, match="please delete some saves manually"):
                session.saves.save_to_slot(3)
        assert storage.read(3) == before
        assert storage.read(1) is None

    def test_cleanup_skips_excluded_slot(self, session) -> None:
        storage = session.saves.storage
        _put(storage, 1, 500)
        _put(storage, 2, 900)
        assert session.saves.cleanup(exclude=1) == 2
        assert storage.read(1) is not None

    def test_overwriting_oldest_slot_under_quota_keeps_it(self, session) -> None:
        session.saves.save_to_slot(1)
        before = session.saves.storage.read(1)
        session.saves.storage.quota_bytes = len(before.encode()) + 10
        session.select_choice(0)

        with pytest.raises(QuotaExceededError):
            session.saves.save_to_slot(1)
        assert session.saves.storage.read(1) == before

    def test_autosave_failure_is_logged(self, session, caplog) -> None:
        with patch.object(session.saves.storage, "write", side_effect=StorageQuotaError("full")):
            with caplog.at_level(logging.ERROR):
                assert session.saves.autosave() is False
        assert "Autosave failed" in caplog.text

    def test_choice_survives_failed_autosave(self, session) -> None:
        with patch.object(session.saves.storage, "write", side_effect=StorageQuotaError("full")):
            assert session.select_choice(0) is True
        assert session.engine.current_path == "stairs"
        assert session.saves.get_save_data(0) is None

    def test_real_quota_leaves_no_partial_file(self, make_session, demo_story) -> None:
        session = make_session(demo_story, quota_bytes=50)
        with pytest.raises(QuotaExceededError):
            session.saves.save_to_slot(1)
        assert session.saves.storage.read(1) is None
        assert list(session.saves.storage.root.glob("*.tmp")) == []


class TestLoad:
    def test_load_restores_story_and_screen(self, session) -> None:
        session.saves.save_to_slot(1)
        blocks = list(session.surface.blocks)
        choices = list(session.surface.choices)

        session.select_choice(0)
        assert session.engine.current_path == "stairs"
        assert session.saves.load_from_slot(1) is True
        assert session.engine.current_path == "start"
        assert session.surface.blocks == blocks
        assert session.surface.choices == choices
        assert "Game loaded from Slot 1!" in _messages(session)

    def test_load_autosave_message(self, session) -> None:
        session.saves.autosave()
        assert session.saves.load_from_slot(0) is True
        assert "Game loaded from Autosave!" in _messages(session)

    def test_load_missing_slot(self, session) -> None:
        with pytest.raises(SaveNotFoundError, match="No save data found in this slot"):
            session.saves.load_from_slot(4)
        with pytest.raises(SaveNotFoundError, match="autosave"):
            session.saves.load_from_slot(0)

    def test_load_with_pending_input(self, make_session, demo_story) -> None:
        session = make_session(demo_story)
        session.saves.save_to_slot(1)
        session.submit_input("name", "Ann")
        session.select_choice(0)

        assert session.saves.load_from_slot(1) is True
        assert session.pending_input().variable_name == "name"
        assert session.surface.choices == []
        assert session.submit_input("name", "Bo") is True
        texts = [b.get("text") for b in session.surface.blocks]
        assert '"Welcome, Bo. The lamp has gone out."' in texts

    def test_load_on_page_reopens_it(self, session) -> None:
        session.show_page("stats")
        session.saves.save_to_slot(2)
        session.return_to_story()
        session.select_choice(0)

        assert session.saves.load_from_slot(2) is True
        assert session.pages.current_page == "stats"
        session.return_to_story()
        assert session.engine.current_path == "start"

    def test_unloadable_state_leaves_session_alone(self, session) -> None:
        before = session.engine.serialize_state()
        session.saves.storage.write(1, SaveRecord(game_state="garbage").model_dump_json(by_alias=True))
        assert session.saves.load_from_slot(1) is False
        assert session.engine.serialize_state() == before

    def test_corrupt_file(self, session, caplog) -> None:
        session.saves.storage.write(2, "{broken")
        with caplog.at_level(logging.ERROR):
            assert session.saves.get_save_data(2) is None
        assert "corrupted" in caplog.text
        assert session.saves.list_slots()[2]["empty"] is True


class TestExportImport:
    def test_export(self, session) -> None:
        session.saves.save_to_slot(1)
        exported = json.loads(session.saves.export_from_slot(1))
        assert exported["gameState"] == session.engine.serialize_state()
        assert exported["version"] == "1.0"

    def test_export_missing(self, session) -> None:
        assert session.saves.export_from_slot(3) is None
        assert session.saves.export_filename(3) is None

    def test_export_filename(self, session) -> None:
        session.saves.save_to_slot(1)
        session.saves.autosave()
        assert re.fullmatch(r"ink-story-slot1-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}\.json", session.saves.export_filename(1))
        assert session.saves.export_filename(0).startswith("ink-story-autosave-")

    def test_import(self, session) -> None:
        session.saves.save_to_slot(1)
        blob = session.saves.export_from_slot(1)
        record = session.saves.import_to_slot(4, blob)
        assert session.saves.get_save_data(4) == record
        assert record == session.saves.get_save_data(1)
        assert "Save imported to Slot 4!" in _messages(session)

    def test_import_bytes(self, session) -> None:
        session.saves.save_to_slot(1)
        blob = session.saves.export_from_slot(1).encode()
        assert session.saves.import_to_slot(0, blob).game_state == session.engine.serialize_state()

    @pytest.mark.parametrize("blob", [
        "not json",
        "[]",
        '{"version": "1.0"}',
        '{"gameState": "x"}',
        '{"gameState": "x", "version": "1.0", "timestamp": "soon"}',
        '{"gameState": "garbage", "version": "1.0"}',
    ])
    def test_import_rejects(self, session, blob) -> None:
        with pytest.raises(InvalidSaveError):
            session.saves.import_to_slot(2, blob)
        assert session.saves.get_save_data(2) is None

    def test_import_too_large(self, session) -> None:
        with pytest.raises(InvalidSaveError, match="too large"):
            session.saves.import_to_slot(2, "x" * (MAX_IMPORT_SIZE_BYTES + 1))

    def test_import_bad_slot(self, session) -> None:
        with pytest.raises(InvalidSaveError):
            session.saves.import_to_slot(9, "{}")


class TestSlots:
    def test_delete(self, session) -> None:
        session.saves.save_to_slot(1)
        session.saves.autosave()
        assert session.saves.delete_slot(1) is True
        assert session.saves.delete_slot(1) is False
        assert session.saves.delete_slot(0) is True
        assert session.saves.delete_slot(8) is False
        assert "Slot 1 deleted." in _messages(session)
        assert "Autosave cleared." in _messages(session)

    def test_list_and_stats(self, session) -> None:
        storage = session.saves.storage
        assert session.saves.has_saves() is False
        _put(storage, 1, 500, name="Old")
        _put(storage, 2, 900, name="New")

        slots = session.saves.list_slots()
        assert [s["slot"] for s in slots] == [0, 1, 2, 3, 4, 5]
        assert slots[0]["is_autosave"] is True
        assert slots[1]["save_name"] == "Old"

        stats = session.saves.get_save_stats()
        assert stats["total_saves"] == 2
        assert stats["has_autosave"] is False
        assert stats["oldest_save"]["saveName"] == "Old"
        assert stats["newest_save"]["saveName"] == "New"
        assert session.saves.has_saves() is True

    def test_valid_slot(self) -> None:
        assert SaveManager.valid_slot(0) and SaveManager.valid_slot(5)
        assert not SaveManager.valid_slot(6)
        assert not SaveManager.valid_slot(False)

    def test_slot_label(self) -> None:
        assert slot_label(0) == "Autosave"
        assert slot_label(3) == "Slot 3"
