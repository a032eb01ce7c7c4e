"""
Unit tests for engine/slot_store.py.

Tests:
  - load() hydrates slots from item.data and leaves saves armed.
  - A load that finishes after another item was opened is discarded.
  - A burst of updates produces exactly one PATCH with the final state.
  - Unchanged state is never re-sent.
  - Sibling fields of item.data travel with the slots.
  - A failed PATCH keeps local state, marks the store dirty and is resent.
  - Media selections derive their selectedSource.
  - Switching items, or reloading the same one, flushes the pending save.
  - A dirty item is retried before switching; if that fails the loss is reported.
"""
from __future__ import annotations

import pytest

from scenesync.client.http import FetchError
from scenesync.engine.slot_store import SaveError, StaleResponse, media_source_name

from _fixture_builders import make_slot


def _seed(item_api, item_id=7, slots=None, **data):
    item_api.items[item_id] = {
        "id": item_id,
        "title": "Interview",
        "data": {"scene": "Two Up", **data, "slots": [s.to_wire() for s in (slots or [])]},
    }


class TestLoad:

    def test_load_hydrates_slots(self, store, item_api):
        _seed(item_api, slots=[make_slot(1, "CAM1"), make_slot(2)])
        slots = store.load(7)

        assert [s.selected_source for s in slots] == ["CAM1", ""]
        assert store.loaded is True
        assert store.hydrating is False
        assert store.data["scene"] == "Two Up"
        assert store.is_active(7)
        assert not store.is_active(8)

    def test_load_does_not_save(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1, "CAM1")])
        store.load(7)
        timers.fire_all()
        assert item_api.patches == []

    def test_failed_load_leaves_store_unhydrated(self, store, item_api, timers):
        item_api.get_fails = True
        with pytest.raises(FetchError):
            store.load(7)
        assert store.loaded is False
        assert store.hydrating is False

        store.replace([make_slot(1, "CAM1")])
        timers.fire_all()
        assert item_api.patches == []

    def test_stale_load_is_discarded(self, store, item_api):
        _seed(item_api, item_id=1, slots=[make_slot(1, "OLD")])
        _seed(item_api, item_id=2, slots=[make_slot(1, "NEW")])
        # While item 1 is in flight, the user opens item 2.
        item_api.on_get = lambda _id: store.load(2)

        with pytest.raises(StaleResponse):
            store.load(1)

        assert store.item_id == 2
        assert [s.selected_source for s in store.slots] == ["NEW"]

    def test_reset_makes_in_flight_load_stale(self, store, item_api):
        _seed(item_api, slots=[make_slot(1, "CAM1")])
        item_api.on_get = lambda _id: store.reset()
        with pytest.raises(StaleResponse):
            store.load(7)
        assert store.item_id is None
        assert store.slots == []

    def test_non_dict_slot_entries_are_ignored(self, store, item_api):
        item_api.items[7] = {"id": 7, "data": {"slots": [make_slot(1).to_wire(), "junk", None]}}
        assert len(store.load(7)) == 1


class TestDebouncedSave:

    def test_burst_of_updates_sends_one_patch(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1), make_slot(2)])
        store.load(7)

        store.update(0, "CAM1")
        store.update(0, "CAM2")
        store.update(1, "CAM3")
        assert store.save_pending
        assert len(timers.live) == 1

        timers.fire_all()

        assert len(item_api.patches) == 1
        item_id, body = item_api.patches[0]
        assert item_id == 7
        assert [s["selectedSource"] for s in body["slots"]] == ["CAM2", "CAM3"]
        assert not store.save_pending

    def test_timer_uses_configured_delay(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        store.update(0, "CAM1")
        assert timers.timers[-1].delay == pytest.approx(0.3)

    def test_update_is_applied_in_memory_immediately(self, store, item_api):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        store.update(0, "CAM1")
        assert store.slots[0].selected_source == "CAM1"
        assert item_api.patches == []

    def test_unchanged_state_is_not_sent(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1, "CAM1")])
        store.load(7)
        store.update(0, "CAM2")
        store.update(0, "CAM1")
        timers.fire_all()
        assert item_api.patches == []

    def test_sibling_data_fields_are_kept(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1)], notes="do not lose", duration=30)
        store.load(7)
        store.update(0, "CAM1")
        timers.fire_all()

        _, body = item_api.patches[0]
        assert body["notes"] == "do not lose"
        assert body["duration"] == 30
        assert body["scene"] == "Two Up"

    def test_update_data_changes_fingerprint(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        store.update_data(scene="Three Up")
        timers.fire_all()
        assert item_api.patches[0][1]["scene"] == "Three Up"

    def test_partial_update_merges_source_props(self, store, item_api):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        updated = store.update(0, {"sourceProps": {"fit": "cover"}, "generic_type": "Existing Source"})
        assert updated.source_props.fit == "cover"
        assert updated.source_props.base.w == 1920
        assert updated.generic_type == "Existing Source"

    def test_update_out_of_range(self, store, item_api):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        with pytest.raises(IndexError):
            store.update(3, "CAM1")

    def test_flush_sends_immediately(self, store, item_api):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        store.update(0, "CAM1")
        store.flush()
        assert len(item_api.patches) == 1

    def test_switching_items_flushes_pending_save(self, store, item_api):
        _seed(item_api, item_id=1, slots=[make_slot(1)])
        _seed(item_api, item_id=2, slots=[make_slot(1)])
        store.load(1)
        store.update(0, "CAM1")
        store.load(2)

        assert [pid for pid, _ in item_api.patches] == [1]
        assert item_api.patches[0][1]["slots"][0]["selectedSource"] == "CAM1"

    def test_reloading_same_item_sends_pending_edit(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        store.update(0, "CAM1")

        store.load(7)
        timers.fire_all()

        assert len(item_api.patches) == 1
        assert item_api.patches[0][1]["slots"][0]["selectedSource"] == "CAM1"
        assert store.slots[0].selected_source == "CAM1"


class TestFailedSave:

    def test_failure_keeps_state_and_marks_dirty(self, store, item_api, timers, notifications):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        item_api.patch_fails = True

        store.update(0, "CAM1")
        timers.fire_all()

        assert store.slots[0].selected_source == "CAM1"
        assert store.dirty is True
        assert isinstance(store.last_error, SaveError)
        assert notifications.levels() == ["warning"]

    def test_retry_save_resends(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        item_api.patch_fails = True
        store.update(0, "CAM1")
        timers.fire_all()

        item_api.patch_fails = False
        store.retry_save()

        assert len(item_api.patches) == 1
        assert store.dirty is False
        assert store.last_error is None

    def test_dirty_forces_resend_of_reverted_state(self, store, item_api, timers):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        item_api.patch_fails = True
        store.update(0, "CAM1")
        timers.fire_all()

        # Reverting to the persisted value is still sent: the backend state is unknown.
        item_api.patch_fails = False
        store.update(0, "")
        timers.fire_all()
        assert len(item_api.patches) == 1

    def test_retry_save_is_noop_when_clean(self, store, item_api):
        _seed(item_api, slots=[make_slot(1)])
        store.load(7)
        store.retry_save()
        assert item_api.patches == []

    def test_switching_items_resends_dirty_item(self, store, item_api, timers):
        _seed(item_api, item_id=1, slots=[make_slot(1)])
        _seed(item_api, item_id=2, slots=[make_slot(1)])
        store.load(1)
        item_api.patch_fails = True
        store.update(0, "CAM1")
        timers.fire_all()

        item_api.patch_fails = False
        store.load(2)

        assert [pid for pid, _ in item_api.patches] == [1]
        assert item_api.patches[0][1]["slots"][0]["selectedSource"] == "CAM1"
        assert store.item_id == 2
        assert store.dirty is False

    def test_switching_items_reports_discarded_changes(self, store, item_api, timers, notifications):
        _seed(item_api, item_id=1, slots=[make_slot(1)])
        _seed(item_api, item_id=2, slots=[make_slot(1)])
        store.load(1)
        item_api.patch_fails = True
        store.update(0, "CAM1")
        timers.fire_all()

        store.load(2)

        assert item_api.patches == []
        assert notifications[-1] == ("warning", "Unsaved changes for item 1 were discarded")
        assert store.item_id == 2
        assert store.dirty is False


class TestMedia:

    @pytest.mark.parametrize("payload, expected", [
        ({"media": {"id": 42}}, "MEDIA:42"),
        ({"youtube": {"videoId": "dQw4w9WgXcQ"}}, "YOUTUBE:dQw4w9WgXcQ"),
        ({"pdfImage": {"id": 9}}, "PDFIMAGE:9"),
        ({}, ""),
        (None, ""),
    ])
    def test_media_source_name(self, payload, expected):
        assert media_source_name(payload) == expected

    def test_update_media_sets_source_and_payload(self, store, item_api):
        _seed(item_api, slots=[make_slot(1, "CAM1")])
        store.load(7)
        slot = store.update_media(0, {"media": {"id": 42, "name": "clip.mp4"}})
        assert slot.selected_source == "MEDIA:42"
        assert slot.media_data == {"media": {"id": 42, "name": "clip.mp4"}}

    def test_clearing_media_clears_source(self, store, item_api):
        _seed(item_api, slots=[make_slot(1, "MEDIA:42", media_data={"media": {"id": 42}})])
        store.load(7)
        slot = store.update_media(0, None)
        assert slot.selected_source == ""
        assert slot.media_data is None
