import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple
from unittest.mock import MagicMock

from module_2_marker_placement.adapters.persistence import JsonPersistence
from module_2_marker_placement.core.deduplicator import MarkerDeduplicator
from module_2_marker_placement.core.status_board import StatusBoard
from module_2_marker_placement.services.placement_service import PlacementService

NOW = datetime(2025, 11, 4, 16, 18, tzinfo=timezone.utc)


@dataclass
class Box:
    class_name: str
    world_pos: Optional[Tuple[float, float, float]]
    center_x: float = 0.0
    center_y: float = 0.0
    width: float = 10.0
    height: float = 10.0
    label: str = ""


def _service(tmp_path, restore: bool = False) -> PlacementService:
    persistence = JsonPersistence(tmp_path / "history.json", tmp_path / "state.json")
    return PlacementService(MarkerDeduplicator(0.25), StatusBoard(), persistence, restore_markers=restore)


def test_place_current_uses_latest_detections(tmp_path) -> None:
    service = _service(tmp_path)
    service.update_detections([Box("cup", (0.0, 0.0, 1.0)), Box("cup", (0.1, 0.0, 1.0)), Box("person", None)])

    record = service.place_current(NOW)

    assert record.placement_id == 1
    assert record.candidates == 3
    assert record.placed == 1
    assert record.skipped == 2
    assert record.markers[0].placed_at == NOW
    assert service.status.objects_identified == 1
    assert len(service.markers()) == 1


def test_repeated_placement_does_not_duplicate(tmp_path) -> None:
    service = _service(tmp_path)
    service.update_detections([Box("cup", (0.0, 0.0, 1.0))])

    service.place_current(NOW)
    second = service.place_current(NOW)

    assert second.placed == 0
    assert len(service.markers()) == 1
    assert service.status.objects_identified == 1


def test_new_detections_replace_previous_set(tmp_path) -> None:
    service = _service(tmp_path)
    service.update_detections([Box("cup", (0.0, 0.0, 1.0)), Box("cup", (3.0, 0.0, 1.0))])
    service.update_detections([Box("person", (1.0, 0.0, 1.0))])

    assert [d.class_name for d in service.detections()] == ["person"]
    assert service.snapshot(NOW)["detection_runs"] == 2


def test_recenter_resets_markers_and_counter(tmp_path) -> None:
    service = _service(tmp_path)
    service.update_detections([Box("cup", (0.0, 0.0, 1.0))])
    service.place_current(NOW)

    service.recenter(NOW)

    assert service.markers() == []
    assert service.status.objects_identified == 0
    state = json.loads((tmp_path / "state.json").read_text())
    assert state["markers"] == []

    record = service.place_current(NOW)
    assert record.placed == 1
    assert service.status.objects_identified == 1


def test_event_sink_updates_status(tmp_path) -> None:
    service = _service(tmp_path)

    service.on_detection_error("no_output_data")
    service.on_detection_count_changed(0)
    service.on_detection_count_changed(4)

    status = service.snapshot(NOW)["status"]
    assert status["objects_detected"] == 4
    assert status["last_error"] == "no_output_data"


def test_history_and_state_are_persisted(tmp_path) -> None:
    service = _service(tmp_path)
    service.update_detections([Box("cup", (0.0, 0.0, 1.0))])
    service.place_current(NOW)
    service.update_detections([Box("cup", (2.0, 0.0, 1.0))])
    service.place_current(NOW)

    history = json.loads((tmp_path / "history.json").read_text())
    assert [entry["placed"] for entry in history] == [1, 1]
    state = json.loads((tmp_path / "state.json").read_text())
    assert len(state["markers"]) == 2
    assert state["markers"][1]["world_position"] == [2.0, 0.0, 1.0]
    assert [record.placement_id for record in service.history(limit=1)] == [2]


def test_restore_reloads_markers_and_history(tmp_path) -> None:
    first = _service(tmp_path)
    first.update_detections([Box("cup", (0.0, 0.0, 1.0))])
    first.place_current(NOW)

    restored = _service(tmp_path, restore=True)

    assert [m.class_name for m in restored.markers()] == ["cup"]
    assert len(restored.history()) == 1
    restored.update_detections([Box("cup", (0.05, 0.0, 1.0)), Box("person", (0.0, 0.0, 1.0))])
    record = restored.place_current(NOW)
    assert record.placement_id == 2
    assert record.placed == 1


def test_drive_syncs_pause_and_collects_boxes(tmp_path) -> None:
    service = _service(tmp_path)
    session = MagicMock()
    session.paused = False
    session.update.side_effect = [None, [Box("cup", (0.0, 0.0, 1.0))]]

    service.pause()
    assert service.drive(session, "frame-1") is False
    session.pause.assert_called_once()

    session.paused = True
    service.resume()
    assert service.drive(session, "frame-2") is True
    session.resume.assert_called_once()
    assert [d.class_name for d in service.detections()] == ["cup"]
    assert service.has_detections
