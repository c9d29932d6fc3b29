from datetime import datetime, timezone

from module_2_marker_placement.core.deduplicator import RESET_COUNT, MarkerDeduplicator
from module_2_marker_placement.core.status_board import StatusBoard

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_identified_accumulates_and_resets() -> None:
    board = StatusBoard()

    board.record_identified(2, NOW)
    board.record_identified(0, NOW)
    board.record_identified(3, NOW)
    assert board.objects_identified == 5

    board.record_identified(-1, NOW)
    assert board.objects_identified == 0


def test_detection_count_replaces_previous_value() -> None:
    board = StatusBoard()

    board.record_detection_count(4, NOW)
    board.record_detection_count(1, NOW)

    assert board.objects_detected == 1
    assert board.updated_at == NOW


def test_errors_are_tracked() -> None:
    board = StatusBoard()

    board.record_error("no_output_data", NOW)
    board.record_detection_count(0, NOW)
    board.record_error("engine_fault", NOW)

    snapshot = board.snapshot()
    assert snapshot["last_error"] == "engine_fault"
    assert snapshot["error_count"] == 2
    assert snapshot["objects_detected"] == 0


def test_reset_clears_everything() -> None:
    board = StatusBoard()
    board.record_detection_count(3, NOW)
    board.record_identified(2, NOW)
    board.record_error("engine_fault", NOW)

    board.reset()

    assert board.snapshot() == {
        "objects_detected": 0,
        "objects_identified": 0,
        "last_error": None,
        "last_error_at": None,
        "error_count": 0,
        "updated_at": None,
    }


def test_deduplicator_clear_resets_identified_count() -> None:
    board = StatusBoard()
    board.record_identified(4, NOW)
    deduplicator = MarkerDeduplicator(0.25, listener=lambda count: board.record_identified(count, NOW))

    deduplicator.clear()

    assert RESET_COUNT == -1
    assert board.objects_identified == 0
