from typing import List, Optional, Tuple

import numpy as np

from module_1_object_detection.app.models import Tensor
from module_1_object_detection.app.services.detection_projector import DetectionProjector
from module_1_object_detection.app.services.detection_session import DetectionSession
from module_1_object_detection.app.services.inference_scheduler import (
    IncrementalScheduler,
    SchedulerConfig,
    SchedulerStage,
)
from module_1_object_detection.app.services.label_table import LabelTable
from module_1_object_detection.app.services.surface import CameraIntrinsics


class FakeBackend:
    def __init__(self, outputs) -> None:
        self.outputs = outputs
        self.runs = 0
        self.handles = {}

    def begin_run(self, model, input_tensor):
        self.runs += 1
        self.handles = {index: output.readback_clone() for index, output in self.outputs.items()}
        return iter([0, 1, 2])

    def peek_output(self, model, index):
        return self.handles.get(index)

    def release_outputs(self, model):
        for handle in self.handles.values():
            handle.release()
        self.handles = {}


class FixedRayCaster:
    def cast_ray(self, ray):
        return (0.0, 0.0, 1.0)


class RecordingEvents:
    def __init__(self) -> None:
        self.events: List[Tuple[str, object]] = []

    def on_detection_count_changed(self, count: int) -> None:
        self.events.append(("count", count))

    def on_detection_error(self, reason: str) -> None:
        self.events.append(("error", reason))

    def on_markers_identified(self, count: int) -> None:
        self.events.append(("identified", count))


FRAME = np.zeros((12, 16, 3), dtype=np.uint8)


def detection_outputs(rows: int = 2):
    coords = np.array([[4.0, 4.0, 2.0, 2.0]] * rows, dtype=np.float32).reshape(rows, 4)
    return {0: Tensor(coords), 1: Tensor(np.zeros(rows, dtype=np.int32))}


def make_session(outputs, display_size: Optional[Tuple[float, float]] = None):
    backend = FakeBackend(outputs)
    scheduler = IncrementalScheduler(
        backend,
        model=object(),
        config=SchedulerConfig(layers_per_tick=5, input_width=8, input_height=8),
    )
    camera = CameraIntrinsics(focal_length=(10.0, 10.0), principal_point=(8.0, 6.0), resolution=(16, 12))
    projector = DetectionProjector(LabelTable(["cup"]), camera, FixedRayCaster())
    events = RecordingEvents()
    return DetectionSession(scheduler, projector, events, display_size), backend, events


def run_frames(session: DetectionSession, count: int, frame=FRAME):
    produced = []
    for _ in range(count):
        boxes = session.update(frame)
        if boxes is not None:
            produced.append(boxes)
    return produced


def test_completed_job_replaces_boxes_and_reports_count() -> None:
    session, backend, events = make_session(detection_outputs(2))

    produced = run_frames(session, 7)

    assert len(produced) == 1
    assert len(session.boxes) == 2
    assert session.boxes[0].class_name == "cup"
    assert session.boxes[0].world_pos == (0.0, 0.0, 1.0)
    assert events.events == [("count", 2)]
    assert backend.runs == 1


def test_display_size_defaults_to_submitted_frame() -> None:
    session, _, _ = make_session(detection_outputs(1))

    run_frames(session, 7)

    box = session.boxes[0]
    # model 8x8 -> frame 16x12, centre (4, 4) -> (8, 6) -> display centred (0, 0)
    assert (box.center_x, box.center_y) == (0.0, 0.0)
    assert (box.width, box.height) == (4.0, 3.0)


def test_configured_display_size_overrides_frame_size() -> None:
    session, _, _ = make_session(detection_outputs(1), display_size=(80.0, 80.0))

    run_frames(session, 7)

    box = session.boxes[0]
    assert (box.width, box.height) == (20.0, 20.0)


def test_next_job_starts_after_release() -> None:
    session, backend, events = make_session(detection_outputs(1))

    produced = run_frames(session, 14)

    assert backend.runs == 2
    assert len(produced) == 2
    assert events.events == [("count", 1), ("count", 1)]


def test_empty_coordinates_report_zero_without_error() -> None:
    outputs = {0: Tensor(np.zeros((0, 4), dtype=np.float32)), 1: Tensor(np.zeros(0, dtype=np.int32))}
    session, _, events = make_session(outputs)

    run_frames(session, 5)

    assert events.events == [("count", 0)]
    assert session.boxes == []


def test_failures_report_error_then_zero_count() -> None:
    session, _, events = make_session({1: Tensor(np.zeros(1, dtype=np.int32))})

    run_frames(session, 4)

    assert events.events == [("error", "no_output_data"), ("count", 0)]
    assert session.last_result is not None
    assert not session.last_result.succeeded


def test_failed_job_clears_previous_boxes() -> None:
    outputs = detection_outputs(1)
    session, _, events = make_session(outputs)
    run_frames(session, 7)
    assert len(session.boxes) == 1

    del outputs[0]
    run_frames(session, 4)

    assert session.boxes == []
    assert events.events[-2:] == [("error", "no_output_data"), ("count", 0)]


def test_pause_stops_submission_but_finishes_running_job() -> None:
    session, backend, events = make_session(detection_outputs(1))
    session.update(FRAME)
    session.pause()

    run_frames(session, 10)

    assert backend.runs == 1
    assert events.events == [("count", 1)]
    assert session.scheduler.stage is SchedulerStage.IDLE

    session.resume()
    session.update(FRAME)
    assert backend.runs == 2


def test_invalid_frame_is_skipped() -> None:
    session, backend, events = make_session(detection_outputs(1))

    assert session.update(np.zeros((0, 0, 3), dtype=np.uint8)) is None
    assert session.update(None) is None

    assert backend.runs == 0
    assert not session.scheduler.is_running()
    assert events.events == []


def test_dispose_releases_job_and_boxes() -> None:
    session, backend, _ = make_session(detection_outputs(1))
    run_frames(session, 7)
    session.update(FRAME)
    job = session.scheduler.current_job
    handles = list(backend.handles.values())

    session.dispose()

    assert job.input_tensor.released
    assert session.boxes == []
    assert not session.scheduler.is_running()
    assert all(handle.released for handle in handles)
    assert backend.handles == {}
