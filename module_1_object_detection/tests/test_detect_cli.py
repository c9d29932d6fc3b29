from pathlib import Path

import numpy as np

from module_1_object_detection.app import detect
from module_1_object_detection.app.models import BoundingBox


def _box(center_x: float, center_y: float, width: float, height: float, world_pos=(0.0, 0.0, 1.0)) -> BoundingBox:
    return BoundingBox(
        center_x=center_x,
        center_y=center_y,
        width=width,
        height=height,
        label="",
        class_name="cup",
        world_pos=world_pos,
    )


def test_resolve_settings_applies_cli_overrides(tmp_path: Path) -> None:
    parser = detect.build_arg_parser()
    args = parser.parse_args(
        [
            "--model",
            str(tmp_path / "weights.pt"),
            "--conf",
            "0.4",
            "--layers-per-tick",
            "7",
            "--no-display",
            "--no-warmup",
            "--log-format",
            "json",
        ]
    )

    settings = detect.resolve_settings(args)

    assert settings.model_path == tmp_path / "weights.pt"
    assert settings.confidence_threshold == 0.4
    assert settings.layers_per_tick == 7
    assert settings.display is False
    assert settings.warmup is False
    assert settings.log_format == "json"
    assert settings.iou_threshold == 0.6


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("DETECTION_LAYERS_PER_TICK", "12")
    monkeypatch.setenv("DETECTION_DISPLAY_WIDTH", "800")
    monkeypatch.setenv("DETECTION_DISPLAY_HEIGHT", "600")

    settings = detect.resolve_settings(detect.build_arg_parser().parse_args([]))

    assert settings.layers_per_tick == 12
    assert detect.display_size(settings) == (800.0, 600.0)


def test_display_size_is_optional() -> None:
    settings = detect.resolve_settings(detect.build_arg_parser().parse_args([]))

    assert detect.display_size(settings) is None


def test_build_camera_uses_pose_settings() -> None:
    settings = detect.load_settings(camera_pitch_degrees=0.0, camera_position=[1.0, 2.0, 3.0])

    camera = detect.build_camera(settings)

    assert camera.position == (1.0, 2.0, 3.0)
    assert camera.principal_point == (640.0, 480.0)


def test_box_corners_convert_centred_boxes_to_frame_pixels() -> None:
    box = _box(0.0, 0.0, 20.0, 10.0)

    assert detect.box_corners(box, (100.0, 50.0), (50, 100, 3)) == (40, 20, 60, 30)
    assert detect.box_corners(box, (50.0, 25.0), (50, 100, 3)) == (30, 15, 70, 35)


def test_annotate_frame_draws_without_touching_input() -> None:
    frame = np.zeros((50, 100, 3), dtype=np.uint8)

    annotated = detect.annotate_frame(frame, [_box(0.0, 0.0, 20.0, 10.0), _box(30.0, 10.0, 4.0, 4.0, None)])

    assert frame.sum() == 0
    assert annotated.shape == frame.shape
    assert tuple(annotated[20, 40]) == detect.BOX_COLOR
