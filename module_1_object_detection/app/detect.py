"""Entry point for real-time object detection with world-space projection."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np

from .config.settings import AppSettings, load_settings
from .models import BoundingBox
from .services.detection_projector import DetectionProjector
from .services.detection_session import DetectionSession
from .services.events import DetectionEventSink, LoggingEventSink
from .services.inference_scheduler import IncrementalScheduler, SchedulerConfig
from .services.label_table import LabelTable
from .services.surface import CameraIntrinsics, PlaneRayCaster
from .utils.video import managed_source, parse_source

LOGGER = logging.getLogger(__name__)

BOX_COLOR = (0, 255, 0)
MISSING_SURFACE_COLOR = (0, 165, 255)
WINDOW_TITLE = "Object Detection"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Real-time object detection with world markers")
    parser.add_argument("--source", type=str, default="0", help="Video source path or device index")
    parser.add_argument("--model", type=str, default=None, help="Path to YOLO weights file")
    parser.add_argument("--labels", type=str, default=None, help="Newline-delimited class names file")
    parser.add_argument("--device", type=str, default=None, help="Torch device, e.g. cpu or cuda:0")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold")
    parser.add_argument("--layers-per-tick", type=int, default=None, help="Network layers executed per frame")
    parser.add_argument("--no-display", action="store_true", help="Disable OpenCV window display")
    parser.add_argument("--no-warmup", action="store_true", help="Skip the warm-up inference")
    parser.add_argument("--max-frames", type=int, default=None, help="Stop after this many frames")
    parser.add_argument("--log-format", choices=["text", "json"], default=None, help="Logging format")
    return parser


def setup_logging(settings: AppSettings) -> None:
    if settings.log_format == "json":
        formatter = logging.Formatter(
            '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=logging.INFO, handlers=[handler])


def resolve_settings(args: argparse.Namespace) -> AppSettings:
    overrides = {}
    if args.model:
        overrides["model_path"] = Path(args.model)
    if args.labels:
        overrides["labels_path"] = Path(args.labels)
    if args.device:
        overrides["device"] = args.device
    if args.conf is not None:
        overrides["confidence_threshold"] = args.conf
    if args.iou is not None:
        overrides["iou_threshold"] = args.iou
    if args.layers_per_tick is not None:
        overrides["layers_per_tick"] = args.layers_per_tick
    if args.no_display:
        overrides["display"] = False
    if args.no_warmup:
        overrides["warmup"] = False
    if args.log_format:
        overrides["log_format"] = args.log_format

    return load_settings(**overrides)


def build_camera(settings: AppSettings) -> CameraIntrinsics:
    camera = CameraIntrinsics.from_settings(
        resolution=settings.camera_resolution,
        focal_length=settings.focal_length,
        principal_point=settings.principal_point,
        position=settings.camera_position,
        pitch_degrees=settings.camera_pitch_degrees,
        yaw_degrees=settings.camera_yaw_degrees,
    )
    LOGGER.info(
        "Camera %dx%d at %s, horizontal FOV %.1f deg",
        camera.resolution[0],
        camera.resolution[1],
        camera.position,
        camera.horizontal_fov_degrees(),
    )
    return camera


def display_size(settings: AppSettings) -> Optional[Tuple[float, float]]:
    if settings.display_width and settings.display_height:
        return settings.display_width, settings.display_height
    return None


def build_session(settings: AppSettings, events: Optional[DetectionEventSink] = None) -> DetectionSession:
    """Load the model and wire scheduler, projector and event sink together."""

    from .services.yolo_backend import YoloLayerBackend

    backend = YoloLayerBackend(
        confidence=settings.confidence_threshold,
        iou=settings.iou_threshold,
        max_detections=settings.max_detections,
        device=settings.device,
    )
    model = backend.load_model(settings.model_path)
    if settings.warmup:
        backend.warm_up(model, settings.input_size)

    if settings.labels_path.exists():
        labels = LabelTable.from_file(settings.labels_path)
    else:
        LOGGER.warning("Label file %s not found, using class names stored in the model", settings.labels_path)
        labels = model.labels()

    scheduler = IncrementalScheduler(
        backend,
        model,
        SchedulerConfig(
            layers_per_tick=settings.layers_per_tick,
            input_width=settings.input_width,
            input_height=settings.input_height,
        ),
    )
    projector = DetectionProjector(
        labels,
        build_camera(settings),
        PlaneRayCaster.floor(settings.floor_height, settings.max_ray_distance),
    )
    return DetectionSession(scheduler, projector, events or LoggingEventSink(), display_size(settings))


def box_corners(box: BoundingBox, display: Tuple[float, float], frame_shape: Tuple[int, ...]) -> Tuple[int, int, int, int]:
    """Convert a display-centred box into top-left/bottom-right frame pixels."""

    frame_height, frame_width = frame_shape[:2]
    scale_x = frame_width / display[0]
    scale_y = frame_height / display[1]
    left = box.center_x + display[0] / 2 - box.width / 2
    top = box.center_y + display[1] / 2 - box.height / 2
    return (
        int(left * scale_x),
        int(top * scale_y),
        int((left + box.width) * scale_x),
        int((top + box.height) * scale_y),
    )


def annotate_frame(
    frame: np.ndarray,
    boxes: Iterable[BoundingBox],
    display: Optional[Tuple[float, float]] = None,
    font_scale: float = 0.5,
) -> np.ndarray:
    output = frame.copy()
    display = display or (float(frame.shape[1]), float(frame.shape[0]))
    for box in boxes:
        x1, y1, x2, y2 = box_corners(box, display, frame.shape)
        color = BOX_COLOR if box.world_pos is not None else MISSING_SURFACE_COLOR
        cv2.rectangle(output, (x1, y1), (x2, y2), color, 2)
        cv2.putText(
            output,
            box.class_name,
            (x1, max(0, y1 - 5)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            color,
            2,
            lineType=cv2.LINE_AA,
        )
    return output


def process_video_stream(
    video_source: str | int,
    settings: AppSettings,
    session: DetectionSession,
    *,
    max_frames: Optional[int] = None,
) -> int:
    """Feed frames to the session until the stream ends; returns the number of frames seen."""

    frames_seen = 0
    with managed_source(video_source) as source:
        for frame in source:
            frames_seen += 1
            produced = session.update(frame.data)
            if produced is not None:
                LOGGER.info(
                    "Frame %d | boxes=%d | on_surface=%d",
                    frame.index,
                    len(produced),
                    sum(1 for box in produced if box.world_pos is not None),
                )

            if settings.display:
                annotated = annotate_frame(frame.data, session.boxes, session.display_size)
                cv2.imshow(WINDOW_TITLE, annotated)
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):
                    LOGGER.info("Quit signal received from keyboard")
                    break
                if key == ord("p"):
                    if session.paused:
                        session.resume()
                    else:
                        session.pause()

            if max_frames is not None and frames_seen >= max_frames:
                break
    return frames_seen


def run_detection(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    setup_logging(settings)

    LOGGER.info("Starting object detection pipeline")
    session = build_session(settings)
    try:
        frames = process_video_stream(
            parse_source(args.source),
            settings,
            session,
            max_frames=args.max_frames,
        )
    finally:
        session.dispose()
        if settings.display:
            cv2.destroyAllWindows()
    LOGGER.info("Object detection completed after %d frames", frames)
    return 0


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()

    def handle_interrupt(signum: int, frame: Optional[object]) -> None:  # pragma: no cover - signal handling
        LOGGER.warning("Received interrupt signal (%d), shutting down", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_interrupt)
    sys.exit(run_detection(args))


if __name__ == "__main__":  # pragma: no cover
    main()
