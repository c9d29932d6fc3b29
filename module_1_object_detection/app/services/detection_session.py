"""Per-frame driver tying the scheduler, projector and UI events together."""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from ..models import BoundingBox
from .detection_projector import DetectionProjector
from .events import DetectionEventSink
from .inference_scheduler import FailureReason, IncrementalScheduler, InferenceResult, SchedulerStage
from .tensor_codec import InvalidImageError

LOGGER = logging.getLogger(__name__)


class DetectionSession:
    """Call ``update`` once per rendered frame.

    Each call ticks the scheduler, projects a finished job's output into
    ``boxes`` and submits the current frame whenever the scheduler is idle.
    """

    def __init__(
        self,
        scheduler: IncrementalScheduler,
        projector: DetectionProjector,
        events: DetectionEventSink,
        display_size: Optional[Tuple[float, float]] = None,
    ) -> None:
        self.scheduler = scheduler
        self.projector = projector
        self.events = events
        self.display_size = display_size
        self.paused = False
        self.last_result: Optional[InferenceResult] = None
        self._boxes: List[BoundingBox] = []
        self._capture_size: Optional[Tuple[float, float]] = None

    @property
    def boxes(self) -> List[BoundingBox]:
        return list(self._boxes)

    @property
    def model_input_size(self) -> Tuple[int, int]:
        cfg = self.scheduler.config
        return cfg.input_width, cfg.input_height

    def pause(self) -> None:
        if not self.paused:
            LOGGER.info("Detection paused")
        self.paused = True

    def resume(self) -> None:
        if self.paused:
            LOGGER.info("Detection resumed")
        self.paused = False

    def update(self, frame: Optional[np.ndarray]) -> Optional[List[BoundingBox]]:
        """Advance one frame; returns the new box set when a job completed on this call."""

        produced: Optional[List[BoundingBox]] = None
        result = self.scheduler.tick()
        if result is not None:
            produced = self._handle_result(result)

        if not self.paused and frame is not None and not self.scheduler.is_running():
            self._submit(frame)
        return produced

    def dispose(self) -> None:
        self.scheduler.dispose()
        self._boxes = []

    def _submit(self, frame: np.ndarray) -> None:
        try:
            accepted = self.scheduler.submit(frame)
        except InvalidImageError as exc:
            LOGGER.warning("Frame rejected: %s", exc)
            return
        if accepted:
            self._capture_size = (float(frame.shape[1]), float(frame.shape[0]))

    def _handle_result(self, result: InferenceResult) -> List[BoundingBox]:
        self.last_result = result
        self._boxes = []

        if result.succeeded and result.coords is not None and result.label_ids is not None:
            display_size = self.display_size or self._capture_size or self.model_input_size
            self._boxes = self.projector.project(
                result.coords,
                result.label_ids,
                self.model_input_size,
                display_size,
            )
            LOGGER.info(
                "Job %d produced %d boxes (%d steps, %d ticks)",
                result.job_id,
                len(self._boxes),
                result.steps,
                result.ticks,
            )
        elif (
            result.reason is FailureReason.EMPTY_OUTPUT
            and result.failed_stage is SchedulerStage.AWAITING_COORD
        ):
            LOGGER.debug("Job %d found no objects", result.job_id)
        else:
            reason = result.reason.value if result.reason is not None else "unknown"
            self.events.on_detection_error(reason)

        self.events.on_detection_count_changed(len(self._boxes))
        return list(self._boxes)
