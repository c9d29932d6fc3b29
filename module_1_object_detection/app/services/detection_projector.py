"""Projection of raw detection tensors into screen boxes and world positions."""
from __future__ import annotations

import logging
from typing import Iterator, List, Tuple

import numpy as np

from ..models import BoundingBox, RawDetection, Tensor
from .label_table import LabelTable
from .surface import CameraIntrinsics, RayCaster

LOGGER = logging.getLogger(__name__)

MAX_BOXES = 200

Size = Tuple[float, float]


def iter_raw_detections(coords: Tensor, label_ids: Tensor, limit: int) -> Iterator[RawDetection]:
    """Yield up to ``limit`` coordinate rows paired with their label ids."""

    rows = np.asarray(coords.data, dtype=np.float64).reshape(coords.row_count, -1)
    labels = np.asarray(label_ids.data).reshape(-1)
    for n in range(min(limit, rows.shape[0], labels.shape[0])):
        center_x, center_y, width, height = rows[n, :4]
        yield RawDetection(
            center_x=float(center_x),
            center_y=float(center_y),
            width=float(width),
            height=float(height),
            label_id=int(labels[n]),
        )


class DetectionProjector:
    """Maps model output rows to display boxes and resolves their world positions.

    Holds only read-only collaborators; every call is independent.
    """

    def __init__(
        self,
        labels: LabelTable,
        camera: CameraIntrinsics,
        ray_caster: RayCaster,
        max_boxes: int = MAX_BOXES,
    ) -> None:
        self.labels = labels
        self.camera = camera
        self.ray_caster = ray_caster
        self.max_boxes = max_boxes

    def project(
        self,
        coords: Tensor,
        label_ids: Tensor,
        model_input_size: Size,
        display_size: Size,
    ) -> List[BoundingBox]:
        boxes_found = coords.row_count
        if boxes_found <= 0:
            return []
        if label_ids.row_count < min(boxes_found, self.max_boxes):
            LOGGER.warning(
                "Label output has %d rows for %d boxes; extra boxes are dropped",
                label_ids.row_count,
                boxes_found,
            )

        model_width, model_height = model_input_size
        display_width, display_height = display_size
        scale_x = display_width / model_width
        scale_y = display_height / model_height
        half_width = display_width / 2.0
        half_height = display_height / 2.0
        cam_width, cam_height = self.camera.resolution

        boxes: List[BoundingBox] = []
        for n, raw in enumerate(iter_raw_detections(coords, label_ids, self.max_boxes)):
            center_x = raw.center_x * scale_x - half_width
            center_y = raw.center_y * scale_y - half_height
            per_x = (center_x + half_width) / display_width
            per_y = (center_y + half_height) / display_height

            class_name = self.labels.class_name(raw.label_id)

            # camera pixels start at the bottom-left, display pixels at the top-left
            center_pixel = (round(per_x * cam_width), round((1.0 - per_y) * cam_height))
            ray = self.camera.screen_point_to_ray(center_pixel)
            world_pos = self.ray_caster.cast_ray(ray)

            boxes.append(
                BoundingBox(
                    center_x=center_x,
                    center_y=center_y,
                    width=raw.width * scale_x,
                    height=raw.height * scale_y,
                    label=(
                        f"Id: {n} Class: {class_name} "
                        f"Center (px): {int(center_x)},{int(center_y)} "
                        f"Center (%): {per_x:.2f},{per_y:.2f}"
                    ),
                    class_name=class_name,
                    world_pos=world_pos,
                )
            )

        LOGGER.debug(
            "Projected %d of %d boxes (%d with surface hits)",
            len(boxes),
            boxes_found,
            sum(1 for box in boxes if box.world_pos is not None),
        )
        return boxes
