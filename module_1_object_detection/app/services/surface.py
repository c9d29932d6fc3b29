"""Camera ray construction and surface intersection."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from ..models import Vec3
from ..utils.geometry import Plane, Ray, intersect_plane, point_along, rotation_from_euler, to_vec3

LOGGER = logging.getLogger(__name__)


class RayCaster(Protocol):
    def cast_ray(self, ray: Ray) -> Optional[Vec3]: ...


@dataclass
class CameraIntrinsics:
    """Pinhole model of the physical camera and its pose in the world.

    Pixel coordinates have their origin at the bottom-left of the image.
    """

    focal_length: Tuple[float, float]
    principal_point: Tuple[float, float]
    resolution: Tuple[int, int]
    position: Vec3 = (0.0, 0.0, 0.0)
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))

    @classmethod
    def from_settings(
        cls,
        resolution: Sequence[int],
        focal_length: Sequence[float],
        principal_point: Optional[Sequence[float]] = None,
        position: Sequence[float] = (0.0, 0.0, 0.0),
        pitch_degrees: float = 0.0,
        yaw_degrees: float = 0.0,
    ) -> "CameraIntrinsics":
        width, height = int(resolution[0]), int(resolution[1])
        if principal_point is None:
            principal = (width / 2.0, height / 2.0)
        else:
            principal = (float(principal_point[0]), float(principal_point[1]))
        return cls(
            focal_length=(float(focal_length[0]), float(focal_length[1])),
            principal_point=principal,
            resolution=(width, height),
            position=to_vec3(position),
            rotation=rotation_from_euler(pitch_degrees, yaw_degrees),
        )

    def direction_in_camera(self, pixel: Tuple[int, int]) -> np.ndarray:
        fx, fy = self.focal_length
        cx, cy = self.principal_point
        return np.array([(pixel[0] - cx) / fx, (pixel[1] - cy) / fy, 1.0])

    def screen_point_to_ray(self, pixel: Tuple[int, int]) -> Ray:
        """World-space ray from the camera through ``pixel``."""

        direction = self.rotation @ self.direction_in_camera(pixel)
        return Ray(origin=self.position, direction=to_vec3(direction))

    def horizontal_fov_degrees(self) -> float:
        return math.degrees(2.0 * math.atan(self.resolution[0] / (2.0 * self.focal_length[0])))


class PlaneRayCaster:
    """Intersects rays with a fixed set of planes and returns the nearest hit."""

    def __init__(self, planes: Iterable[Plane], max_distance: float = math.inf) -> None:
        self.planes: List[Plane] = list(planes)
        self.max_distance = max_distance

    @classmethod
    def floor(cls, height: float = 0.0, max_distance: float = math.inf) -> "PlaneRayCaster":
        return cls([Plane.horizontal(height)], max_distance=max_distance)

    def cast_ray(self, ray: Ray) -> Optional[Vec3]:
        hits = [
            t
            for t in (intersect_plane(ray, plane, self.max_distance) for plane in self.planes)
            if t is not None
        ]
        if not hits:
            LOGGER.debug("Ray from %s found no surface", ray.origin)
            return None
        return point_along(ray, min(hits))
