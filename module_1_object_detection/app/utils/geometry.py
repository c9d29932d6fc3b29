"""Geometry helper utilities for rays, planes and world positions."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..models import Vec3

_PARALLEL_EPSILON = 1e-9


@dataclass(frozen=True)
class Ray:
    origin: Vec3
    direction: Vec3


@dataclass(frozen=True)
class Plane:
    point: Vec3
    normal: Vec3

    @classmethod
    def horizontal(cls, height: float) -> "Plane":
        return cls(point=(0.0, float(height), 0.0), normal=(0.0, 1.0, 0.0))


def to_vec3(values: Sequence[float]) -> Vec3:
    x, y, z = values
    return (float(x), float(y), float(z))


def rotation_from_euler(pitch_degrees: float = 0.0, yaw_degrees: float = 0.0) -> np.ndarray:
    """Rotation matrix for a camera looking down +Z with +Y up.

    Positive pitch tilts the view towards the floor, positive yaw turns it
    towards +X.
    """

    pitch = math.radians(pitch_degrees)
    yaw = math.radians(yaw_degrees)
    rot_x = np.array(
        [
            [1.0, 0.0, 0.0],
            [0.0, math.cos(pitch), -math.sin(pitch)],
            [0.0, math.sin(pitch), math.cos(pitch)],
        ]
    )
    rot_y = np.array(
        [
            [math.cos(yaw), 0.0, math.sin(yaw)],
            [0.0, 1.0, 0.0],
            [-math.sin(yaw), 0.0, math.cos(yaw)],
        ]
    )
    return rot_y @ rot_x


def intersect_plane(ray: Ray, plane: Plane, max_distance: float = math.inf) -> Optional[float]:
    """Return the ray parameter of the hit in front of the origin, or None."""

    direction = np.asarray(ray.direction, dtype=np.float64)
    normal = np.asarray(plane.normal, dtype=np.float64)
    denom = float(np.dot(normal, direction))
    if abs(denom) < _PARALLEL_EPSILON:
        return None
    offset = np.asarray(plane.point, dtype=np.float64) - np.asarray(ray.origin, dtype=np.float64)
    t = float(np.dot(normal, offset)) / denom
    if t <= 0:
        return None
    hit_distance = t * float(np.linalg.norm(direction))
    if hit_distance > max_distance:
        return None
    return t


def point_along(ray: Ray, t: float) -> Vec3:
    origin = np.asarray(ray.origin, dtype=np.float64)
    direction = np.asarray(ray.direction, dtype=np.float64)
    return to_vec3(origin + direction * t)
