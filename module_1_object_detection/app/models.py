"""Shared data models for Module 1."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]


class TensorReleasedError(RuntimeError):
    """Raised when a released tensor is read."""


class Tensor:
    """Read-only, shape-tagged numeric buffer with explicit release.

    Host tensors are already resident, so the read-back protocol completes
    immediately and ``readback_clone`` hands out an independent copy.
    """

    def __init__(self, data: np.ndarray) -> None:
        array = np.array(data, copy=True)
        array.setflags(write=False)
        self._data: Optional[np.ndarray] = array
        self._shape = tuple(array.shape)
        self._dtype = array.dtype

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def row_count(self) -> int:
        return int(self._shape[0]) if self._shape else 0

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def has_backing_data(self) -> bool:
        return self._data is not None

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            raise TensorReleasedError("Tensor has already been released")
        return self._data

    def release(self) -> None:
        self._data = None

    def request_readback(self) -> None:
        if self._data is None:
            raise TensorReleasedError("Cannot read back a released tensor")

    def is_readback_done(self) -> bool:
        return self._data is not None

    def readback_clone(self) -> "Tensor":
        return Tensor(self.data)

    def __repr__(self) -> str:
        state = "released" if self.released else str(self._dtype)
        return f"Tensor(shape={self._shape}, {state})"


@dataclass(frozen=True)
class RawDetection:
    """One coordinate row in model-input pixels paired with its label id."""

    center_x: float
    center_y: float
    width: float
    height: float
    label_id: int


@dataclass
class BoundingBox:
    """A projected detection in display pixels, centred on the display."""

    center_x: float
    center_y: float
    width: float
    height: float
    label: str
    class_name: str
    world_pos: Optional[Vec3] = None
