"""Image to tensor conversion (resize + channel pack)."""
from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from ..models import Tensor

_SCALES = {
    np.dtype(np.uint8): 255.0,
    np.dtype(np.uint16): 65535.0,
    np.dtype(np.float32): 1.0,
    np.dtype(np.float64): 1.0,
}


class InvalidImageError(ValueError):
    """The frame is empty, has zero dimensions or an unsupported layout."""


def _validate(image: Optional[np.ndarray]) -> np.ndarray:
    if image is None or not isinstance(image, np.ndarray):
        raise InvalidImageError("Image buffer is missing")
    if image.size == 0 or image.ndim not in (2, 3) or min(image.shape[:2]) == 0:
        raise InvalidImageError(f"Image has no pixels (shape={image.shape})")
    if image.ndim == 3 and image.shape[2] not in (1, 3, 4):
        raise InvalidImageError(f"Unsupported channel count: {image.shape[2]}")
    if image.dtype not in _SCALES:
        raise InvalidImageError(f"Unsupported pixel type: {image.dtype}")
    return image


def _pack_channels(image: np.ndarray, channels: int) -> np.ndarray:
    """Convert an OpenCV BGR(A)/gray image to RGB(A)/gray with ``channels`` planes."""

    source_channels = 1 if image.ndim == 2 else image.shape[2]
    plane = image if image.ndim == 2 else image[:, :, 0] if source_channels == 1 else image

    if channels == 1:
        if source_channels == 1:
            packed = plane
        elif source_channels == 3:
            packed = cv2.cvtColor(plane, cv2.COLOR_BGR2GRAY)
        else:
            packed = cv2.cvtColor(plane, cv2.COLOR_BGRA2GRAY)
        return packed[:, :, np.newaxis]
    if channels == 3:
        if source_channels == 1:
            return cv2.cvtColor(plane, cv2.COLOR_GRAY2RGB)
        if source_channels == 3:
            return cv2.cvtColor(plane, cv2.COLOR_BGR2RGB)
        return cv2.cvtColor(plane, cv2.COLOR_BGRA2RGB)
    if source_channels == 1:
        return cv2.cvtColor(plane, cv2.COLOR_GRAY2RGBA)
    if source_channels == 3:
        return cv2.cvtColor(plane, cv2.COLOR_BGR2RGBA)
    return cv2.cvtColor(plane, cv2.COLOR_BGRA2RGBA)


def encode(image: np.ndarray, target_width: int, target_height: int, channels: int = 3) -> Tensor:
    """Resize an image and pack it into a ``[1, channels, height, width]`` float tensor.

    Pixel values are scaled into ``[0, 1]``. The function has no side effects and
    raises ``InvalidImageError`` for empty or malformed buffers.
    """

    if channels not in (1, 3, 4):
        raise ValueError(f"channels must be 1, 3 or 4, got {channels}")
    if target_width <= 0 or target_height <= 0:
        raise ValueError("Target size must be positive")

    image = _validate(image)
    scale = _SCALES[image.dtype]
    if image.dtype == np.float64:
        image = image.astype(np.float32)

    resized = cv2.resize(image, (int(target_width), int(target_height)), interpolation=cv2.INTER_LINEAR)
    if resized.ndim == 2:
        resized = resized[:, :, np.newaxis]
    packed = _pack_channels(resized, channels).astype(np.float32)
    if scale != 1.0:
        packed /= scale
    chw = np.ascontiguousarray(packed.transpose(2, 0, 1)[np.newaxis])
    return Tensor(chw)
