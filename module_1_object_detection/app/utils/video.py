"""Camera frame source utilities."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Iterator, Optional, Union

import cv2
import numpy as np

LOGGER = logging.getLogger(__name__)


@dataclass
class Frame:
    index: int
    data: np.ndarray
    timestamp_ms: float


def parse_source(raw: str) -> Union[int, str]:
    """Interpret a numeric string as a camera index, anything else as a path/URL."""

    try:
        return int(raw)
    except ValueError:
        return raw


class FrameSource:
    """Supplies the most recent camera image as a tagged frame."""

    def __init__(self, source: Union[int, str]) -> None:
        self.source = source
        self._capture: Optional[cv2.VideoCapture] = None
        self._index = 0
        self._fps = 0.0

    def open(self) -> "FrameSource":
        capture = cv2.VideoCapture(self.source)
        if not capture.isOpened():
            raise RuntimeError(f"Unable to open video source: {self.source}")
        self._capture = capture
        self._fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        LOGGER.info("Video source %s opened successfully", self.source)
        return self

    def read(self) -> Optional[Frame]:
        """Return the next frame, or None when the stream has ended."""

        if self._capture is None:
            raise RuntimeError("Frame source is not open")
        success, data = self._capture.read()
        if not success:
            return None
        self._index += 1
        if self._fps:
            timestamp_ms = self._index / self._fps * 1000
        else:
            timestamp_ms = time.monotonic() * 1000
        return Frame(index=self._index, data=data, timestamp_ms=timestamp_ms)

    def __iter__(self) -> Iterator[Frame]:
        while True:
            frame = self.read()
            if frame is None:
                LOGGER.info("End of stream reached after %d frames", self._index)
                return
            yield frame

    def close(self) -> None:
        if self._capture is not None:
            LOGGER.info("Releasing video source")
            self._capture.release()
            self._capture = None


@contextmanager
def managed_source(source: Union[int, str]) -> Generator[FrameSource, None, None]:
    """Context manager ensuring capture release."""

    frame_source = FrameSource(source).open()
    try:
        yield frame_source
    finally:
        frame_source.close()
