"""Events produced for the UI collaborator."""
from __future__ import annotations

import logging
from typing import Protocol

LOGGER = logging.getLogger(__name__)

RESET_COUNT = -1


class DetectionEventSink(Protocol):
    def on_detection_count_changed(self, count: int) -> None: ...

    def on_detection_error(self, reason: str) -> None: ...

    def on_markers_identified(self, count: int) -> None: ...


class LoggingEventSink:
    """Default sink used by the CLI: writes every event to the log."""

    def on_detection_count_changed(self, count: int) -> None:
        LOGGER.info("Objects detected: %d", count)

    def on_detection_error(self, reason: str) -> None:
        LOGGER.error("Detection failed: %s", reason)

    def on_markers_identified(self, count: int) -> None:
        if count == RESET_COUNT:
            LOGGER.info("Markers reset")
        else:
            LOGGER.info("Markers identified: %d", count)
