from datetime import datetime
from typing import Optional

from module_2_marker_placement.core.deduplicator import RESET_COUNT


class StatusBoard:
    """Track the detection and identification counters shown to the user."""

    def __init__(self) -> None:
        self.objects_detected = 0
        self.objects_identified = 0
        self.last_error: Optional[str] = None
        self.last_error_at: Optional[datetime] = None
        self.error_count = 0
        self.updated_at: Optional[datetime] = None
        self.reset()

    def record_detection_count(self, count: int, timestamp: datetime) -> None:
        self.objects_detected = max(count, 0)
        self.updated_at = timestamp

    def record_error(self, reason: str, timestamp: datetime) -> None:
        self.last_error = reason
        self.last_error_at = timestamp
        self.error_count += 1
        self.updated_at = timestamp

    def record_identified(self, count: int, timestamp: datetime) -> None:
        if count == RESET_COUNT:
            self.objects_identified = 0
        else:
            self.objects_identified += max(count, 0)
        self.updated_at = timestamp

    def snapshot(self) -> dict:
        return {
            "objects_detected": self.objects_detected,
            "objects_identified": self.objects_identified,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at,
            "error_count": self.error_count,
            "updated_at": self.updated_at,
        }

    def reset(self) -> None:
        self.objects_detected = 0
        self.objects_identified = 0
        self.last_error = None
        self.last_error_at = None
        self.error_count = 0
        self.updated_at = None
