import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from module_2_marker_placement.adapters.persistence import JsonPersistence
from module_2_marker_placement.core.deduplicator import MarkerDeduplicator
from module_2_marker_placement.core.models import DetectionView, PlacedMarker, PlacementRecord
from module_2_marker_placement.core.status_board import StatusBoard


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlacementService:
    """Coordinate the latest detections, marker deduplication, status and persistence.

    Also acts as the detection event sink, so a detection session can report
    counts and errors straight into the status board.
    """

    def __init__(
        self,
        deduplicator: MarkerDeduplicator,
        status: StatusBoard,
        persistence: JsonPersistence,
        restore_markers: bool = False,
    ) -> None:
        self.deduplicator = deduplicator
        self.status = status
        self.persistence = persistence
        self.paused = False
        self._detections: List[DetectionView] = []
        self._detection_runs = 0
        self._last_detection_at: Optional[datetime] = None
        self._history: List[PlacementRecord] = []
        self._placement_ids = itertools.count(1)
        self.deduplicator.listener = self.on_markers_identified
        if restore_markers:
            self._restore()

    def _restore(self) -> None:
        markers = self.persistence.load_markers()
        if markers:
            self.deduplicator.restore(markers)
            logger.info("Restored %d markers from %s", len(markers), self.persistence.state_snapshot_path)
        self._history = self.persistence.load_history()
        if self._history:
            self._placement_ids = itertools.count(self._history[-1].placement_id + 1)

    # detection event sink

    def on_detection_count_changed(self, count: int) -> None:
        self.status.record_detection_count(count, _utcnow())

    def on_detection_error(self, reason: str) -> None:
        logger.warning("Detection error reported: %s", reason)
        self.status.record_error(reason, _utcnow())

    def on_markers_identified(self, count: int) -> None:
        self.status.record_identified(count, _utcnow())

    # detections

    @property
    def has_detections(self) -> bool:
        return self._detection_runs > 0

    def update_detections(self, boxes: Iterable[Any], now: Optional[datetime] = None) -> None:
        """Replace the current detection set with a completed run's boxes."""

        self._detections = [box if isinstance(box, DetectionView) else DetectionView.from_box(box) for box in boxes]
        self._detection_runs += 1
        self._last_detection_at = now or _utcnow()

    def detections(self) -> List[DetectionView]:
        return list(self._detections)

    def drive(self, session: Any, frame: Any) -> bool:
        """Advance a detection session by one frame; returns True when it produced new boxes."""

        if session.paused != self.paused:
            if self.paused:
                session.pause()
            else:
                session.resume()
        boxes = session.update(frame)
        if boxes is None:
            return False
        self.update_detections(boxes)
        return True

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    # markers

    def markers(self) -> List[PlacedMarker]:
        return self.deduplicator.markers

    def place_current(self, now: Optional[datetime] = None) -> PlacementRecord:
        """Place markers for the current detections that are not already represented."""

        now = now or _utcnow()
        candidates = self.detections()
        placed = self.deduplicator.place(candidates)
        for marker in placed:
            marker.placed_at = now
        record = PlacementRecord(
            placement_id=next(self._placement_ids),
            requested_at=now,
            candidates=len(candidates),
            placed=len(placed),
            skipped=len(candidates) - len(placed),
            markers=placed,
            total_markers=len(self.deduplicator.markers),
        )
        self._history.append(record)
        self.persistence.append_history([record])
        self.persistence.save_state(self.snapshot(now))
        logger.info(
            "Placement %d: %d candidates, %d placed, %d total markers",
            record.placement_id,
            record.candidates,
            record.placed,
            record.total_markers,
        )
        return record

    def recenter(self, now: Optional[datetime] = None) -> None:
        self.deduplicator.clear()
        self.persistence.save_state(self.snapshot(now or _utcnow()))
        logger.info("Markers recentered")

    def history(self, limit: Optional[int] = None) -> List[PlacementRecord]:
        if limit is None:
            return list(self._history)
        return self._history[-limit:]

    def snapshot(self, now: Optional[datetime] = None) -> dict:
        return {
            "generated_at": now or _utcnow(),
            "paused": self.paused,
            "detection_runs": self._detection_runs,
            "last_detection_at": self._last_detection_at,
            "status": self.status.snapshot(),
            "markers": [marker.model_dump() for marker in self.deduplicator.markers],
        }
