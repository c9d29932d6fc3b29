"""Distance and class based deduplication of world markers."""
import logging
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from module_2_marker_placement.core.models import PlacedMarker

logger = logging.getLogger(__name__)

RESET_COUNT = -1


class PlacementDecision(str, Enum):
    PLACE = "place"
    SKIP = "skip"


def _distance(a: Sequence[float], b: Sequence[float]) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def try_place(existing: Iterable[PlacedMarker], candidate, min_distance: float) -> PlacementDecision:
    """Decide whether ``candidate`` (anything with ``world_pos`` and ``class_name``) is novel.

    A candidate is skipped when it has no world position, or when a marker of the
    same class already sits closer than ``min_distance``.
    """

    position = candidate.world_pos
    if position is None:
        return PlacementDecision.SKIP
    for marker in existing:
        if marker.class_name == candidate.class_name and _distance(marker.world_position, position) < min_distance:
            return PlacementDecision.SKIP
    return PlacementDecision.PLACE


def place_all(
    existing: Iterable[PlacedMarker],
    candidates: Iterable,
    min_distance: float,
) -> Tuple[List[PlacedMarker], int]:
    """Fold ``try_place`` over candidates in order.

    Each accepted candidate joins the working set before the next one is
    evaluated, so near-duplicates inside one batch produce a single marker.
    """

    working: List[PlacedMarker] = list(existing)
    placed: List[PlacedMarker] = []
    for candidate in candidates:
        if try_place(working, candidate, min_distance) is PlacementDecision.SKIP:
            continue
        x, y, z = candidate.world_pos
        marker = PlacedMarker(world_position=(float(x), float(y), float(z)), class_name=candidate.class_name)
        working.append(marker)
        placed.append(marker)
    return placed, len(placed)


class MarkerDeduplicator:
    """Owns the placed marker set and reports identification counts to a listener."""

    def __init__(self, min_distance: float, listener: Optional[Callable[[int], None]] = None) -> None:
        if min_distance <= 0:
            raise ValueError("min_distance must be positive")
        self.min_distance = min_distance
        self.listener = listener
        self._markers: List[PlacedMarker] = []

    @property
    def markers(self) -> List[PlacedMarker]:
        return list(self._markers)

    def restore(self, markers: Iterable[PlacedMarker]) -> None:
        self._markers = list(markers)

    def place(self, candidates: Iterable) -> List[PlacedMarker]:
        placed, count = place_all(self._markers, candidates, self.min_distance)
        self._markers.extend(placed)
        logger.info("Placed %d new markers (%d total)", count, len(self._markers))
        self._notify(count)
        return placed

    def clear(self) -> None:
        logger.info("Clearing %d markers", len(self._markers))
        self._markers = []
        self._notify(RESET_COUNT)

    def _notify(self, count: int) -> None:
        if self.listener is not None:
            self.listener(count)
