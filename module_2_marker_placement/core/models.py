from datetime import datetime
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field

Vec3 = Tuple[float, float, float]


class DetectionView(BaseModel):
    """Latest projected detection as exposed to the placement layer."""

    center_x: float
    center_y: float
    width: float
    height: float
    label: str = ""
    class_name: str
    world_pos: Optional[Vec3] = None

    @classmethod
    def from_box(cls, box: Any) -> "DetectionView":
        return cls(
            center_x=box.center_x,
            center_y=box.center_y,
            width=box.width,
            height=box.height,
            label=box.label,
            class_name=box.class_name,
            world_pos=box.world_pos,
        )


class PlacedMarker(BaseModel):
    world_position: Vec3
    class_name: str
    placed_at: Optional[datetime] = None


class PlacementRecord(BaseModel):
    placement_id: int
    requested_at: datetime
    candidates: int
    placed: int
    skipped: int
    markers: List[PlacedMarker] = Field(default_factory=list)
    total_markers: int = 0
