"""Configuration utilities for Module 1 object detection."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Application configuration sourced from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DETECTION_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    model_path: Path = Field(default=Path("models/yolov8n.pt"), description="YOLO weights path")
    labels_path: Path = Field(
        default=Path(__file__).resolve().parent / "coco_labels.txt",
        description="Newline-delimited class names indexed by label id.",
    )
    device: str = Field(default="cpu")
    confidence_threshold: float = Field(default=0.23, ge=0.0, le=1.0)
    iou_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_detections: int = Field(default=300, gt=0)
    layers_per_tick: int = Field(default=25, gt=0, description="Graph steps executed per tick.")
    input_width: int = Field(default=640, gt=0)
    input_height: int = Field(default=640, gt=0)
    display_width: Optional[float] = Field(default=None, gt=0.0)
    display_height: Optional[float] = Field(default=None, gt=0.0)
    camera_resolution: List[int] = Field(default_factory=lambda: [1280, 960])
    focal_length: List[float] = Field(default_factory=lambda: [870.0, 870.0])
    principal_point: Optional[List[float]] = Field(default=None)
    camera_position: List[float] = Field(default_factory=lambda: [0.0, 1.6, 0.0])
    camera_pitch_degrees: float = Field(default=20.0)
    camera_yaw_degrees: float = Field(default=0.0)
    floor_height: float = Field(default=0.0)
    max_ray_distance: float = Field(default=10.0, gt=0.0)
    display: bool = Field(default=True, description="Render OpenCV window when true.")
    log_format: str = Field(default="text")
    warmup: bool = Field(default=True, description="Run one blank inference after loading.")

    @field_validator("model_path", "labels_path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @field_validator("camera_resolution", "focal_length")
    @classmethod
    def _check_pair(cls, value: List[float]) -> List[float]:
        if len(value) != 2 or min(value) <= 0:
            raise ValueError("expected two positive values")
        return value

    @field_validator("camera_position")
    @classmethod
    def _check_position(cls, value: List[float]) -> List[float]:
        if len(value) != 3:
            raise ValueError("camera_position needs three components")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return value

    @property
    def input_size(self) -> tuple[int, int]:
        return self.input_width, self.input_height


def load_settings(**overrides: object) -> AppSettings:
    """Return application settings, applying optional overrides."""

    return AppSettings(**overrides)
