from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PLACEMENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    module_root: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[1])
    history_path: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[1] / "storage" / "placement_history.json")
    state_snapshot_path: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[1] / "storage" / "marker_state.json")
    spawn_min_distance: float = Field(default=0.25, gt=0.0)
    restore_markers: bool = False
    tick_interval_seconds: float = Field(default=0.03, gt=0.0)
    video_source: str = "0"
    enable_background_worker: bool = True
    host: str = "0.0.0.0"
    port: int = 8000


def get_settings() -> AppSettings:
    return AppSettings()
