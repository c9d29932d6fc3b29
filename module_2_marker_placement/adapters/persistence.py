import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from module_2_marker_placement.core.models import PlacedMarker, PlacementRecord

logger = logging.getLogger(__name__)


class JsonPersistence:
    """Persist placement history and the marker state snapshot as JSON artifacts."""

    def __init__(self, history_path: Path, state_snapshot_path: Path) -> None:
        self.history_path = history_path
        self.state_snapshot_path = state_snapshot_path
        self.history_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_snapshot_path.parent.mkdir(parents=True, exist_ok=True)

    def append_history(self, records: Iterable[PlacementRecord]) -> None:
        serialized = [json.loads(record.model_dump_json()) for record in records]
        if not serialized:
            return
        existing = self._read_list(self.history_path)
        existing.extend(serialized)
        self.history_path.write_text(json.dumps(existing, indent=2))

    def load_history(self, limit: Optional[int] = None) -> List[PlacementRecord]:
        records = [PlacementRecord.model_validate(item) for item in self._read_list(self.history_path)]
        if limit is not None:
            records = records[-limit:]
        return records

    def clear_history(self) -> None:
        self.history_path.write_text("[]\n")

    def save_state(self, state: dict) -> None:
        sanitized = self._sanitize(state)
        self.state_snapshot_path.write_text(json.dumps(sanitized, indent=2))

    def load_markers(self) -> List[PlacedMarker]:
        """Markers from the last saved snapshot; empty when none was written."""

        if not self.state_snapshot_path.exists():
            return []
        try:
            state = json.loads(self.state_snapshot_path.read_text())
        except (json.JSONDecodeError, OSError):
            logger.warning("Ignoring unreadable state snapshot at %s", self.state_snapshot_path)
            return []
        return [PlacedMarker.model_validate(item) for item in state.get("markers", [])]

    def _read_list(self, path: Path) -> List[dict]:
        if not path.exists():
            return []
        try:
            payload = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError):
            logger.warning("Ignoring unreadable history file at %s", path)
            return []
        return payload if isinstance(payload, list) else []

    def _sanitize(self, payload: object) -> object:
        if isinstance(payload, dict):
            return {str(k): self._sanitize(v) for k, v in payload.items()}
        if isinstance(payload, (list, tuple)):
            return [self._sanitize(item) for item in payload]
        if isinstance(payload, datetime):
            return payload.isoformat()
        if hasattr(payload, "model_dump"):
            return self._sanitize(payload.model_dump())
        return payload
