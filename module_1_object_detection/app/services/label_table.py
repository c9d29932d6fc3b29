"""Class name lookup for model label ids."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping, Sequence, Tuple

LOGGER = logging.getLogger(__name__)


class LabelTable(Sequence[str]):
    """Immutable ordered class names indexed by integer label id."""

    def __init__(self, names: Iterable[str]) -> None:
        self._names: Tuple[str, ...] = tuple(names)

    @classmethod
    def parse(cls, text: str) -> "LabelTable":
        """Parse a newline-delimited label asset.

        Lines keep their position so ids stay aligned; only trailing blank lines
        are dropped.
        """

        names = [line.strip() for line in text.splitlines()]
        while names and not names[-1]:
            names.pop()
        return cls(names)

    @classmethod
    def from_file(cls, path: Path) -> "LabelTable":
        table = cls.parse(path.read_text(encoding="utf-8"))
        LOGGER.info("Loaded %d class labels from %s", len(table), path)
        return table

    @classmethod
    def from_mapping(cls, names: Mapping[int, str]) -> "LabelTable":
        """Build a table from an ``{id: name}`` mapping such as ``model.names``."""

        if not names:
            return cls([])
        size = max(names) + 1
        return cls(str(names.get(idx, idx)) for idx in range(size))

    def __getitem__(self, index):  # type: ignore[override]
        return self._names[index]

    def __len__(self) -> int:
        return len(self._names)

    def class_name(self, label_id: int) -> str:
        """Return the stable identifier form of a class name (spaces -> underscores)."""

        if 0 <= label_id < len(self._names):
            name = self._names[label_id]
        else:
            LOGGER.warning("Label id %d outside table of %d classes", label_id, len(self._names))
            name = str(label_id)
        return name.replace(" ", "_")
