"""Reference height table — loads reference_heights.yaml for distance estimates."""
from __future__ import annotations

from pathlib import Path
from typing import Mapping

import yaml

from sightline_shared.logging import get_logger

log = get_logger(__name__)

_DEFAULT_HEIGHT_M = 1.0


class ReferenceHeights:
    """Assumed real-world object heights in meters, keyed by lower-cased label.

    Args:
        heights: label → height in meters. Keys are lower-cased on load.
        default_height: Height used for labels missing from the table.
    """

    def __init__(
        self,
        heights: Mapping[str, float],
        default_height: float = _DEFAULT_HEIGHT_M,
    ) -> None:
        if default_height <= 0:
            raise ValueError(f"default_height must be positive, got {default_height}")
        self._default = float(default_height)
        self._heights: dict[str, float] = {}
        for label, height in heights.items():
            height = float(height)
            if height <= 0:
                raise ValueError(f"Reference height for '{label}' must be positive, got {height}")
            self._heights[str(label).strip().lower()] = height

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> ReferenceHeights:
        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}
        table = cls(
            data.get("heights", {}),
            default_height=data.get("default_height", _DEFAULT_HEIGHT_M),
        )
        log.info("reference_heights_loaded", labels=len(table), path=str(yaml_path))
        return table

    def height_for(self, label: str) -> float:
        return self._heights.get(label.lower(), self._default)

    def __contains__(self, label: str) -> bool:
        return label.lower() in self._heights

    def __len__(self) -> int:
        return len(self._heights)
