"""Candidate builder — filters raw detector output and attaches distance and zone.

Distance is a pinhole heuristic: an assumed real-world height per label, an
empirically chosen focal constant and the box height in pixels. It is not a
calibrated depth measurement.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sightline_shared.logging import get_logger

from assist.config import AssistConfig
from assist.geometry import Box, Level, Zone, locate
from assist.reference_heights import ReferenceHeights

log = get_logger(__name__)


@dataclass(frozen=True)
class RawDetection:
    """One detector output. Box is (x, y, width, height) in frame pixels."""

    label: str
    confidence: float
    box: tuple[float, float, float, float]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RawDetection | None:
        """Parse the wire form {label, confidence, box: [x, y, w, h]}.

        Returns None when a field is missing or has the wrong shape.
        """
        try:
            label = data["label"]
            confidence = float(data["confidence"])
            x, y, w, h = (float(v) for v in data["box"])
        except (KeyError, TypeError, ValueError):
            return None
        if not isinstance(label, str):
            return None
        return cls(label=label, confidence=confidence, box=(x, y, w, h))


@dataclass(frozen=True)
class Candidate:
    """A detection that survived filtering, for the current frame only."""

    label: str
    confidence: float
    box: Box
    distance_m: float
    zone: Zone
    level: Level | None = None


def estimate_distance(
    label: str,
    box_height: float,
    heights: ReferenceHeights,
    focal_constant: float,
    distance_min: float,
    distance_max: float,
) -> float:
    """Estimate distance in meters from the box height, clamped to [min, max]."""
    distance = heights.height_for(label) * focal_constant / box_height
    return max(distance_min, min(distance_max, distance))


def _well_formed(det: RawDetection) -> bool:
    if not isinstance(det.label, str) or not det.label.strip():
        return False
    try:
        values = (float(det.confidence), *(float(v) for v in det.box))
    except (TypeError, ValueError):
        return False
    if len(values) != 5 or not all(math.isfinite(v) for v in values):
        return False
    _, _, width, height = det.box
    return width > 0 and height > 0


class CandidateBuilder:
    """Turns one frame's raw detections into Candidates.

    Args:
        config: Pipeline configuration (threshold, exclusions, clamp bounds).
        heights: Reference height table used for distance estimates.
    """

    def __init__(self, config: AssistConfig, heights: ReferenceHeights) -> None:
        self._cfg = config
        self._heights = heights
        self._excluded = frozenset(label.lower() for label in config.excluded_labels)

    def build(
        self,
        detections: Iterable[RawDetection | Mapping[str, Any]],
        frame_size: tuple[int, int],
    ) -> list[Candidate]:
        """Filter detections and compute distance and zone for each survivor.

        Args:
            detections: RawDetection objects or wire-form mappings.
            frame_size: (width, height) of the frame the boxes refer to.
        """
        candidates: list[Candidate] = []
        dropped = 0

        for item in detections:
            det = RawDetection.from_mapping(item) if isinstance(item, Mapping) else item
            if det is None or not _well_formed(det):
                dropped += 1
                continue
            if det.confidence < self._cfg.confidence_threshold:
                continue
            if det.label.lower() in self._excluded:
                continue

            box = Box(*(float(v) for v in det.box))
            distance = estimate_distance(
                det.label,
                box.height,
                self._heights,
                self._cfg.focal_constant,
                self._cfg.distance_min_m,
                self._cfg.distance_max_m,
            )
            zone, level = locate(box, frame_size, vertical=self._cfg.vertical_zones)
            candidates.append(
                Candidate(
                    label=det.label,
                    confidence=float(det.confidence),
                    box=box,
                    distance_m=distance,
                    zone=zone,
                    level=level,
                )
            )

        if dropped:
            log.debug("malformed_detections_dropped", count=dropped)
        return candidates
