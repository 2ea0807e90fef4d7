"""Stability filter and ranker — exposes only tracks that have settled."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from assist.geometry import Box, Level, Zone, locate
from assist.tracker import Track


@dataclass(frozen=True)
class TrackSnapshot:
    """Read-only view of a confirmed track for rendering and voice consumers."""

    track_id: str
    label: str
    confidence: float
    box: Box
    distance_m: float
    zone: Zone
    level: Level | None = None


def rank_confirmed(
    tracks: Iterable[Track],
    frame_size: tuple[int, int],
    min_stable_frames: int = 5,
    max_distance_m: float = 5.0,
    max_tracks: int = 5,
    vertical: bool = False,
) -> list[TrackSnapshot]:
    """Return confirmed tracks, nearest first, at most max_tracks of them.

    A track is confirmed once it has matched at least min_stable_frames
    frames and its smoothed distance is within max_distance_m. Zone and
    level come from the smoothed box against the current frame size.
    """
    confirmed = [
        t for t in tracks
        if t.consecutive_frames >= min_stable_frames and t.smoothed_distance_m <= max_distance_m
    ]
    confirmed.sort(key=lambda t: t.smoothed_distance_m)

    snapshots: list[TrackSnapshot] = []
    for track in confirmed[:max_tracks]:
        zone, level = locate(track.smoothed_box, frame_size, vertical=vertical)
        snapshots.append(
            TrackSnapshot(
                track_id=track.track_id,
                label=track.label,
                confidence=track.confidence,
                box=track.smoothed_box,
                distance_m=track.smoothed_distance_m,
                zone=zone,
                level=level,
            )
        )
    return snapshots
