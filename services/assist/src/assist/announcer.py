"""Announcement gate — decides which confirmed tracks to speak about, and how.

A track is announced the first time it is eligible, then at most once per
cooldown. The cooldown is a floor, not a heartbeat: nothing is repeated
just because the cooldown elapsed unless the track is still eligible on a
later frame. Moving between zones does not reset the cooldown.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sightline_shared.logging import get_logger

from assist.geometry import Level, Zone
from assist.ranker import TrackSnapshot

log = get_logger(__name__)

_ZONE_PHRASES = {
    Zone.LEFT: "on your left",
    Zone.CENTER: "straight ahead",
    Zone.RIGHT: "on your right",
}

_LEVEL_PHRASES = {
    Level.TOP: "high",
    Level.MIDDLE: "",
    Level.BOTTOM: "low",
}

_IN_REACH_M = 0.5
_MID_M = 2.0


@dataclass(frozen=True)
class Announcement:
    track_id: str
    text: str
    distance_m: float


def format_distance(distance_m: float) -> str:
    """Spoken distance: centimeters under one meter, otherwise meters to 0.1."""
    if distance_m < 1.0:
        return f"{int(round(distance_m * 100))} centimeters"
    return f"{distance_m:.1f} meters"


def describe_position(zone: Zone, level: Level | None = None) -> str:
    phrase = _ZONE_PHRASES[zone]
    height = _LEVEL_PHRASES.get(level, "") if level is not None else ""
    if not height:
        return phrase
    if zone is Zone.CENTER:
        return f"{phrase}, {height}"
    return f"{height} {phrase}"


def describe(snapshot: TrackSnapshot) -> str:
    """Phrase a confirmed track by distance band."""
    position = describe_position(snapshot.zone, snapshot.level)
    distance = snapshot.distance_m
    if distance < _IN_REACH_M:
        return f"{snapshot.label} within reach, {position}"
    if distance < _MID_M:
        return f"{snapshot.label} {position}, {format_distance(distance)} away"
    return f"{snapshot.label} {position}, about {int(round(distance))} meters away"


def summarize(snapshots: list[TrackSnapshot]) -> str:
    if not snapshots:
        return "No objects detected"
    noun = "object" if len(snapshots) == 1 else "objects"
    labels = ", ".join(s.label for s in snapshots)
    return f"{len(snapshots)} {noun} detected: {labels}"


class AnnouncementGate:
    """Per-track cooldown bookkeeping.

    Args:
        cooldown_ms: Minimum time between two announcements of the same track.
        actionable_distance_m: Only tracks at or inside this range are announced.
        nearest_only: Consider only the nearest eligible track each frame.
    """

    def __init__(
        self,
        cooldown_ms: float = 3000.0,
        actionable_distance_m: float = 3.0,
        nearest_only: bool = False,
    ) -> None:
        self._cooldown_ms = cooldown_ms
        self._actionable_m = actionable_distance_m
        self._nearest_only = nearest_only
        # track_id → timestamp (ms) of the last announcement
        self._last_announced: dict[str, float] = {}

    def last_announced(self, track_id: str) -> float | None:
        return self._last_announced.get(track_id)

    def should_announce(self, track_id: str, now_ms: float) -> bool:
        last = self._last_announced.get(track_id)
        return last is None or now_ms - last >= self._cooldown_ms

    def evaluate(self, ranked: list[TrackSnapshot], now_ms: float) -> list[Announcement]:
        """Return announcements due now and record them.

        Args:
            ranked: Confirmed snapshots, nearest first.
            now_ms: Frame timestamp in milliseconds.
        """
        eligible = [s for s in ranked if s.distance_m <= self._actionable_m]
        if self._nearest_only:
            eligible = eligible[:1]

        announcements: list[Announcement] = []
        for snapshot in eligible:
            if not self.should_announce(snapshot.track_id, now_ms):
                continue
            self._last_announced[snapshot.track_id] = now_ms
            text = describe(snapshot)
            log.debug(
                "announcement_due",
                track_id=snapshot.track_id,
                distance_m=round(snapshot.distance_m, 2),
                text=text,
            )
            announcements.append(
                Announcement(track_id=snapshot.track_id, text=text, distance_m=snapshot.distance_m)
            )
        return announcements

    def forget(self, track_ids: Iterable[str]) -> None:
        """Drop cooldown records for tracks that no longer exist."""
        for track_id in track_ids:
            self._last_announced.pop(track_id, None)

    def reset(self) -> None:
        self._last_announced.clear()
