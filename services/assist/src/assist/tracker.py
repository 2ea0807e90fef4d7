"""Identity tracker — associates candidates with persistent tracks across frames.

Matching is greedy per candidate: among live tracks with the same label that
have not already been matched this frame, the one whose *smoothed* box has
the highest IoU above the match threshold wins (ties go to the older track).
Matched tracks are smoothed with an exponential moving average; unmatched
candidates open new tracks; tracks unseen for longer than the staleness
window are deleted.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass

from sightline_shared.logging import get_logger

from assist.candidates import Candidate
from assist.geometry import Box, blend, ema, iou

log = get_logger(__name__)


@dataclass
class Track:
    track_id: str
    label: str
    confidence: float
    smoothed_box: Box
    smoothed_distance_m: float
    first_seen_ms: float
    last_seen_ms: float
    consecutive_frames: int = 1


def _new_track_id(label: str) -> str:
    return f"{label.replace(' ', '_')}-{uuid.uuid4().hex[:12]}"


class IdentityTracker:
    """Owns the live track table for one session.

    Args:
        match_iou: Minimum IoU (exclusive) between a candidate and a track's
            smoothed box for them to be considered the same object.
        smoothing_alpha: EMA weight given to the newest observation.
        stale_after_ms: Tracks unmatched for longer than this are deleted.
    """

    def __init__(
        self,
        match_iou: float = 0.2,
        smoothing_alpha: float = 0.3,
        stale_after_ms: float = 600.0,
    ) -> None:
        self._match_iou = match_iou
        self._alpha = smoothing_alpha
        self._stale_after_ms = stale_after_ms
        # track_id → Track, in creation order
        self._tracks: dict[str, Track] = {}

    @property
    def tracks(self) -> list[Track]:
        """Live tracks in creation order. Callers must treat them as read-only."""
        return list(self._tracks.values())

    def get(self, track_id: str) -> Track | None:
        return self._tracks.get(track_id)

    def __len__(self) -> int:
        return len(self._tracks)

    def update(self, candidates: list[Candidate], now_ms: float) -> list[str]:
        """Fold one frame's candidates into the track table.

        Args:
            candidates: The frame's candidates after overlap resolution.
            now_ms: Frame timestamp in milliseconds (monotonic).

        Returns:
            IDs of tracks deleted by the staleness sweep this frame.
        """
        matched: set[str] = set()

        for cand in candidates:
            track = self._best_match(cand, matched)
            if track is None:
                track = self._create(cand, now_ms)
            else:
                self._apply(track, cand, now_ms)
            matched.add(track.track_id)

        return self._sweep(now_ms)

    def reset(self) -> None:
        if self._tracks:
            log.debug("tracker_reset", dropped=len(self._tracks))
        self._tracks.clear()

    def _best_match(self, cand: Candidate, matched: set[str]) -> Track | None:
        best: Track | None = None
        best_iou = self._match_iou
        for track in self._tracks.values():
            if track.label != cand.label or track.track_id in matched:
                continue
            overlap = iou(cand.box, track.smoothed_box)
            if overlap > best_iou:
                best, best_iou = track, overlap
        return best

    def _apply(self, track: Track, cand: Candidate, now_ms: float) -> None:
        track.consecutive_frames += 1
        track.last_seen_ms = now_ms
        track.confidence = cand.confidence
        track.smoothed_box = blend(cand.box, track.smoothed_box, self._alpha)
        track.smoothed_distance_m = ema(cand.distance_m, track.smoothed_distance_m, self._alpha)

    def _create(self, cand: Candidate, now_ms: float) -> Track:
        track = Track(
            track_id=_new_track_id(cand.label),
            label=cand.label,
            confidence=cand.confidence,
            smoothed_box=cand.box,
            smoothed_distance_m=cand.distance_m,
            first_seen_ms=now_ms,
            last_seen_ms=now_ms,
        )
        self._tracks[track.track_id] = track
        log.debug(
            "track_created",
            track_id=track.track_id,
            label=track.label,
            distance_m=round(track.smoothed_distance_m, 2),
        )
        return track

    def _sweep(self, now_ms: float) -> list[str]:
        stale = [
            track_id
            for track_id, track in self._tracks.items()
            if now_ms - track.last_seen_ms > self._stale_after_ms
        ]
        for track_id in stale:
            track = self._tracks.pop(track_id)
            log.debug(
                "track_expired",
                track_id=track_id,
                label=track.label,
                frames=track.consecutive_frames,
                lifetime_ms=round(track.last_seen_ms - track.first_seen_ms),
            )
        return stale
