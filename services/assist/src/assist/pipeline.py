"""Per-frame pipeline: candidates → overlap resolution → tracking → ranking → announcements.

One FramePipeline holds all state for one session. tick() is synchronous and
must be called with frames in arrival order from a single caller.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from sightline_shared.logging import get_logger

from assist.announcer import Announcement, AnnouncementGate
from assist.candidates import CandidateBuilder, RawDetection
from assist.config import AssistConfig
from assist.overlap import suppress_overlaps
from assist.ranker import TrackSnapshot, rank_confirmed
from assist.reference_heights import ReferenceHeights
from assist.tracker import IdentityTracker

log = get_logger(__name__)


@dataclass
class FrameResult:
    """Output of one tick."""

    tracks: list[TrackSnapshot] = field(default_factory=list)
    announcements: list[Announcement] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


class FramePipeline:
    """Runs the five pipeline stages for one frame at a time.

    Args:
        config: Pipeline configuration.
        heights: Reference heights; loaded from config.reference_heights_yaml
            when omitted.
    """

    def __init__(
        self,
        config: AssistConfig,
        heights: ReferenceHeights | None = None,
    ) -> None:
        self._cfg = config
        if heights is None:
            heights = ReferenceHeights.from_yaml(config.reference_heights_yaml)
        self._builder = CandidateBuilder(config, heights)
        self._tracker = IdentityTracker(
            match_iou=config.match_iou,
            smoothing_alpha=config.smoothing_alpha,
            stale_after_ms=config.stale_after_ms,
        )
        self._gate = AnnouncementGate(
            cooldown_ms=config.cooldown_ms,
            actionable_distance_m=config.actionable_distance_m,
            nearest_only=config.announce_nearest_only,
        )

    @property
    def tracker(self) -> IdentityTracker:
        return self._tracker

    @property
    def gate(self) -> AnnouncementGate:
        return self._gate

    def tick(
        self,
        detections: Iterable[RawDetection | Mapping[str, Any]],
        frame_size: tuple[int, int],
        now_ms: float,
    ) -> FrameResult:
        """Process one frame's detections.

        Args:
            detections: Raw detector output for this frame (may be empty).
            frame_size: (width, height) of this frame in pixels.
            now_ms: Frame timestamp in milliseconds (monotonic).
        """
        width, height = frame_size
        if width <= 0 or height <= 0:
            # No zones without a frame; treat as empty so tracks still age out
            log.warning("degenerate_frame_size", width=width, height=height)
            removed = self._tracker.update([], now_ms)
            if removed:
                self._gate.forget(removed)
            return FrameResult(removed=removed)

        candidates = self._builder.build(detections, frame_size)
        candidates = suppress_overlaps(
            candidates,
            iou_threshold=self._cfg.suppression_iou,
            across_labels=self._cfg.suppress_across_labels,
        )

        removed = self._tracker.update(candidates, now_ms)
        if removed:
            self._gate.forget(removed)

        ranked = rank_confirmed(
            self._tracker.tracks,
            frame_size,
            min_stable_frames=self._cfg.min_stable_frames,
            max_distance_m=self._cfg.max_report_distance_m,
            max_tracks=self._cfg.max_tracks,
            vertical=self._cfg.vertical_zones,
        )
        announcements = self._gate.evaluate(ranked, now_ms)

        return FrameResult(tracks=ranked, announcements=announcements, removed=removed)

    def reset(self) -> None:
        """Drop all track and announcement state so the next tick starts cold."""
        self._tracker.reset()
        self._gate.reset()
        log.debug("pipeline_reset")
