"""Assist service configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class AssistConfig:
    """Tunables for the detection-to-track pipeline and its service loop.

    Thresholds and cooldowns are tuning defaults, not protocol constants.
    """

    camera_ids: list[str] = field(default_factory=list)
    redis_url: str = "redis://localhost:6379/0"

    # Detector
    yolo_model: str = "yolo11n.pt"
    device: str = "cpu"  # "cpu", "cuda", "mps"
    detector_confidence: float = 0.25

    # Candidate building
    confidence_threshold: float = 0.6
    excluded_labels: frozenset[str] = frozenset()
    reference_heights_yaml: str = str(Path(__file__).parent / "data" / "reference_heights.yaml")
    focal_constant: float = 600.0
    distance_min_m: float = 0.3
    distance_max_m: float = 10.0
    vertical_zones: bool = False

    # Overlap resolution
    suppression_iou: float = 0.3
    suppress_across_labels: bool = True

    # Tracking
    match_iou: float = 0.2
    smoothing_alpha: float = 0.3
    stale_after_ms: float = 600.0

    # Stability / ranking
    min_stable_frames: int = 5
    max_report_distance_m: float = 5.0
    max_tracks: int = 5

    # Announcements
    actionable_distance_m: float = 3.0
    announce_nearest_only: bool = False
    cooldown_ms: float = 3000.0

    # Driver
    detect_every_n_ticks: int = 1

    # Stream settings
    consumer_group: str = "assist-workers"
    consumer_name: str = "assist-0"
    read_batch: int = 1
    block_ms: int = 500

    # Throughput logging interval (frames)
    log_interval: int = 100

    def __post_init__(self) -> None:
        if not 0.0 < self.smoothing_alpha <= 1.0:
            raise ValueError(f"smoothing_alpha must be in (0, 1], got {self.smoothing_alpha}")
        if self.cooldown_ms < 0 or self.stale_after_ms < 0:
            raise ValueError("cooldown_ms and stale_after_ms must be non-negative")
        if not 0.0 < self.distance_min_m <= self.distance_max_m:
            raise ValueError(
                f"invalid distance clamp [{self.distance_min_m}, {self.distance_max_m}]"
            )
        if self.focal_constant <= 0:
            raise ValueError("focal_constant must be positive")
        if self.min_stable_frames < 1 or self.max_tracks < 1 or self.detect_every_n_ticks < 1:
            raise ValueError("min_stable_frames, max_tracks and detect_every_n_ticks must be >= 1")
        for name in ("confidence_threshold", "suppression_iou", "match_iou"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")


def build_config(settings) -> AssistConfig:
    """Build AssistConfig from shared Settings."""
    import torch

    # Auto-detect best available device
    if os.environ.get("ASSIST_DEVICE"):
        device = os.environ["ASSIST_DEVICE"]
    elif torch.cuda.is_available():
        device = "cuda"
    elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        device = "mps"
    else:
        device = "cpu"

    consumer_name = os.environ.get("ASSIST_CONSUMER_NAME", "assist-0")

    return AssistConfig(
        camera_ids=settings.camera_id_list,
        redis_url=settings.redis_url,
        yolo_model=settings.yolo_model,
        device=device,
        detector_confidence=settings.detector_confidence,
        confidence_threshold=settings.assist_confidence_threshold,
        excluded_labels=settings.excluded_label_set,
        vertical_zones=settings.assist_vertical_zones,
        min_stable_frames=settings.assist_min_stable_frames,
        max_report_distance_m=settings.assist_max_report_distance_m,
        actionable_distance_m=settings.assist_actionable_distance_m,
        cooldown_ms=settings.assist_cooldown_ms,
        detect_every_n_ticks=settings.assist_detect_every_n_ticks,
        consumer_name=consumer_name,
    )
