"""Assist session — drives the detector and the frame pipeline for one camera.

The detector is the only slow, blocking step, so it runs in the default
executor. At most one detection is in flight per session: frames that arrive
while one is pending are skipped rather than queued. Stopping the session
halts processing and clears every track and announcement record.
"""
from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping, Protocol

import numpy as np

from sightline_shared.logging import get_logger

from assist.candidates import RawDetection
from assist.pipeline import FramePipeline, FrameResult

log = get_logger(__name__)


class SupportsDetect(Protocol):
    def detect(self, frame: np.ndarray) -> Iterable[RawDetection | Mapping[str, Any]]: ...


class AssistSession:
    """Single-writer driver around a FramePipeline.

    Args:
        pipeline: Pipeline holding this session's track state.
        detector: Anything with a blocking detect(frame) method.
        detect_every_n_ticks: Run detection on every Nth frame only.
    """

    def __init__(
        self,
        pipeline: FramePipeline,
        detector: SupportsDetect,
        detect_every_n_ticks: int = 1,
    ) -> None:
        self._pipeline = pipeline
        self._detector = detector
        self._every_n = max(1, detect_every_n_ticks)
        self._running = False
        self._in_flight = False
        self._ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def detection_in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._ticks = 0
        log.info("assist_session_started")

    def stop(self) -> None:
        """Halt processing and forget all tracks so the next start is cold."""
        self._running = False
        self._pipeline.reset()
        log.info("assist_session_stopped")

    async def process_frame(self, frame: np.ndarray, now_ms: float) -> FrameResult | None:
        """Detect, track and gate announcements for one frame.

        Args:
            frame: HxWx3 image; its shape gives the current frame size.
            now_ms: Frame timestamp in milliseconds (monotonic).

        Returns:
            The frame's result, or None if the frame was not processed
            (session stopped, throttled, or a detection already pending).
        """
        if not self._running:
            return None
        if self._in_flight:
            log.debug("frame_skipped", reason="detection_in_flight")
            return None

        self._ticks += 1
        if (self._ticks - 1) % self._every_n != 0:
            return None

        self._in_flight = True
        try:
            detections = await self._detect(frame)
        finally:
            self._in_flight = False

        # Stopped while the detector was running: discard, state is already cleared
        if not self._running:
            return None

        height, width = frame.shape[:2]
        return self._pipeline.tick(detections, (width, height), now_ms)

    async def _detect(self, frame: np.ndarray) -> list:
        loop = asyncio.get_running_loop()
        try:
            return list(await loop.run_in_executor(None, self._detector.detect, frame))
        except Exception as exc:
            # Treated as an empty frame; tracks keep ageing toward expiry
            log.warning("detector_failed", error=str(exc), error_type=type(exc).__name__)
            return []
