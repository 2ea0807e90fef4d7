"""End-to-end tests for FramePipeline, AssistSession and the stream service."""
from __future__ import annotations

import asyncio
import base64
import dataclasses
import threading
from pathlib import Path
from unittest.mock import AsyncMock, patch

import cv2
import numpy as np
import pytest

from assist.candidates import RawDetection
from assist.config import AssistConfig
from assist.geometry import Zone
from assist.pipeline import FramePipeline
from assist.reference_heights import ReferenceHeights
from assist.service import AssistService, decode_frame
from assist.session import AssistSession
from sightline_shared.events.schemas import AnnouncementEvent, FrameMessage, TrackedObjectsEvent

_YAML = Path(__file__).parent.parent / "src" / "assist" / "data" / "reference_heights.yaml"
_BOTTLE = RawDetection("bottle", 0.8, (100, 100, 50, 200))


@pytest.fixture()
def heights() -> ReferenceHeights:
    return ReferenceHeights.from_yaml(_YAML)


@pytest.fixture()
def pipeline(heights) -> FramePipeline:
    return FramePipeline(AssistConfig(min_stable_frames=5), heights)


class FakeDetector:
    """Returns a fixed list of detections, or raises when told to."""

    def __init__(self, detections=None) -> None:
        self.detections = list(detections or [])
        self.fail = False
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        if self.fail:
            raise RuntimeError("model exploded")
        return list(self.detections)


def _frame(width: int = 640, height: int = 480) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


# ── FramePipeline scenarios ───────────────────────────────────────────────────

def test_bottle_confirms_on_fifth_frame_and_announces_once(pipeline):
    results = [pipeline.tick([_BOTTLE], (640, 480), now_ms=i * 30) for i in range(5)]

    for result in results[:4]:
        assert result.tracks == []
        assert result.announcements == []

    confirmed = results[4]
    (snapshot,) = confirmed.tracks
    assert snapshot.label == "bottle"
    assert snapshot.distance_m == pytest.approx(0.75)
    assert snapshot.zone is Zone.LEFT
    (announcement,) = confirmed.announcements
    assert announcement.track_id == snapshot.track_id
    assert announcement.text == "bottle on your left, 75 centimeters away"

    # Confirmed at 120 ms: silent until 3120 ms
    now = 150
    while now < 3120:
        assert pipeline.tick([_BOTTLE], (640, 480), now_ms=now).announcements == []
        now += 30
    again = pipeline.tick([_BOTTLE], (640, 480), now_ms=3120)
    assert [a.track_id for a in again.announcements] == [snapshot.track_id]


def test_object_moving_left_to_right_keeps_identity(pipeline):
    frame_size = (1000, 500)
    ids = set()
    zones = []
    announcements = []
    now = 0

    # Cup centered at x=100 (normalized 0.1) slides to x=900 (0.9), 10 px per frame
    for center in list(range(100, 901, 10)) + [900] * 5:
        det = RawDetection("cup", 0.9, (center - 50, 200, 100, 100))
        result = pipeline.tick([det], frame_size, now_ms=now)
        for snap in result.tracks:
            ids.add(snap.track_id)
            zones.append(snap.zone)
        announcements.extend(result.announcements)
        now += 30

    assert len(ids) == 1
    assert zones[0] is Zone.LEFT
    assert zones[-1] is Zone.RIGHT
    assert len(announcements) == 1


def test_removed_track_clears_announcement_record(pipeline):
    for i in range(5):
        result = pipeline.tick([_BOTTLE], (640, 480), now_ms=i * 30)
    track_id = result.tracks[0].track_id
    assert pipeline.gate.last_announced(track_id) == 120

    result = pipeline.tick([], (640, 480), now_ms=120 + 601)
    assert result.removed == [track_id]
    assert pipeline.gate.last_announced(track_id) is None


def test_empty_frames_are_not_errors(pipeline):
    result = pipeline.tick([], (640, 480), now_ms=0)
    assert result.tracks == []
    assert result.announcements == []
    assert result.removed == []


def test_degenerate_frame_size_is_an_empty_frame(pipeline):
    pipeline.tick([_BOTTLE], (640, 480), now_ms=0)

    result = pipeline.tick([_BOTTLE], (0, 480), now_ms=30)
    assert result.tracks == []
    assert result.announcements == []
    assert len(pipeline.tracker) == 1

    # Tracks still age out while frames carry no size
    result = pipeline.tick([_BOTTLE], (640, 0), now_ms=601)
    assert len(result.removed) == 1
    assert len(pipeline.tracker) == 0


def test_far_objects_are_tracked_but_not_reported(heights):
    pipeline = FramePipeline(AssistConfig(min_stable_frames=1, max_report_distance_m=5.0), heights)
    # person 1.7 m * 600 / 150 px = 6.8 m
    result = pipeline.tick([RawDetection("person", 0.9, (300, 100, 60, 150))], (640, 480), 0)
    assert result.tracks == []
    assert len(pipeline.tracker) == 1


def test_overlapping_duplicates_yield_one_track(heights):
    pipeline = FramePipeline(AssistConfig(min_stable_frames=1), heights)
    result = pipeline.tick(
        [
            RawDetection("bottle", 0.7, (100, 100, 50, 200)),
            RawDetection("bottle", 0.9, (104, 102, 50, 200)),
        ],
        (640, 480),
        now_ms=0,
    )
    (snapshot,) = result.tracks
    assert snapshot.confidence == 0.9


def test_reset_starts_cold(pipeline):
    for i in range(5):
        pipeline.tick([_BOTTLE], (640, 480), now_ms=i * 30)
    pipeline.reset()
    assert len(pipeline.tracker) == 0
    result = pipeline.tick([_BOTTLE], (640, 480), now_ms=200)
    assert result.tracks == []


# ── AssistSession ─────────────────────────────────────────────────────────────

def _session(pipeline, detector, every_n: int = 1, start: bool = True) -> AssistSession:
    session = AssistSession(pipeline, detector, detect_every_n_ticks=every_n)
    if start:
        session.start()
    return session


def test_session_ignores_frames_until_started(pipeline):
    detector = FakeDetector([_BOTTLE])
    session = _session(pipeline, detector, start=False)
    assert asyncio.run(session.process_frame(_frame(), 0)) is None
    assert detector.calls == 0


def test_session_runs_pipeline_with_frame_size(heights):
    pipeline = FramePipeline(AssistConfig(min_stable_frames=1), heights)
    session = _session(pipeline, FakeDetector([_BOTTLE]))
    result = asyncio.run(session.process_frame(_frame(640, 480), 0))
    assert result is not None
    assert result.tracks[0].zone is Zone.LEFT
    # Same pixel box on a narrow frame lands on the right
    result = asyncio.run(session.process_frame(_frame(160, 480), 30))
    assert result.tracks[0].zone is Zone.RIGHT


def test_session_detector_failure_counts_as_empty_frame(pipeline):
    detector = FakeDetector([_BOTTLE])
    session = _session(pipeline, detector)
    asyncio.run(session.process_frame(_frame(), 0))
    assert len(pipeline.tracker) == 1

    detector.fail = True
    result = asyncio.run(session.process_frame(_frame(), 601))
    assert result is not None
    assert result.tracks == []
    assert len(result.removed) == 1
    assert session.running


def test_session_skips_frames_while_detection_in_flight(pipeline):
    session = _session(pipeline, FakeDetector([_BOTTLE]))

    async def two_frames():
        return await asyncio.gather(
            session.process_frame(_frame(), 0),
            session.process_frame(_frame(), 1),
        )

    first, second = asyncio.run(two_frames())
    assert first is not None
    assert second is None
    assert not session.detection_in_flight


def test_session_throttles_detection(pipeline):
    detector = FakeDetector([_BOTTLE])
    session = _session(pipeline, detector, every_n=2)

    async def frames():
        return [await session.process_frame(_frame(), i * 30) for i in range(4)]

    results = asyncio.run(frames())
    assert [r is not None for r in results] == [True, False, True, False]
    assert detector.calls == 2


def test_session_stop_clears_state(pipeline):
    session = _session(pipeline, FakeDetector([_BOTTLE]))

    async def frames():
        for i in range(5):
            await session.process_frame(_frame(), i * 30)

    asyncio.run(frames())
    assert len(pipeline.tracker) == 1

    session.stop()
    assert len(pipeline.tracker) == 0
    assert not session.running
    assert asyncio.run(session.process_frame(_frame(), 200)) is None


class BlockingDetector(FakeDetector):
    """Holds detect() open until the test releases it."""

    def __init__(self, detections=None) -> None:
        super().__init__(detections)
        self.started = threading.Event()
        self.release = threading.Event()

    def detect(self, frame):
        self.started.set()
        self.release.wait(timeout=5)
        return super().detect(frame)


def test_session_stop_during_detection_discards_result(pipeline):
    pipeline.tick([_BOTTLE], (640, 480), now_ms=0)
    detector = BlockingDetector([_BOTTLE])
    session = _session(pipeline, detector)

    async def stop_mid_detection():
        task = asyncio.create_task(session.process_frame(_frame(), 30))
        await asyncio.get_running_loop().run_in_executor(None, detector.started.wait, 5)
        session.stop()
        detector.release.set()
        return await task

    result = asyncio.run(stop_mid_detection())
    assert result is None
    assert detector.calls == 1
    assert len(pipeline.tracker) == 0
    assert not session.detection_in_flight


# ── AssistService ─────────────────────────────────────────────────────────────

def _frame_message(seq: int = 0, timestamp_ns: int = 0) -> dict:
    ok, buf = cv2.imencode(".jpg", _frame())
    assert ok
    msg = FrameMessage(
        camera_id="cam-test",
        timestamp_ns=timestamp_ns,
        frame_seq=seq,
        jpeg_b64=base64.b64encode(buf.tobytes()).decode("ascii"),
        width=640,
        height=480,
    )
    return {"data": msg.model_dump_json()}


def test_decode_frame_round_trips_shape():
    frame, event = decode_frame(_frame_message(seq=7))
    assert frame.shape == (480, 640, 3)
    assert event.frame_seq == 7


def test_decode_frame_rejects_garbage():
    msg = FrameMessage(
        camera_id="cam-test",
        timestamp_ns=0,
        frame_seq=3,
        jpeg_b64=base64.b64encode(b"not a jpeg").decode("ascii"),
        width=640,
        height=480,
    )
    with pytest.raises(ValueError):
        decode_frame({"data": msg.model_dump_json()})


def test_service_publishes_objects_and_announcements(heights):
    config = AssistConfig(min_stable_frames=1)
    session = _session(FramePipeline(config, heights), FakeDetector([_BOTTLE]))
    service = AssistService("cam-test", config, session)
    redis = AsyncMock()

    with patch("assist.service.publish", new_callable=AsyncMock) as publish, patch(
        "assist.service.ack", new_callable=AsyncMock
    ) as ack:
        result = asyncio.run(service.process_message(redis, "1-0", _frame_message()))

    assert result is not None
    ack.assert_awaited_once_with(redis, "frames:cam-test", "assist-workers", "1-0")

    streams = [call.args[1] for call in publish.await_args_list]
    assert streams == ["objects:cam-test", "announcements:cam-test"]

    objects_event = publish.await_args_list[0].args[2]
    assert isinstance(objects_event, TrackedObjectsEvent)
    assert objects_event.objects[0].label == "bottle"
    assert objects_event.objects[0].zone == "left"
    assert objects_event.summary == "1 object detected: bottle"

    announcement = publish.await_args_list[1].args[2]
    assert isinstance(announcement, AnnouncementEvent)
    assert announcement.text == "bottle on your left, 75 centimeters away"


def test_service_skipped_frame_is_still_acked(heights):
    config = AssistConfig()
    session = _session(FramePipeline(config, heights), FakeDetector(), start=False)
    service = AssistService("cam-test", config, session)

    with patch("assist.service.publish", new_callable=AsyncMock) as publish, patch(
        "assist.service.ack", new_callable=AsyncMock
    ) as ack:
        result = asyncio.run(service.process_message(AsyncMock(), "2-0", _frame_message()))

    assert result is None
    publish.assert_not_awaited()
    ack.assert_awaited_once()


def test_config_is_replaceable_per_deployment():
    cfg = dataclasses.replace(AssistConfig(), confidence_threshold=0.4, cooldown_ms=2000.0)
    assert cfg.confidence_threshold == 0.4
    assert cfg.cooldown_ms == 2000.0
