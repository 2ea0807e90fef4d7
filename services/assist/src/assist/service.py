"""Assist service loop: consume frames → detect → track → publish.

For each camera:
1. XREADGROUP from `frames:{camera_id}` (consumer group: assist-workers)
2. Decode FrameMessage → numpy array
3. Run AssistSession (Detector → FramePipeline)
4. Publish a TrackedObjectsEvent to `objects:{camera_id}` and one
   AnnouncementEvent per announcement to `announcements:{camera_id}`
5. XACK the processed message
"""
from __future__ import annotations

import asyncio
import base64
import time

import cv2
import numpy as np

import redis.asyncio as aioredis

from sightline_shared.events.publisher import (
    GROUP_ASSIST,
    ack,
    announcements_stream,
    ensure_consumer_group,
    frames_stream,
    ns_to_ms,
    objects_stream,
    publish,
    read_group,
)
from sightline_shared.events.schemas import (
    AnnouncementEvent,
    FrameMessage,
    PixelBox,
    TrackedObject,
    TrackedObjectsEvent,
)
from sightline_shared.logging import bind_camera, get_logger

from assist.announcer import summarize
from assist.config import AssistConfig
from assist.pipeline import FrameResult
from assist.ranker import TrackSnapshot
from assist.session import AssistSession

log = get_logger(__name__)


def decode_frame(msg_data: dict) -> tuple[np.ndarray, FrameMessage]:
    """Parse a Redis Stream message dict into a BGR numpy frame + FrameMessage."""
    raw_json = msg_data.get("data", "")
    event = FrameMessage.model_validate_json(raw_json)
    jpeg_bytes = base64.b64decode(event.jpeg_b64)
    frame = cv2.imdecode(np.frombuffer(jpeg_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise ValueError(f"undecodable JPEG in frame {event.frame_seq}")
    return frame, event


def to_tracked_object(snapshot: TrackSnapshot) -> TrackedObject:
    return TrackedObject(
        track_id=snapshot.track_id,
        label=snapshot.label,
        confidence=round(snapshot.confidence, 3),
        box=PixelBox(
            x=snapshot.box.x,
            y=snapshot.box.y,
            width=snapshot.box.width,
            height=snapshot.box.height,
        ),
        distance_m=round(snapshot.distance_m, 2),
        zone=snapshot.zone.value,
        level=snapshot.level.value if snapshot.level is not None else None,
    )


class AssistService:
    """Runs the assist session for a single camera's frame stream.

    Args:
        camera_id: Camera identifier (used for stream names).
        config: Assist configuration.
        session: Session owning this camera's detector and track state.
    """

    def __init__(
        self,
        camera_id: str,
        config: AssistConfig,
        session: AssistSession,
    ) -> None:
        self._camera_id = camera_id
        self._cfg = config
        self._session = session
        self._in_stream = frames_stream(camera_id)
        self._objects_stream = objects_stream(camera_id)
        self._announce_stream = announcements_stream(camera_id)
        self._frame_count = 0
        self._t_start = time.monotonic()

    async def run(self, redis: aioredis.Redis) -> None:
        """Main loop — processes frames in arrival order until cancelled."""
        bind_camera(self._camera_id)
        await ensure_consumer_group(redis, self._in_stream, GROUP_ASSIST)

        log.info(
            "assist_service_loop_starting",
            device=self._cfg.device,
            in_stream=self._in_stream,
            out_streams=[self._objects_stream, self._announce_stream],
        )

        self._session.start()
        try:
            while True:
                messages = await read_group(
                    redis,
                    self._in_stream,
                    GROUP_ASSIST,
                    self._cfg.consumer_name,
                    count=self._cfg.read_batch,
                    block_ms=self._cfg.block_ms,
                )

                for msg_id, msg_data in messages:
                    try:
                        await self.process_message(redis, msg_id, msg_data)
                    except Exception as exc:
                        log.error(
                            "assist_frame_error",
                            msg_id=msg_id,
                            error=str(exc),
                        )
                        # Still ACK to avoid re-processing corrupted frames
                        await ack(redis, self._in_stream, GROUP_ASSIST, msg_id)
        finally:
            self._session.stop()

    async def process_message(
        self, redis: aioredis.Redis, msg_id: str, msg_data: dict
    ) -> FrameResult | None:
        loop = asyncio.get_running_loop()

        # Decode in executor to avoid blocking the event loop
        frame, event = await loop.run_in_executor(None, decode_frame, msg_data)

        result = await self._session.process_frame(frame, ns_to_ms(event.timestamp_ns))
        if result is not None:
            await self._publish(redis, event, result)

        await ack(redis, self._in_stream, GROUP_ASSIST, msg_id)

        self._frame_count += 1
        if self._frame_count % self._cfg.log_interval == 0:
            elapsed = time.monotonic() - self._t_start
            fps = self._frame_count / elapsed if elapsed > 0 else 0
            log.info(
                "assist_throughput",
                frames=self._frame_count,
                fps=round(fps, 1),
                confirmed_this_frame=len(result.tracks) if result else 0,
            )
        return result

    async def _publish(
        self, redis: aioredis.Redis, event: FrameMessage, result: FrameResult
    ) -> None:
        objects_event = TrackedObjectsEvent(
            camera_id=self._camera_id,
            timestamp_ns=event.timestamp_ns,
            frame_seq=event.frame_seq,
            objects=[to_tracked_object(s) for s in result.tracks],
            summary=summarize(result.tracks),
        )
        await publish(redis, self._objects_stream, objects_event, maxlen=100)

        for announcement in result.announcements:
            await publish(
                redis,
                self._announce_stream,
                AnnouncementEvent(
                    camera_id=self._camera_id,
                    track_id=announcement.track_id,
                    text=announcement.text,
                    distance_m=round(announcement.distance_m, 2),
                    timestamp_ns=event.timestamp_ns,
                ),
            )
            log.info(
                "announcement_published",
                track_id=announcement.track_id,
                text=announcement.text,
            )
