"""Assist service entry point."""
from __future__ import annotations

import asyncio
import signal

import redis.asyncio as aioredis

from sightline_shared.logging import configure_logging, get_logger
from sightline_shared.settings import settings

from assist.config import build_config
from assist.detector import Detector
from assist.pipeline import FramePipeline
from assist.reference_heights import ReferenceHeights
from assist.service import AssistService
from assist.session import AssistSession

log = get_logger(__name__)


async def run() -> None:
    configure_logging(settings.log_format, settings.log_level)
    config = build_config(settings)

    log.info(
        "assist_service_starting",
        cameras=config.camera_ids,
        device=config.device,
        model=config.yolo_model,
    )

    # Model and height table are loaded once and shared; track state is per camera
    detector = Detector(
        model_name=config.yolo_model,
        device=config.device,
        confidence=config.detector_confidence,
    )
    heights = ReferenceHeights.from_yaml(config.reference_heights_yaml)

    redis = aioredis.from_url(config.redis_url, decode_responses=False)

    services = [
        AssistService(
            cam_id,
            config,
            AssistSession(
                FramePipeline(config, heights),
                detector,
                detect_every_n_ticks=config.detect_every_n_ticks,
            ),
        )
        for cam_id in config.camera_ids
    ]

    loop = asyncio.get_running_loop()

    def _shutdown(sig, frame):
        log.info("shutdown_signal_received", signal=sig)
        for task in asyncio.all_tasks(loop):
            task.cancel()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    try:
        await asyncio.gather(*[s.run(redis) for s in services])
    except asyncio.CancelledError:
        pass
    finally:
        await redis.aclose()
        log.info("assist_service_stopped")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
