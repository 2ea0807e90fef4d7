#!/usr/bin/env python3
"""Run the assist pipeline over a video file.

Prints every announcement with its video timestamp and, optionally, writes
an annotated copy with confirmed objects boxed and labelled by distance.
Timestamps come from the frame index and the file's FPS, so results are
reproducible run to run.

Usage:
    python scripts/run_video.py input.mp4
    python scripts/run_video.py input.mp4 annotated.mp4 --exclude person,dog

    # Or show live (requires display):
    python scripts/run_video.py input.mp4 --show
"""
from __future__ import annotations

import argparse
import dataclasses
import sys
import time
from pathlib import Path

import cv2
import numpy as np

from sightline_shared.logging import configure_logging

from assist.announcer import format_distance, summarize
from assist.config import AssistConfig
from assist.pipeline import FramePipeline
from assist.ranker import TrackSnapshot

_COLORS = [
    (255, 0, 0), (0, 255, 0), (0, 0, 255),
    (255, 165, 0), (128, 0, 128), (0, 255, 255),
]


def _color_for_track(track_id: str) -> tuple[int, int, int]:
    return _COLORS[sum(track_id.encode()) % len(_COLORS)]


def draw_snapshot(frame: np.ndarray, snapshot: TrackSnapshot) -> None:
    """Draw a confirmed object's smoothed box and caption on frame (in-place)."""
    color = _color_for_track(snapshot.track_id)
    box = snapshot.box
    x1, y1 = int(box.x), int(box.y)
    x2, y2 = int(box.x + box.width), int(box.y + box.height)
    cv2.rectangle(frame, (x1, y1), (x2, y2), color, 2)
    caption = f"{snapshot.label} {format_distance(snapshot.distance_m)} ({snapshot.zone.value})"
    cv2.putText(
        frame, caption, (x1, max(16, y1 - 8)),
        cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2, cv2.LINE_AA
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the assist pipeline on a video")
    parser.add_argument("input", help="Input video file path")
    parser.add_argument("output", nargs="?", help="Output annotated video path")
    parser.add_argument("--show", action="store_true", help="Display frames live")
    parser.add_argument(
        "--model", default="yolo11n.pt", help="YOLO detection model (default: yolo11n.pt)"
    )
    parser.add_argument("--conf", type=float, default=0.6, help="Pipeline confidence threshold")
    parser.add_argument("--exclude", default="", help="Comma-separated labels to ignore")
    parser.add_argument("--min-frames", type=int, default=5, help="Frames before a track confirms")
    parser.add_argument("--vertical", action="store_true", help="Add top/middle/bottom zones")
    args = parser.parse_args()

    from assist.detector import Detector

    if not Path(args.input).exists():
        print(f"Error: input file not found: {args.input}", file=sys.stderr)
        sys.exit(1)

    configure_logging("console", "WARNING")

    config = dataclasses.replace(
        AssistConfig(),
        yolo_model=args.model,
        confidence_threshold=args.conf,
        excluded_labels=frozenset(
            label.strip().lower() for label in args.exclude.split(",") if label.strip()
        ),
        min_stable_frames=args.min_frames,
        vertical_zones=args.vertical,
    )

    print(f"Loading model: {config.yolo_model}")
    detector = Detector(model_name=config.yolo_model, confidence=config.detector_confidence)
    pipeline = FramePipeline(config)

    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        print(f"Error: cannot open video: {args.input}", file=sys.stderr)
        sys.exit(1)

    fps = cap.get(cv2.CAP_PROP_FPS) or 30
    width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    total = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))

    writer = None
    if args.output:
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        writer = cv2.VideoWriter(args.output, fourcc, fps, (width, height))

    print(f"Input:  {args.input} ({width}x{height} @ {fps:.1f} fps, {total} frames)")

    frame_idx = 0
    announced = 0
    t_start = time.monotonic()

    try:
        while True:
            ok, frame = cap.read()
            if not ok:
                break

            now_ms = frame_idx * 1000.0 / fps
            try:
                detections = detector.detect(frame)
            except Exception as exc:
                print(f"  frame {frame_idx}: detector failed ({exc}); treating as empty")
                detections = []

            h, w = frame.shape[:2]
            result = pipeline.tick(detections, (w, h), now_ms)

            for announcement in result.announcements:
                announced += 1
                print(f"[{now_ms / 1000.0:7.2f}s] {announcement.text}")

            if writer or args.show:
                for snapshot in result.tracks:
                    draw_snapshot(frame, snapshot)
                cv2.putText(
                    frame, summarize(result.tracks), (10, 28),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2, cv2.LINE_AA
                )

            if writer:
                writer.write(frame)

            if args.show:
                cv2.imshow("Sightline", frame)
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    break

            frame_idx += 1
            if frame_idx % 30 == 0:
                elapsed = time.monotonic() - t_start
                print(f"  {frame_idx}/{total} frames ({frame_idx / elapsed:.1f} fps processing)")

    finally:
        cap.release()
        if writer:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()

    elapsed = time.monotonic() - t_start
    print(f"\nDone. {frame_idx} frames in {elapsed:.1f}s, {announced} announcements")
    if args.output:
        print(f"Annotated video saved to: {args.output}")


if __name__ == "__main__":
    main()
