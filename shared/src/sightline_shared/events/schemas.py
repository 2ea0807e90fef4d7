"""Pydantic v2 event schemas for all Redis Streams messages.

Stream naming convention: {domain}:{camera_id}
  frames:cam-01          — compressed frames from the external camera feed
  objects:cam-01         — confirmed, ranked objects for each processed frame
  announcements:cam-01   — spoken descriptions for the TTS consumer
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Camera feed → Assist ──────────────────────────────────────────────────────

class FrameMessage(_FrozenModel):
    """A single compressed video frame.

    Stream: frames:{camera_id}
    Resolution may change between frames (device rotation, camera switch).
    """

    camera_id: str
    timestamp_ns: int = Field(description="Monotonic nanosecond timestamp")
    frame_seq: int = Field(description="Monotonically increasing frame counter per camera")
    jpeg_b64: str = Field(description="Base64-encoded JPEG bytes")
    width: int
    height: int


# ── Assist → Rendering / Voice ────────────────────────────────────────────────

class PixelBox(_FrozenModel):
    """Axis-aligned box in pixels of the frame it was reported against."""

    x: float
    y: float
    width: float
    height: float


class TrackedObject(_FrozenModel):
    """One confirmed object, smoothed across frames."""

    track_id: str = Field(description="Opaque identifier, stable for the object's lifetime")
    label: str
    confidence: float = Field(description="Confidence of the most recent matching detection")
    box: PixelBox = Field(description="Smoothed bounding box")
    distance_m: float = Field(description="Smoothed distance estimate in meters")
    zone: str = Field(description="'left' | 'center' | 'right'")
    level: str | None = Field(
        default=None,
        description="'top' | 'middle' | 'bottom' when vertical zones are enabled",
    )


class TrackedObjectsEvent(_FrozenModel):
    """Ranked confirmed objects for one processed frame, nearest first.

    Stream: objects:{camera_id}
    """

    camera_id: str
    timestamp_ns: int
    frame_seq: int
    objects: list[TrackedObject] = Field(default_factory=list)
    summary: str = Field(description="Short spoken-style summary, e.g. '2 objects detected: cup, bottle'")


class AnnouncementEvent(_FrozenModel):
    """A description the voice collaborator should speak now.

    Stream: announcements:{camera_id}
    """

    camera_id: str
    track_id: str
    text: str
    distance_m: float
    timestamp_ns: int
