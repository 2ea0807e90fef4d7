"""YOLO object detector producing RawDetection records.

Wraps ultralytics YOLO; boxes are returned as (x, y, width, height) in the
pixels of the frame passed in. Confidence filtering beyond the model's own
floor is left to the candidate builder.
"""
from __future__ import annotations

import numpy as np
from ultralytics import YOLO

from sightline_shared.logging import get_logger

from assist.candidates import RawDetection

log = get_logger(__name__)


def _parse_result(result, names: dict[int, str]) -> list[RawDetection]:
    """Parse a single YOLO result into RawDetection objects."""
    detections: list[RawDetection] = []

    if result.boxes is None or len(result.boxes) == 0:
        return detections

    boxes_xyxy = result.boxes.xyxy.cpu().numpy()
    confidences = result.boxes.conf.cpu().numpy()
    classes = result.boxes.cls.cpu().numpy().astype(int)

    for (x1, y1, x2, y2), conf, cls in zip(boxes_xyxy, confidences, classes):
        detections.append(
            RawDetection(
                label=str(names.get(int(cls), cls)),
                confidence=float(conf),
                box=(float(x1), float(y1), float(x2 - x1), float(y2 - y1)),
            )
        )
    return detections


class Detector:
    """Loads a YOLO detection model and runs it frame by frame.

    Args:
        model_name: Model filename/path (e.g. "yolo11n.pt").
            ultralytics auto-downloads if not found locally.
        device: Torch device string ("cpu", "cuda", "mps").
        confidence: Minimum confidence the model itself reports.
        iou: Model-internal NMS IoU threshold.
        max_det: Cap on detections per frame.
    """

    def __init__(
        self,
        model_name: str = "yolo11n.pt",
        device: str = "cpu",
        confidence: float = 0.25,
        iou: float = 0.7,
        max_det: int = 50,
    ) -> None:
        log.info("detector_loading", model=model_name, device=device)
        self._model = YOLO(model_name)
        self._device = device
        self._confidence = confidence
        self._iou = iou
        self._max_det = max_det
        names = self._model.names
        self._names: dict[int, str] = dict(names) if isinstance(names, dict) else dict(enumerate(names))
        log.info("detector_ready", model=model_name, device=device, classes=len(self._names))

    def detect(self, frame: np.ndarray) -> list[RawDetection]:
        """Run detection on a single BGR frame (OpenCV channel order).

        Args:
            frame: HxWx3 uint8 BGR numpy array.
        Returns:
            One RawDetection per detected object.
        """
        results = self._model.predict(
            frame,
            conf=self._confidence,
            iou=self._iou,
            max_det=self._max_det,
            device=self._device,
            verbose=False,
        )
        detections: list[RawDetection] = []
        for result in results:
            detections.extend(_parse_result(result, self._names))
        return detections
