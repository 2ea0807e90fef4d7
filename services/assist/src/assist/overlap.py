"""Greedy non-maximum suppression over a frame's candidates."""
from __future__ import annotations

from assist.candidates import Candidate
from assist.geometry import iou


def suppress_overlaps(
    candidates: list[Candidate],
    iou_threshold: float = 0.3,
    across_labels: bool = True,
) -> list[Candidate]:
    """Drop lower-confidence candidates that overlap a kept one.

    Candidates are visited by confidence, highest first; equal confidences
    keep their input order. A candidate is kept unless its IoU with an
    already-kept candidate exceeds iou_threshold.

    Args:
        candidates: One frame's candidates.
        iou_threshold: Overlap above which the weaker candidate is dropped.
        across_labels: If False, only same-label pairs can suppress each other.
    """
    ordered = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    kept: list[Candidate] = []
    for cand in ordered:
        if any(
            (across_labels or k.label == cand.label) and iou(k.box, cand.box) > iou_threshold
            for k in kept
        ):
            continue
        kept.append(cand)
    return kept
