"""Fixed-layout facial regions carved from approximate face bounds."""
from __future__ import annotations

import math
from typing import Dict, Mapping, NamedTuple

import numpy as np

from .face_detection import FaceBounds

ROI_SIZE_RATIO = 0.25


class RoiLayout(NamedTuple):
    """Placement of one region relative to the face centre.

    ``x``/``y`` offsets are expressed as fractions of the face width/height
    (``face_dx``/``face_dy``) plus multiples of the base ROI size
    (``roi_dx``). Width and height are multiples of the ROI size.
    """

    face_dx: float
    roi_dx: float
    face_dy: float
    width: float
    height: float


ROI_LAYOUT: Mapping[str, RoiLayout] = {
    "forehead": RoiLayout(0.0, -1.0, -0.35, 2.0, 0.6),
    "left_cheek": RoiLayout(-0.28, 0.0, 0.05, 1.0, 1.0),
    "right_cheek": RoiLayout(0.08, 0.0, 0.05, 1.0, 1.0),
    "under_eye": RoiLayout(0.0, -1.0, -0.12, 2.0, 0.4),
    "nose": RoiLayout(0.0, -0.5, 0.10, 1.0, 0.5),
    "jaw": RoiLayout(0.0, -1.0, 0.45, 2.0, 0.4),
}


class RoiBox(NamedTuple):
    x: int
    y: int
    width: int
    height: int


def _clamp_box(
    x: float, y: float, width: float, height: float, frame_w: int, frame_h: int
) -> RoiBox:
    left = min(max(int(math.floor(x)), 0), frame_w)
    top = min(max(int(math.floor(y)), 0), frame_h)
    box_w = max(0, min(int(math.floor(width)), frame_w - left))
    box_h = max(0, min(int(math.floor(height)), frame_h - top))
    return RoiBox(left, top, box_w, box_h)


def compute_roi_boxes(bounds: FaceBounds) -> Dict[str, RoiBox]:
    """Return every named region clamped to the frame (boxes may be empty)."""

    face_w, face_h = bounds.region_size
    roi = math.floor(face_w * ROI_SIZE_RATIO)
    boxes: Dict[str, RoiBox] = {}
    for name, layout in ROI_LAYOUT.items():
        x = bounds.cx + layout.face_dx * face_w + layout.roi_dx * roi
        y = bounds.cy + layout.face_dy * face_h
        boxes[name] = _clamp_box(
            x,
            y,
            layout.width * roi,
            layout.height * roi,
            bounds.frame_width,
            bounds.frame_height,
        )
    return boxes


def extract_face_rois(rgba: np.ndarray, bounds: FaceBounds) -> Dict[str, np.ndarray]:
    """Crop every region from the frame; empty regions yield empty arrays."""

    rois: Dict[str, np.ndarray] = {}
    for name, box in compute_roi_boxes(bounds).items():
        rois[name] = rgba[box.y:box.y + box.height, box.x:box.x + box.width]
    return rois


__all__ = ["ROI_LAYOUT", "RoiBox", "compute_roi_boxes", "extract_face_rois"]
