"""Live-capture frame admissibility: guide the user, only block on face loss."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

import numpy as np

from .face_detection import FACE_SAMPLE_STRIDE, FaceBounds, detect_face_bounds, pixel_luma

logger = logging.getLogger(__name__)

FrameStatus = Literal["OK", "WARNING", "ERROR"]

FRAME_THRESHOLDS = {
    "min_face_ratio": 0.10,
    "near_face_ratio": 0.20,
    "far_face_ratio": 0.85,
    "low_luma": 30.0,
    "high_luma": 240.0,
    "max_jitter_ratio": 0.15,
}


@dataclass(frozen=True)
class FrameCheck:
    is_good: bool
    status: FrameStatus
    message: str
    instruction: str
    face_pos: Optional[Tuple[float, float]] = None


def validate_frame(
    image_rgba: np.ndarray,
    last_face_pos: Optional[Tuple[float, float]] = None,
    bounds: Optional[FaceBounds] = None,
) -> FrameCheck:
    """Classify a frame for continuous capture.

    Every frame with a face counts towards scan progress; size, lighting and
    jitter problems only change the message shown to the user.
    """

    width = image_rgba.shape[1]
    if bounds is None:
        bounds = detect_face_bounds(image_rgba, stride=FACE_SAMPLE_STRIDE)

    if bounds.width < width * FRAME_THRESHOLDS["min_face_ratio"]:
        return FrameCheck(
            is_good=False,
            status="ERROR",
            message="No Face",
            instruction="Position face in circle",
        )

    status: FrameStatus = "OK"
    message = "Perfect"
    instruction = "Hold steady..."

    if bounds.width < width * FRAME_THRESHOLDS["near_face_ratio"]:
        status, message, instruction = "WARNING", "Move Closer", "Move Closer"
    elif bounds.width > width * FRAME_THRESHOLDS["far_face_ratio"]:
        status, message, instruction = "WARNING", "Too Close", "Back up slightly"

    luma = pixel_luma(image_rgba, int(math.floor(bounds.cx)), int(math.floor(bounds.cy)))
    if luma is not None:
        if luma < FRAME_THRESHOLDS["low_luma"]:
            status, message, instruction = "WARNING", "Low Light", "Face light source"
        elif luma > FRAME_THRESHOLDS["high_luma"]:
            status, message, instruction = "WARNING", "Too Bright", "Reduce glare"

    if last_face_pos is not None:
        jitter = math.hypot(bounds.cx - last_face_pos[0], bounds.cy - last_face_pos[1])
        if jitter > width * FRAME_THRESHOLDS["max_jitter_ratio"]:
            status, message, instruction = "WARNING", "Hold Still", "Hold Still"

    if status != "OK":
        logger.debug("Frame admitted with warning: %s", message)
    return FrameCheck(
        is_good=True,
        status=status,
        message=message,
        instruction=instruction,
        face_pos=bounds.center,
    )


__all__ = ["FRAME_THRESHOLDS", "FrameCheck", "validate_frame"]
