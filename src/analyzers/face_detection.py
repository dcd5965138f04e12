"""Image decoding and heuristic face localisation on RGBA buffers."""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Tuple

os.environ.setdefault("OPENCV_OPENCL_RUNTIME", "disabled")

import cv2
import numpy as np
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

FACE_SAMPLE_STRIDE = 20
MIN_SKIN_SAMPLES = 50
FACE_WIDTH_FACTOR = 1.5
FACE_ASPECT = 1.35


def load_image_to_rgba(
    image_bytes: bytes, exif_correction: bool = True, mirror: bool = False
) -> np.ndarray:
    """Decode raw image bytes into an ``H x W x 4`` RGBA array.

    Parameters
    ----------
    image_bytes:
        Raw encoded image payload (e.g. JPEG/PNG).
    exif_correction:
        Whether to apply EXIF orientation transpose before conversion.
    mirror:
        Flip horizontally, matching the selfie preview of live captures.

    Raises
    ------
    UnidentifiedImageError
        If the payload cannot be parsed as an image.
    """

    with Image.open(BytesIO(image_bytes)) as img:
        if exif_correction:
            img = ImageOps.exif_transpose(img)
        rgba = np.asarray(img.convert("RGBA"))

    if mirror:
        rgba = cv2.flip(rgba, 1)
    return np.ascontiguousarray(rgba)


def rgba_from_buffer(data: bytes, width: int, height: int) -> np.ndarray:
    """Wrap a canvas-style flat RGBA buffer without copying pixel values."""

    expected = width * height * 4
    if len(data) != expected:
        raise ValueError(f"RGBA buffer holds {len(data)} bytes, expected {expected}")
    return np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)


def skin_pixel_mask(rgb: np.ndarray) -> np.ndarray:
    """Boolean mask of pixels that pass the RGB skin-colour rule."""

    r = rgb[..., 0].astype(np.int16)
    g = rgb[..., 1].astype(np.int16)
    b = rgb[..., 2].astype(np.int16)
    return (
        (r > 60) & (g > 40) & (b > 20) & (r > g) & (r > b) & (np.abs(r - g) > 10)
    )


@dataclass(frozen=True)
class FaceBounds:
    """Approximate face box; ``width == 0`` means no face was found."""

    cx: float
    cy: float
    width: float
    height: float
    frame_width: int
    frame_height: int
    skin_samples: int

    @property
    def detected(self) -> bool:
        return self.width > 0

    @property
    def region_size(self) -> Tuple[float, float]:
        """Size used to carve ROIs; the full frame when no face was found."""

        if self.detected:
            return self.width, self.height
        return float(self.frame_width), float(self.frame_height)

    @property
    def center(self) -> Tuple[float, float]:
        return self.cx, self.cy


def detect_face_bounds(
    rgba: np.ndarray, stride: int = FACE_SAMPLE_STRIDE
) -> FaceBounds:
    height, width = rgba.shape[:2]
    sampled = rgba[0:height:stride, 0:width:stride, :3]
    mask = skin_pixel_mask(sampled)
    count = int(np.count_nonzero(mask))

    if count < MIN_SKIN_SAMPLES:
        logger.debug("Only %d skin samples, treating frame as faceless", count)
        return FaceBounds(
            cx=width / 2.0,
            cy=height / 2.0,
            width=0.0,
            height=0.0,
            frame_width=width,
            frame_height=height,
            skin_samples=count,
        )

    rows, cols = np.nonzero(mask)
    cx = float(np.mean(cols * stride))
    cy = float(np.mean(rows * stride))
    face_width = math.sqrt(count * stride * stride) * FACE_WIDTH_FACTOR
    face_height = face_width * FACE_ASPECT

    logger.debug(
        "Face centre (%.1f, %.1f) size %.1fx%.1f from %d samples",
        cx, cy, face_width, face_height, count,
    )
    return FaceBounds(
        cx=cx,
        cy=cy,
        width=face_width,
        height=face_height,
        frame_width=width,
        frame_height=height,
        skin_samples=count,
    )


def pixel_luma(rgba: np.ndarray, x: int, y: int) -> Optional[float]:
    height, width = rgba.shape[:2]
    if not (0 <= x < width and 0 <= y < height):
        return None
    r, g, b = (float(v) for v in rgba[y, x, :3])
    return 0.299 * r + 0.587 * g + 0.114 * b


__all__ = [
    "FaceBounds",
    "detect_face_bounds",
    "load_image_to_rgba",
    "pixel_luma",
    "rgba_from_buffer",
    "skin_pixel_mask",
]
