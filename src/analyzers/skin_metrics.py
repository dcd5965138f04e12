"""Per-channel pixel heuristics turning a face frame into ``SkinMetrics``."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import cv2
import numpy as np
from skimage import color as skcolor

from .face_detection import FACE_SAMPLE_STRIDE, FaceBounds, detect_face_bounds
from .metrics import SkinMetrics, compute_overall_score, normalize_score
from .skin_roi import extract_face_rois

logger = logging.getLogger(__name__)

# Heuristics look at every 4th pixel of a region.
PIXEL_STRIDE = 4

THRESHOLDS: Dict[str, Dict[str, float]] = {
    "redness": {"a_margin": 8.0, "scale": 5.0},
    "blemish": {"active_a_margin": 12.0, "active_scale": 800.0, "scar_l_margin": 15.0, "scar_scale": 500.0},
    "hydration": {"glow_low": 180.0, "glow_high": 240.0, "ideal_ratio": 0.15, "scale": 400.0},
    "oiliness": {"min_lightness": 210.0, "max_saturation": 0.2, "scale": 800.0},
    "wrinkles": {"fine_low": 10.0, "deep": 25.0, "fine_scale": 200.0, "deep_scale": 100.0},
    "dark_circles": {"tolerance": 5.0, "scale": 2.0, "empty_luma": 128.0},
    "sagging": {"scale": 10.0, "floor": 20.0, "ceiling": 100.0, "empty": 50.0},
    "pores": {"pore_margin": 10.0, "blackhead_margin": 20.0, "pore_scale": 400.0, "blackhead_scale": 600.0},
}

LAPLACIAN_KERNEL = np.array([[0, -1, 0], [-1, 4, -1], [0, -1, 0]], dtype=np.float32)


def _sample_rgb(patch: np.ndarray) -> np.ndarray:
    return patch[..., :3].reshape(-1, 3)[::PIXEL_STRIDE]


def _lab_channels(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    lab = skcolor.rgb2lab(rgb.reshape(1, -1, 3).astype(np.float64) / 255.0)
    lab = lab.reshape(-1, 3)
    return lab[:, 0], lab[:, 1]


def _luma(rgb: np.ndarray) -> np.ndarray:
    rgb = rgb.astype(np.float64)
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


def calculate_redness(patch: np.ndarray) -> float:
    rgb = _sample_rgb(patch)
    if rgb.shape[0] == 0:
        return 100.0
    _, a = _lab_channels(rgb)
    cfg = THRESHOLDS["redness"]
    mean_a = float(np.mean(a))
    flushed = a > mean_a + cfg["a_margin"]
    severity = float(np.sum(a[flushed] - mean_a)) / a.size
    return 100.0 - severity * cfg["scale"]


def calculate_blemishes(patch: np.ndarray) -> Tuple[float, float]:
    """Return ``(active, scars)`` scores for one region."""

    rgb = _sample_rgb(patch)
    if rgb.shape[0] == 0:
        return 100.0, 100.0
    lightness, a = _lab_channels(rgb)
    cfg = THRESHOLDS["blemish"]
    active = np.count_nonzero(a > np.mean(a) + cfg["active_a_margin"]) / a.size
    scars = np.count_nonzero(lightness < np.mean(lightness) - cfg["scar_l_margin"]) / a.size
    return 100.0 - active * cfg["active_scale"], 100.0 - scars * cfg["scar_scale"]


def calculate_hydration(patch: np.ndarray) -> float:
    cfg = THRESHOLDS["hydration"]
    luma = _luma(_sample_rgb(patch))
    glow = (luma > cfg["glow_low"]) & (luma < cfg["glow_high"])
    ratio = float(np.count_nonzero(glow)) / luma.size if luma.size else 0.0
    return 100.0 - abs(ratio - cfg["ideal_ratio"]) * cfg["scale"]


def calculate_oiliness(patch: np.ndarray) -> float:
    rgb = _sample_rgb(patch).astype(np.float64)
    if rgb.shape[0] == 0:
        return 100.0
    cfg = THRESHOLDS["oiliness"]
    hi = rgb.max(axis=1)
    lo = rgb.min(axis=1)
    lightness = (hi + lo) / 2.0
    denom = 255.0 - np.abs(2.0 * lightness - 255.0)
    saturation = np.divide(hi - lo, denom, out=np.zeros_like(denom), where=denom > 0)
    shine = (lightness > cfg["min_lightness"]) & (saturation < cfg["max_saturation"])
    return 100.0 - (np.count_nonzero(shine) / rgb.shape[0]) * cfg["scale"]


def calculate_wrinkles(patch: np.ndarray) -> Tuple[float, float]:
    """Return ``(fine, deep)`` scores from Laplacian edges on the green channel."""

    height, width = patch.shape[:2]
    if height < 3 or width < 3:
        return 100.0, 100.0

    cfg = THRESHOLDS["wrinkles"]
    green = np.ascontiguousarray(patch[..., 1], dtype=np.float32)
    response = cv2.filter2D(green, cv2.CV_32F, LAPLACIAN_KERNEL)
    delta = np.abs(response[1:height - 1:2, 1:width - 1:2])

    fine = np.count_nonzero((delta > cfg["fine_low"]) & (delta < cfg["deep"]))
    deep = np.count_nonzero(delta >= cfg["deep"])
    total = (width * height) / 4.0
    return (
        100.0 - (fine / total) * cfg["fine_scale"],
        100.0 - (deep / total) * cfg["deep_scale"],
    )


def _mean_luma(patch: np.ndarray, empty: float) -> float:
    if patch.size == 0:
        return empty
    return float(np.mean(_luma(patch[..., :3])))


def calculate_dark_circles(eye_patch: np.ndarray, cheek_patch: np.ndarray) -> float:
    cfg = THRESHOLDS["dark_circles"]
    eye = _mean_luma(eye_patch, cfg["empty_luma"])
    cheek = _mean_luma(cheek_patch, cfg["empty_luma"])
    return 100.0 - max(0.0, cheek - eye - cfg["tolerance"]) * cfg["scale"]


def calculate_sagging(jaw_patch: np.ndarray) -> float:
    cfg = THRESHOLDS["sagging"]
    height, width = jaw_patch.shape[:2]
    if width * height == 0:
        return cfg["empty"]

    columns = _luma(jaw_patch[:, ::4, :3])
    rows = np.arange(1, height - 1, 2)
    contrast = float(np.sum(np.abs(columns[rows] - columns[rows + 1]))) if rows.size else 0.0
    score = contrast / (width * height) * cfg["scale"]
    return min(cfg["ceiling"], max(cfg["floor"], score))


def calculate_pores(nose_patch: np.ndarray) -> Tuple[float, float]:
    """Return ``(pores, blackheads)`` scores for the nose region."""

    rgb = _sample_rgb(nose_patch)
    if rgb.shape[0] == 0:
        return 100.0, 100.0
    cfg = THRESHOLDS["pores"]
    lightness, _ = _lab_channels(rgb)
    mean_l = float(np.mean(lightness))
    blackheads = lightness < mean_l - cfg["blackhead_margin"]
    pores = (lightness < mean_l - cfg["pore_margin"]) & ~blackheads
    return (
        100.0 - (np.count_nonzero(pores) / lightness.size) * cfg["pore_scale"],
        100.0 - (np.count_nonzero(blackheads) / lightness.size) * cfg["blackhead_scale"],
    )


@dataclass(frozen=True)
class FrameAnalysis:
    metrics: SkinMetrics
    bounds: FaceBounds
    raw: Dict[str, float] = field(default_factory=dict)

    @property
    def face_detected(self) -> bool:
        return self.bounds.detected


class SkinMetricsAnalyzer:
    """Run the local heuristic analysis over an RGBA frame."""

    def __init__(self, stride: int = FACE_SAMPLE_STRIDE) -> None:
        self.stride = stride

    def analyze(
        self, image_rgba: np.ndarray, bounds: Optional[FaceBounds] = None
    ) -> SkinMetrics:
        return self.analyze_frame(image_rgba, bounds=bounds).metrics

    def analyze_frame(
        self, image_rgba: np.ndarray, bounds: Optional[FaceBounds] = None
    ) -> FrameAnalysis:
        """Score one frame; ``bounds`` skips face localisation when the caller has it."""

        if bounds is None:
            bounds = detect_face_bounds(image_rgba, stride=self.stride)
        if not bounds.detected:
            logger.info(
                "No face found, analysing full frame",
                extra={"skin_samples": bounds.skin_samples},
            )

        rois = extract_face_rois(image_rgba, bounds)
        raw = self._compute_raw_scores(rois)
        logger.debug("Raw channel scores: %s", raw)

        normalised = {name: normalize_score(value) for name, value in raw.items()}
        metrics = SkinMetrics(overall_score=compute_overall_score(raw), **normalised)
        return FrameAnalysis(metrics=metrics, bounds=bounds, raw=raw)

    def _compute_raw_scores(self, rois: Dict[str, np.ndarray]) -> Dict[str, float]:
        cheek = rois["left_cheek"]

        acne_active, acne_scars = calculate_blemishes(cheek)
        wrinkle_fine, wrinkle_deep = calculate_wrinkles(rois["forehead"])
        pore_size, blackheads = calculate_pores(rois["nose"])
        _, pigmentation = calculate_blemishes(rois["right_cheek"])

        return {
            "acne_active": acne_active,
            "acne_scars": acne_scars,
            "pore_size": pore_size,
            "blackheads": blackheads,
            "wrinkle_fine": wrinkle_fine,
            "wrinkle_deep": wrinkle_deep,
            "sagging": calculate_sagging(rois["jaw"]),
            "pigmentation": pigmentation,
            "redness": calculate_redness(cheek),
            "texture": (wrinkle_fine + pore_size + acne_scars) / 3.0,
            "hydration": calculate_hydration(cheek),
            "oiliness": calculate_oiliness(rois["forehead"]),
            "dark_circles": calculate_dark_circles(rois["under_eye"], cheek),
        }


__all__ = [
    "FrameAnalysis",
    "SkinMetricsAnalyzer",
    "THRESHOLDS",
    "calculate_blemishes",
    "calculate_dark_circles",
    "calculate_hydration",
    "calculate_oiliness",
    "calculate_pores",
    "calculate_redness",
    "calculate_sagging",
    "calculate_wrinkles",
]
