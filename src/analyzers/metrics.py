"""Canonical skin metrics record plus normalisation, blending and averaging."""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

# Every channel except the overall score, in record order.
METRIC_CHANNELS: tuple[str, ...] = (
    "acne_active",
    "acne_scars",
    "pore_size",
    "blackheads",
    "wrinkle_fine",
    "wrinkle_deep",
    "sagging",
    "pigmentation",
    "redness",
    "texture",
    "hydration",
    "oiliness",
    "dark_circles",
)
ALL_CHANNELS: tuple[str, ...] = ("overall_score",) + METRIC_CHANNELS

OVERALL_WEIGHTS: Dict[str, float] = {
    "acne_active": 1.5,
    "redness": 1.5,
    "texture": 1.5,
    "pigmentation": 1.2,
    "pore_size": 1.0,
    "blackheads": 1.0,
    "wrinkle_fine": 0.8,
    "wrinkle_deep": 0.8,
    "sagging": 0.8,
    "hydration": 0.8,
    "oiliness": 0.8,
    "dark_circles": 0.5,
}

SCORE_FLOOR = 18
SCORE_CEILING = 98
NEUTRAL_SCORE = 70

BLEND_WEIGHTS: Dict[str, float] = {"local": 0.20, "remote": 0.80}


def channel_id(field_name: str) -> str:
    """Return the camelCase identifier used for a channel on the wire."""

    return to_camel(field_name)


def channel_field(identifier: str) -> str:
    """Inverse of :func:`channel_id` for known channels."""

    for name in ALL_CHANNELS:
        if identifier in (name, channel_id(name)):
            return name
    raise KeyError(identifier)


def coerce_score(value: Any, default: int = NEUTRAL_SCORE) -> int:
    """Turn an arbitrary collaborator value into an integer score in [0, 100]."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return default
        else:
            return default
    if not math.isfinite(value):
        return default
    return int(min(100, max(0, round_half_up(value))))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SkinMetrics(BaseModel):
    """A point-in-time biometric snapshot where 100 means perfect skin."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    overall_score: int
    acne_active: int
    acne_scars: int
    pore_size: int
    blackheads: int
    wrinkle_fine: int
    wrinkle_deep: int
    sagging: int
    pigmentation: int
    redness: int
    texture: int
    hydration: int
    oiliness: int
    dark_circles: int
    analysis_summary: Optional[str] = None
    observations: Dict[str, str] = Field(default_factory=dict)
    timestamp: Optional[float] = None

    @field_validator(*ALL_CHANNELS, mode="before")
    @classmethod
    def _coerce_channel(cls, value: Any) -> int:
        return coerce_score(value)

    def channel(self, identifier: str) -> int:
        return getattr(self, channel_field(identifier))

    def channels(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in ALL_CHANNELS}


def normalize_score(raw: float) -> int:
    """Clamp a raw heuristic score into ``[18, 98]`` and floor it."""

    if raw is None or math.isnan(raw):
        return NEUTRAL_SCORE
    return int(math.floor(max(SCORE_FLOOR, min(SCORE_CEILING, raw))))


def compute_overall_score(channels: Mapping[str, float]) -> int:
    """Weighted mean of the channel scores, normalised like any other channel."""

    total_weight = sum(OVERALL_WEIGHTS.values())
    weighted = sum(channels[name] * weight for name, weight in OVERALL_WEIGHTS.items())
    return normalize_score(weighted / total_weight)


def blend_scores(local: float, remote: float) -> int:
    return round_half_up(local * BLEND_WEIGHTS["local"] + remote * BLEND_WEIGHTS["remote"])


def blend_metrics(
    local: Optional[SkinMetrics], remote: Optional[SkinMetrics]
) -> Optional[SkinMetrics]:
    """Merge a local and a remote estimate of the same capture.

    The remote estimate dominates; the local one damps transient remote
    outliers. When only one estimate exists it is returned unchanged.
    """

    if local is None or remote is None:
        return remote if local is None else local

    blended = {
        name: blend_scores(getattr(local, name), getattr(remote, name))
        for name in ALL_CHANNELS
    }
    logger.debug("Blended metrics: %s", blended)
    return SkinMetrics(
        **blended,
        analysis_summary=remote.analysis_summary or local.analysis_summary,
        observations=dict(remote.observations or local.observations),
        timestamp=remote.timestamp if remote.timestamp is not None else local.timestamp,
    )


def neutral_metrics() -> SkinMetrics:
    return SkinMetrics(**{name: NEUTRAL_SCORE for name in ALL_CHANNELS})


def average_metrics(buffer: Sequence[SkinMetrics]) -> SkinMetrics:
    """Arithmetic mean of every channel across a frame buffer."""

    if not buffer:
        return neutral_metrics()

    size = len(buffer)
    averaged = {
        name: round_half_up(sum(getattr(item, name) for item in buffer) / size)
        for name in ALL_CHANNELS
    }
    return SkinMetrics(**averaged, observations=dict(buffer[-1].observations))


__all__ = [
    "ALL_CHANNELS",
    "BLEND_WEIGHTS",
    "METRIC_CHANNELS",
    "NEUTRAL_SCORE",
    "OVERALL_WEIGHTS",
    "SkinMetrics",
    "average_metrics",
    "blend_metrics",
    "blend_scores",
    "channel_field",
    "channel_id",
    "coerce_score",
    "compute_overall_score",
    "neutral_metrics",
    "normalize_score",
]
