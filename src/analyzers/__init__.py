"""Analysis modules exposed for FastAPI service."""

from .metrics import (  # noqa: F401
    SkinMetrics,
    average_metrics,
    blend_metrics,
    normalize_score,
)

from .skin_metrics import SkinMetricsAnalyzer, THRESHOLDS  # noqa: F401

from .frame_quality import validate_frame  # noqa: F401

from .remote import classify_skin  # noqa: F401

__all__ = [
    "SkinMetrics",
    "SkinMetricsAnalyzer",
    "THRESHOLDS",
    "average_metrics",
    "blend_metrics",
    "classify_skin",
    "normalize_score",
    "validate_frame",
]
