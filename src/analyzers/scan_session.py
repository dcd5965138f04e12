"""Timed multi-frame scan as an explicit, immutable session value.

Callers own the session and feed it frames from their refresh loop::

    session = start_scan(now_ms)
    while not session.complete:
        tick = scan_tick(session, frame, now_ms)
        session = tick.session
    result = complete_scan(session, image_bytes, classify=remote_fn)
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Literal, Optional, Tuple

import numpy as np

from .face_detection import detect_face_bounds
from .frame_quality import FrameCheck, validate_frame
from .metrics import SkinMetrics, average_metrics, blend_metrics
from .remote import SkinClassifyFn, classify_skin
from .skin_metrics import SkinMetricsAnalyzer

logger = logging.getLogger(__name__)

SCAN_SETTINGS = {
    "buffer_size": 40,
    "analysis_interval_ms": 150.0,
    "duration_ms": 6500.0,
}

_default_analyzer = SkinMetricsAnalyzer()


@dataclass(frozen=True)
class ScanSession:
    metrics_buffer: Tuple[SkinMetrics, ...] = ()
    last_face_position: Optional[Tuple[float, float]] = None
    last_analysis_ms: Optional[float] = None
    cached_metrics: Optional[SkinMetrics] = None
    progress: float = 0.0
    last_tick_ms: Optional[float] = None
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return self.progress >= 100.0


@dataclass(frozen=True)
class ScanTick:
    session: ScanSession
    display_metrics: Optional[SkinMetrics]
    check: Optional[FrameCheck]


@dataclass(frozen=True)
class ScanResult:
    metrics: SkinMetrics
    source: Literal["blended", "local"]
    frames: int


def start_scan(now_ms: float) -> ScanSession:
    return ScanSession(last_tick_ms=now_ms)


def cancel_scan(session: ScanSession) -> ScanSession:
    return replace(session, cancelled=True)


def scan_tick(
    session: ScanSession,
    frame_rgba: np.ndarray,
    now_ms: float,
    analyzer: Optional[SkinMetricsAnalyzer] = None,
) -> ScanTick:
    """Advance the scan by one display frame.

    The admissibility check runs on every tick; the heavier metric analysis
    only when the cached result is older than the analysis interval.
    """

    if session.cancelled or session.complete:
        return ScanTick(session=session, display_metrics=session.cached_metrics, check=None)

    analyzer = analyzer or _default_analyzer
    bounds = detect_face_bounds(frame_rgba, stride=analyzer.stride)
    check = validate_frame(frame_rgba, session.last_face_position, bounds=bounds)

    metrics = session.cached_metrics
    buffer = session.metrics_buffer
    last_analysis = session.last_analysis_ms
    interval = SCAN_SETTINGS["analysis_interval_ms"]
    if metrics is None or last_analysis is None or now_ms - last_analysis > interval:
        metrics = analyzer.analyze(frame_rgba, bounds=bounds)
        last_analysis = now_ms
        if check.is_good:
            buffer = (buffer + (metrics,))[-SCAN_SETTINGS["buffer_size"]:]

    progress = session.progress
    if check.is_good:
        elapsed = max(0.0, now_ms - (session.last_tick_ms if session.last_tick_ms is not None else now_ms))
        progress = min(100.0, progress + elapsed / SCAN_SETTINGS["duration_ms"] * 100.0)

    updated = replace(
        session,
        metrics_buffer=buffer,
        last_face_position=check.face_pos or session.last_face_position,
        last_analysis_ms=last_analysis,
        cached_metrics=metrics,
        progress=progress,
        last_tick_ms=now_ms,
    )
    return ScanTick(session=updated, display_metrics=metrics, check=check)


def complete_scan(
    session: ScanSession,
    image_bytes: Optional[bytes] = None,
    classify: Optional[SkinClassifyFn] = None,
    timestamp: Optional[float] = None,
    timeout_s: Optional[float] = None,
) -> Optional[ScanResult]:
    """Average the buffered frames and merge in the remote estimate.

    A cancelled session yields ``None`` and never reaches the remote model.
    """

    if session.cancelled:
        logger.info("Scan cancelled, skipping remote analysis")
        return None

    local = average_metrics(session.metrics_buffer)
    final = local
    source: Literal["blended", "local"] = "local"

    if classify is not None and image_bytes is not None:
        remote = classify_skin(classify, image_bytes, hint=local, timeout_s=timeout_s)
        if not remote.degraded:
            final = blend_metrics(local, remote.metrics)
            source = "blended"

    stamped = final.model_copy(
        update={"timestamp": timestamp if timestamp is not None else time.time() * 1000.0}
    )
    logger.info(
        "Scan complete",
        extra={"frames": len(session.metrics_buffer), "source": source},
    )
    return ScanResult(metrics=stamped, source=source, frames=len(session.metrics_buffer))


__all__ = [
    "SCAN_SETTINGS",
    "ScanResult",
    "ScanSession",
    "ScanTick",
    "cancel_scan",
    "complete_scan",
    "scan_tick",
    "start_scan",
]
