"""Boundary around the remote generative-AI skin classifier.

The remote model is opaque: image bytes (plus an optional local estimate as
a hint) go in, a JSON-shaped metrics object comes out. Anything that goes
wrong on the way (network, quota, timeout, malformed payload) is absorbed
here and replaced by a deterministic fallback.
"""
from __future__ import annotations

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Mapping, Optional

from .metrics import (
    METRIC_CHANNELS,
    SkinMetrics,
    channel_id,
    coerce_score,
    compute_overall_score,
)

logger = logging.getLogger(__name__)

REMOTE_TIMEOUT_S = float(os.getenv("SKIN_REMOTE_TIMEOUT_S", "20"))
REMOTE_MAX_WORKERS = int(os.getenv("SKIN_REMOTE_MAX_WORKERS", "4"))

# Shared by every collaborator call for the life of the process.
_executor = ThreadPoolExecutor(
    max_workers=REMOTE_MAX_WORKERS, thread_name_prefix="remote-collaborator"
)

SkinClassifyFn = Callable[[bytes, Optional[SkinMetrics]], Any]

FALLBACK_SKIN_METRICS: Dict[str, Any] = {
    "overall_score": 78,
    "acne_active": 85,
    "acne_scars": 80,
    "pore_size": 72,
    "blackheads": 75,
    "wrinkle_fine": 88,
    "wrinkle_deep": 95,
    "sagging": 90,
    "pigmentation": 70,
    "redness": 65,
    "texture": 75,
    "hydration": 60,
    "oiliness": 55,
    "dark_circles": 68,
    "analysis_summary": (
        "Offline Analysis: Skin appears generally healthy with mild sensitivity markers."
    ),
    "observations": {
        "redness": "Mild redness detected.",
        "hydration": "Skin appears slightly dehydrated.",
    },
}


class RemoteResponseError(ValueError):
    """Raised when a collaborator answers with an unusable payload."""


def is_quota_error(error: BaseException) -> bool:
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if status == 429:
        return True
    message = str(error).lower()
    return "429" in message or "quota" in message or "resource_exhausted" in message


def load_payload(payload: Any) -> Dict[str, Any]:
    """Accept a mapping or a JSON document and return a plain dict."""

    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload or "{}")
        except json.JSONDecodeError as exc:
            raise RemoteResponseError("Response is not valid JSON") from exc
    if not isinstance(payload, Mapping):
        raise RemoteResponseError(f"Unexpected response type {type(payload).__name__}")
    return dict(payload)


def call_with_timeout(fn: Callable[..., Any], *args: Any, timeout_s: float) -> Any:
    """Run a single collaborator call, giving up after ``timeout_s`` seconds.

    A call that overruns keeps its worker until it returns; the caller just
    stops waiting for it.
    """

    future = _executor.submit(fn, *args)
    try:
        return future.result(timeout=timeout_s)
    except FuturesTimeoutError:
        future.cancel()
        raise


def _lookup(data: Mapping[str, Any], name: str) -> Any:
    key = channel_id(name)
    if key in data:
        return data[key]
    return data.get(name)


def parse_skin_response(payload: Any) -> SkinMetrics:
    data = load_payload(payload)

    missing = [
        channel_id(name)
        for name in METRIC_CHANNELS
        if channel_id(name) not in data and name not in data
    ]
    if missing:
        raise RemoteResponseError(f"Missing metric fields: {', '.join(missing)}")

    channels = {name: coerce_score(_lookup(data, name)) for name in METRIC_CHANNELS}
    overall = _lookup(data, "overall_score")
    channels["overall_score"] = (
        coerce_score(overall) if overall is not None else compute_overall_score(channels)
    )

    observations = data.get("observations") or {}
    if not isinstance(observations, Mapping):
        observations = {}
    summary = data.get("analysisSummary", data.get("analysis_summary"))

    return SkinMetrics(
        **channels,
        analysis_summary=summary if isinstance(summary, str) else None,
        observations={
            str(key): value for key, value in observations.items() if isinstance(value, str)
        },
    )


def baseline_metrics() -> SkinMetrics:
    return SkinMetrics(**FALLBACK_SKIN_METRICS)


@dataclass(frozen=True)
class RemoteSkinResult:
    metrics: SkinMetrics
    degraded: bool
    source: Literal["remote", "local", "baseline"]


def _fallback(hint: Optional[SkinMetrics]) -> RemoteSkinResult:
    if hint is not None:
        return RemoteSkinResult(metrics=hint, degraded=True, source="local")
    return RemoteSkinResult(metrics=baseline_metrics(), degraded=True, source="baseline")


def classify_skin(
    classify: Optional[SkinClassifyFn],
    image_bytes: bytes,
    hint: Optional[SkinMetrics] = None,
    timeout_s: Optional[float] = None,
) -> RemoteSkinResult:
    """Ask the remote classifier once; never raises."""

    if classify is None:
        return _fallback(hint)

    try:
        payload = call_with_timeout(
            classify, image_bytes, hint, timeout_s=timeout_s or REMOTE_TIMEOUT_S
        )
        metrics = parse_skin_response(payload)
    except Exception as exc:  # collaborator boundary
        logger.warning(
            "Remote skin classifier failed, using fallback",
            exc_info=True,
            extra={"quota": is_quota_error(exc), "has_hint": hint is not None},
        )
        return _fallback(hint)

    logger.debug("Remote classifier returned %s", metrics.channels())
    return RemoteSkinResult(metrics=metrics, degraded=False, source="remote")


__all__ = [
    "FALLBACK_SKIN_METRICS",
    "REMOTE_MAX_WORKERS",
    "REMOTE_TIMEOUT_S",
    "RemoteResponseError",
    "RemoteSkinResult",
    "SkinClassifyFn",
    "baseline_metrics",
    "call_with_timeout",
    "classify_skin",
    "is_quota_error",
    "load_payload",
    "parse_skin_response",
]
