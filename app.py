"""FastAPI application exposing skin analysis and prescription APIs."""
from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Tuple
from uuid import uuid4

from fastapi import Body, FastAPI, Header, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from PIL import UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, model_validator
from starlette import status
from starlette.responses import Response

from src.analyzers import SkinMetrics, SkinMetricsAnalyzer, blend_metrics, classify_skin, validate_frame
from src.analyzers.face_detection import load_image_to_rgba
from src.clinical import (
    Product,
    UserProfile,
    analyze_shelf_health,
    audit_product,
    build_routine,
    classify_skin_type,
    extract_product,
    get_buying_decision,
    get_clinical_prescription,
    group_scores,
    strategy_insight,
)

logger = logging.getLogger(__name__)
app = FastAPI(title="Skin Analysis Service", version="1.0.0")

# Remote collaborators are opaque callables installed by the deployment;
# when unset the service runs on local heuristics and offline fallbacks.
app.state.skin_classifier = None
app.state.product_extractor = None

DATA_URL_PATTERN = re.compile(r"^data:image/[^;]+;base64,")

analyzer = SkinMetricsAnalyzer()


class AnalyzeOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    trace_id: Optional[str] = Field(default=None, alias="traceId")
    exif_correction: bool = Field(default=True, alias="exif_correction")
    mirror: bool = False
    remote: bool = True

    @model_validator(mode="before")
    @classmethod
    def _compat(cls, values: Any):  # type: ignore[override]
        if not isinstance(values, dict):
            return values
        # camelCase clients
        if "trace_id" not in values and "traceId" in values:
            values["trace_id"] = values.pop("traceId")
        if "exif_correction" not in values and "exifCorrection" in values:
            values["exif_correction"] = values.pop("exifCorrection")
        return values


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    image_base64: str = Field(alias="image_base64")
    options: Optional[AnalyzeOptions] = None

    @model_validator(mode="before")
    @classmethod
    def _compat(cls, values: Any):  # type: ignore[override]
        if not isinstance(values, dict):
            return values
        if "image_base64" not in values and "imageBase64" in values:
            values["image_base64"] = values.pop("imageBase64")
        return values


class FrameCheckRequest(AnalyzeRequest):
    last_face_pos: Optional[Tuple[float, float]] = Field(default=None, alias="lastFacePos")


class AnalyzeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    status: Literal["ok", "guardrail", "error"]
    code: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    source: Optional[Literal["local", "blended"]] = None
    skinType: Optional[str] = None
    traceId: Optional[str] = None


class ProfileRequest(BaseModel):
    profile: UserProfile
    shelf: List[Product] = Field(default_factory=list)


class ProductRequest(ProfileRequest):
    product: Product


class ProductScanRequest(AnalyzeRequest):
    profile: Optional[UserProfile] = None


def _decode_base64_image(data: str) -> Optional[bytes]:
    if DATA_URL_PATTERN.match(data):
        _, encoded = data.split(",", 1)
    else:
        encoded = data
    try:
        return base64.b64decode(encoded)
    except (ValueError, binascii.Error):
        return None


def _trace_id(header: Optional[str], options: Optional[AnalyzeOptions] = None) -> str:
    return header or (options.trace_id if options else None) or str(uuid4())


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _response_with_trace(payload: AnalyzeResponse, trace_id: str) -> JSONResponse:
    response = JSONResponse(
        content=payload.model_dump(exclude_none=True),
        status_code=status.HTTP_200_OK,
    )
    response.headers["X-Trace-Id"] = trace_id
    return response


def _response_with_trace_dict(payload: Dict[str, Any], trace_id: str) -> JSONResponse:
    """Attach the X-Trace-Id header to a non-AnalyzeResponse payload."""
    resp = JSONResponse(content=payload, status_code=status.HTTP_200_OK)
    resp.headers["X-Trace-Id"] = trace_id
    return resp


def _invalid_image(trace_id: str) -> JSONResponse:
    payload = AnalyzeResponse(status="error", code="INVALID_IMAGE", traceId=trace_id)
    return _response_with_trace(payload, trace_id)


def _run_analysis(
    request: Request, image_bytes: bytes, image_rgba, trace_id: str, use_remote: bool
) -> AnalyzeResponse:
    frame = analyzer.analyze_frame(image_rgba)
    metrics: SkinMetrics = frame.metrics
    source: Literal["local", "blended"] = "local"

    classifier = getattr(request.app.state, "skin_classifier", None)
    if use_remote and classifier is not None:
        remote = classify_skin(classifier, image_bytes, hint=metrics)
        if not remote.degraded:
            metrics = blend_metrics(metrics, remote.metrics)
            source = "blended"

    if not frame.face_detected:
        logger.info("Guardrail triggered", extra={"trace_id": trace_id, "code": "NO_FACE"})

    return AnalyzeResponse(
        status="ok" if frame.face_detected else "guardrail",
        code=None if frame.face_detected else "NO_FACE",
        metrics=_dump(metrics),
        source=source,
        skinType=classify_skin_type(metrics),
        traceId=trace_id,
    )


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/analyze")
def analyze(
    request: Request,
    body: AnalyzeRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    options = body.options
    trace_id = _trace_id(x_trace_id, options)

    image_bytes = _decode_base64_image(body.image_base64)
    if image_bytes is None:
        return _invalid_image(trace_id)

    try:
        image_rgba = load_image_to_rgba(
            image_bytes,
            exif_correction=options.exif_correction if options else True,
            mirror=options.mirror if options else False,
        )
    except (UnidentifiedImageError, OSError):
        logger.debug("Failed to decode base64 image", exc_info=True)
        return _invalid_image(trace_id)

    use_remote = options.remote if options else True
    payload = _run_analysis(request, image_bytes, image_rgba, trace_id, use_remote)
    return _response_with_trace(payload, trace_id)


@app.post("/analyze/file")
def analyze_file(
    request: Request,
    file: UploadFile,
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
    exif_correction: bool = Query(default=True),
    mirror: bool = Query(default=False),
    remote: bool = Query(default=True),
) -> Response:
    trace_id = _trace_id(x_trace_id)

    image_bytes = file.file.read()
    if not image_bytes:
        return _invalid_image(trace_id)

    try:
        image_rgba = load_image_to_rgba(image_bytes, exif_correction=exif_correction, mirror=mirror)
    except (UnidentifiedImageError, OSError):
        logger.debug("Failed to decode uploaded image", exc_info=True)
        return _invalid_image(trace_id)

    payload = _run_analysis(request, image_bytes, image_rgba, trace_id, remote)
    return _response_with_trace(payload, trace_id)


@app.post("/frame/check")
def frame_check(
    body: FrameCheckRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    options = body.options
    trace_id = _trace_id(x_trace_id, options)

    image_bytes = _decode_base64_image(body.image_base64)
    if image_bytes is None:
        return _invalid_image(trace_id)
    try:
        image_rgba = load_image_to_rgba(
            image_bytes, exif_correction=options.exif_correction if options else True
        )
    except (UnidentifiedImageError, OSError):
        logger.debug("Failed to decode frame", exc_info=True)
        return _invalid_image(trace_id)

    check = validate_frame(image_rgba, body.last_face_pos)
    return _response_with_trace_dict(
        {
            "status": "ok",
            "isGood": check.is_good,
            "frameStatus": check.status,
            "message": check.message,
            "instruction": check.instruction,
            "facePos": list(check.face_pos) if check.face_pos else None,
            "traceId": trace_id,
        },
        trace_id,
    )


# ------------------ Clinical endpoints ------------------ #
@app.post("/prescription")
def prescription(
    body: ProfileRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    trace_id = _trace_id(x_trace_id)
    profile = body.profile
    result = get_clinical_prescription(profile)
    insight = strategy_insight(profile.biometrics, profile.preferences)

    payload = {
        "status": "ok",
        "prescription": _dump(result),
        "skinType": classify_skin_type(profile.biometrics),
        "groups": _dump(group_scores(profile.biometrics)),
        "strategy": _dump(insight) if insight else None,
        "traceId": trace_id,
    }
    return _response_with_trace_dict(payload, trace_id)


@app.post("/routine")
def routine(
    body: ProfileRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    trace_id = _trace_id(x_trace_id)
    result = build_routine(body.profile, body.shelf)
    return _response_with_trace_dict(
        {"status": "ok", "routine": _dump(result), "traceId": trace_id}, trace_id
    )


@app.post("/products/audit")
def products_audit(
    body: ProductRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    trace_id = _trace_id(x_trace_id)
    result = audit_product(body.product, body.profile)
    return _response_with_trace_dict(
        {"status": "ok", "audit": _dump(result), "traceId": trace_id}, trace_id
    )


@app.post("/products/decision")
def products_decision(
    body: ProductRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    trace_id = _trace_id(x_trace_id)
    result = get_buying_decision(body.product, body.shelf, body.profile)
    return _response_with_trace_dict(
        {"status": "ok", "decision": _dump(result), "traceId": trace_id}, trace_id
    )


@app.post("/products/scan")
def products_scan(
    request: Request,
    body: ProductScanRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    trace_id = _trace_id(x_trace_id, body.options)

    image_bytes = _decode_base64_image(body.image_base64)
    if not image_bytes:
        return _invalid_image(trace_id)

    extractor = getattr(request.app.state, "product_extractor", None)
    user_metrics = body.profile.biometrics if body.profile else None
    product = extract_product(extractor, image_bytes, user_metrics=user_metrics)
    return _response_with_trace_dict(
        {"status": "ok", "product": _dump(product), "traceId": trace_id}, trace_id
    )


@app.post("/shelf/health")
def shelf_health(
    body: ProfileRequest = Body(...),
    x_trace_id: Optional[str] = Header(default=None, alias="X-Trace-Id"),
) -> Response:
    trace_id = _trace_id(x_trace_id)
    result = analyze_shelf_health(body.shelf, body.profile)
    return _response_with_trace_dict(
        {"status": "ok", "shelfHealth": _dump(result), "traceId": trace_id}, trace_id
    )


__all__ = ("app",)
