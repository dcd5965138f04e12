"""Remote product-label extraction with a deterministic offline fallback."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Optional
from uuid import uuid4

from src.analyzers.metrics import SkinMetrics, coerce_score
from src.analyzers.remote import (
    REMOTE_TIMEOUT_S,
    call_with_timeout,
    is_quota_error,
    load_payload,
)

from .models import IngredientBenefit, IngredientRisk, Product, ProductType

logger = logging.getLogger(__name__)

ProductExtractFn = Callable[[bytes, Optional[SkinMetrics]], Any]

FALLBACK_PRODUCT = {
    "name": "Scanned Product (Offline)",
    "brand": "Unknown Brand",
    "ingredients": ["Water", "Glycerin", "Dimethicone"],
    "type": ProductType.MOISTURIZER,
    "suitability_score": 60,
}


def _now_ms() -> float:
    return time.time() * 1000.0


def fallback_product() -> Product:
    return Product(
        id=f"fallback-{int(_now_ms())}",
        date_scanned=_now_ms(),
        **FALLBACK_PRODUCT,
    )


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _entries(value: Any) -> list:
    return [item for item in value if isinstance(item, Mapping)] if isinstance(value, list) else []


def parse_product_response(payload: Any) -> Product:
    data = load_payload(payload)

    ingredients = data.get("ingredients")
    if not isinstance(ingredients, list):
        ingredients = []

    risks = [
        IngredientRisk(
            ingredient=_text(item.get("ingredient"), "Unknown"),
            risk_level=_text(item.get("riskLevel", item.get("risk_level")), "LOW"),
            reason=_text(item.get("reason"), ""),
        )
        for item in _entries(data.get("risks"))
    ]
    benefits = [
        IngredientBenefit(
            ingredient=_text(item.get("ingredient"), "Unknown"),
            target=_text(item.get("target"), ""),
            description=_text(item.get("description"), ""),
            relevance=_text(item.get("relevance"), ""),
        )
        for item in _entries(data.get("benefits"))
    ]

    return Product(
        id=str(uuid4()),
        name=_text(data.get("name"), "Unknown Product"),
        brand=_text(data.get("brand"), "Unknown Brand"),
        ingredients=[str(item) for item in ingredients if item is not None],
        type=data.get("type"),
        suitability_score=coerce_score(
            data.get("suitabilityScore", data.get("suitability_score"))
        ),
        risks=risks,
        benefits=benefits,
        date_scanned=_now_ms(),
    )


def extract_product(
    extract: Optional[ProductExtractFn],
    image_bytes: bytes,
    user_metrics: Optional[SkinMetrics] = None,
    timeout_s: Optional[float] = None,
) -> Product:
    """Read a product label through the remote extractor; never raises."""

    if extract is None:
        return fallback_product()

    try:
        payload = call_with_timeout(
            extract, image_bytes, user_metrics, timeout_s=timeout_s or REMOTE_TIMEOUT_S
        )
        product = parse_product_response(payload)
    except Exception as exc:  # collaborator boundary
        logger.warning(
            "Product extraction failed, using offline product",
            exc_info=True,
            extra={"quota": is_quota_error(exc)},
        )
        return fallback_product()

    logger.debug("Extracted product %s (%s)", product.name, product.type.value)
    return product


__all__ = [
    "FALLBACK_PRODUCT",
    "ProductExtractFn",
    "extract_product",
    "fallback_product",
    "parse_product_response",
]
