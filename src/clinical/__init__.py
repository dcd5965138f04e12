"""Deterministic clinical engine: prescription, routine and shelf audit."""

from .models import (  # noqa: F401
    Product,
    ProductType,
    UserPreferences,
    UserProfile,
)
from .prescription import get_clinical_prescription, rank_concerns  # noqa: F401
from .product_scan import extract_product  # noqa: F401
from .routine import build_routine, build_routine_plan, find_best_match  # noqa: F401
from .shelf import (  # noqa: F401
    analyze_product_context,
    analyze_shelf_health,
    audit_product,
    get_buying_decision,
)
from .skin_profile import classify_skin_type, group_scores, strategy_insight  # noqa: F401

__all__ = [
    "Product",
    "ProductType",
    "UserPreferences",
    "UserProfile",
    "analyze_product_context",
    "analyze_shelf_health",
    "audit_product",
    "build_routine",
    "build_routine_plan",
    "classify_skin_type",
    "extract_product",
    "find_best_match",
    "get_buying_decision",
    "get_clinical_prescription",
    "group_scores",
    "rank_concerns",
    "strategy_insight",
]
