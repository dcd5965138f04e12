"""Product audits, shelf health grading and buy/skip decisions."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    AuditWarning,
    BuyingDecision,
    Grade,
    Prescription,
    Product,
    ProductAudit,
    ProductContext,
    ProductType,
    RiskyProduct,
    ShelfAnalysis,
    ShelfBalance,
    ShelfHealth,
    UserProfile,
    Verdict,
)
from .prescription import get_clinical_prescription

logger = logging.getLogger(__name__)

AUDIT_SETTINGS = {
    "warning_penalty": 15,
    "prescribed_bonus": 10,
    "min_score": 10,
    "max_score": 100,
}

# (metric, threshold, ingredient substrings, reason, severity)
AUDIT_RULES: Tuple[Tuple[str, int, Tuple[str, ...], str, str], ...] = (
    ("redness", 60, ("retinol", "glycolic"), "Potentially too harsh for sensitive skin.", "HIGH"),
    ("redness", 60, ("fragrance", "parfum"), "Contains fragrance which may irritate.", "MEDIUM"),
    ("acneActive", 60, ("coconut oil", "shea butter"), "Potential pore-clogging ingredients.", "MEDIUM"),
)

# Category -> (ingredient substrings, product count that reads as "full")
BALANCE_CATEGORIES: Dict[str, Tuple[Tuple[str, ...], int]] = {
    "exfoliation": (("glycolic", "salicylic", "lactic", "retinol", "tretinoin", "adapalene", "mandelic", "bha", "aha"), 2),
    "hydration": (("ceramide", "hyaluronic", "glycerin", "panthenol", "squalane", "centella"), 3),
    "protection": (("zinc oxide", "titanium", "vitamin c", "niacinamide", "tocopherol", "spf"), 2),
    "treatment": (("benzoyl", "azelaic", "peptide", "retinol", "salicylic"), 2),
}

# Every term group must match somewhere on the shelf for a rule to fire.
CONFLICT_RULES: Tuple[Tuple[Tuple[Tuple[str, ...], ...], str], ...] = (
    ((("retinol",), ("glycolic", "salicylic")), "Retinol + Exfoliating Acids (High irritation risk)"),
    ((("benzoyl",), ("retinol",)), "Benzoyl Peroxide + Retinol (May deactivate each other)"),
    ((("copper peptide",), ("ascorbic",)), "Copper Peptides + Vitamin C (Can destabilize)"),
)
SYNERGY_RULES: Tuple[Tuple[Tuple[Tuple[str, ...], ...], str], ...] = (
    ((("vitamin c",), ("zinc oxide", "titanium", "spf")), "Vitamin C + SPF (Boosts sun protection)"),
    ((("retinol",), ("ceramide", "hyaluronic")), "Retinol + Barrier Repair (Reduces side effects)"),
    ((("salicylic",), ("niacinamide",)), "BHA + Niacinamide (Pore minimizing duo)"),
)

ESSENTIAL_TYPES: Tuple[Tuple[ProductType, str], ...] = (
    (ProductType.CLEANSER, "Cleanser"),
    (ProductType.MOISTURIZER, "Moisturizer"),
    (ProductType.SPF, "Sunscreen"),
)
SINGLE_USE_TYPES = (ProductType.CLEANSER, ProductType.TONER, ProductType.MOISTURIZER, ProductType.SPF)

SHELF_PENALTIES = {
    "risky": 15,
    "conflict": 20,
    "missing": 10,
    "intensity": 20,
}

GRADE_CUTOFFS: Tuple[Tuple[int, Grade], ...] = ((90, "S"), (80, "A"), (70, "B"), (50, "C"))

BUYING_SETTINGS = {
    "significance": 10,
    "min_match": 70,
}


def _metric(profile: UserProfile, concern: str) -> int:
    return profile.biometrics.channel(concern)


def audit_product(
    product: Product,
    profile: UserProfile,
    prescription: Optional[Prescription] = None,
) -> ProductAudit:
    """Score one product against a profile without mutating it."""

    text = product.ingredient_text()
    warnings: List[AuditWarning] = []
    for concern, threshold, terms, reason, severity in AUDIT_RULES:
        if _metric(profile, concern) < threshold and any(term in text for term in terms):
            warnings.append(AuditWarning(reason=reason, severity=severity))

    score = product.suitability_score - len(warnings) * AUDIT_SETTINGS["warning_penalty"]

    prescription = prescription or get_clinical_prescription(profile)
    if any(name.lower() in text for name in prescription.ingredient_names):
        score += AUDIT_SETTINGS["prescribed_bonus"]

    adjusted = min(AUDIT_SETTINGS["max_score"], max(AUDIT_SETTINGS["min_score"], score))
    return ProductAudit(warnings=warnings, adjusted_score=adjusted)


def grade_for_score(score: float) -> Grade:
    for cutoff, grade in GRADE_CUTOFFS:
        if score >= cutoff:
            return grade
    return "D"


def _count_products_with(products: Sequence[Product], terms: Sequence[str]) -> int:
    return sum(
        1 for product in products if any(term in product.ingredient_text() for term in terms)
    )


def _rule_fires(text: str, groups: Sequence[Sequence[str]]) -> bool:
    return all(any(term in text for term in group) for group in groups)


def _primary_gap(profile: UserProfile) -> str:
    metrics = profile.biometrics
    if metrics.acne_active < 60:
        return "Acne"
    if metrics.hydration < 55:
        return "Hydration"
    if metrics.redness < 60:
        return "Sensitivity"
    return "Aging"


def analyze_shelf_health(products: Sequence[Product], profile: UserProfile) -> ShelfHealth:
    """Grade a whole shelf: risky items, balance, conflicts, gaps."""

    if not products:
        return ShelfHealth(
            score=0,
            grade="D",
            analysis=ShelfAnalysis(grade="D", critical_insight="Shelf is empty."),
        )

    metrics = profile.biometrics
    prescription = get_clinical_prescription(profile)
    analysis = ShelfAnalysis()

    for product in products:
        audit = audit_product(product, profile, prescription=prescription)
        if audit.warnings:
            analysis.risky_products.append(
                RiskyProduct(name=product.name, reason=audit.warnings[0].reason)
            )

    counts = {
        category: _count_products_with(products, terms)
        for category, (terms, _) in BALANCE_CATEGORIES.items()
    }
    analysis.balance = ShelfBalance(
        **{
            category: min(100.0, counts[category] / full * 100.0)
            for category, (_, full) in BALANCE_CATEGORIES.items()
        }
    )

    combined = " ".join(product.ingredient_text() for product in products)
    analysis.conflicts = [label for groups, label in CONFLICT_RULES if _rule_fires(combined, groups)]
    analysis.synergies = [label for groups, label in SYNERGY_RULES if _rule_fires(combined, groups)]

    types = [product.type for product in products]
    analysis.missing = [label for kind, label in ESSENTIAL_TYPES if kind not in types]

    gap = _primary_gap(profile)
    if gap == "Acne" and counts["exfoliation"] == 0:
        analysis.missing.append("Acne Treatment")
    if gap == "Hydration" and counts["hydration"] < 2:
        analysis.missing.append("Hydrating Serum")
    if gap == "Aging" and counts["treatment"] == 0:
        analysis.missing.append("Anti-Aging Active")

    analysis.redundancies = [
        f"Multiple {kind.value.lower()} products"
        for kind in SINGLE_USE_TYPES
        if types.count(kind) > 1
    ]

    score = 100
    score -= len(analysis.risky_products) * SHELF_PENALTIES["risky"]
    score -= len(analysis.conflicts) * SHELF_PENALTIES["conflict"]
    score -= len(analysis.missing) * SHELF_PENALTIES["missing"]

    if metrics.redness < 60 and counts["exfoliation"] > 1:
        score -= SHELF_PENALTIES["intensity"]
        analysis.critical_insight = "Routine is too aggressive for your sensitive skin."
    elif metrics.hydration < 50 and counts["hydration"] < 1:
        score -= SHELF_PENALTIES["intensity"]
        analysis.critical_insight = "Severe lack of hydration for dry skin type."
    elif not analysis.missing and not analysis.conflicts:
        analysis.critical_insight = "Excellent routine balance and coverage."
    elif analysis.conflicts:
        analysis.critical_insight = "Chemical conflicts detected. Separate actives to AM/PM."
    elif analysis.missing:
        analysis.critical_insight = f"Incomplete routine. Missing core {analysis.missing[0].lower()}."
    else:
        analysis.critical_insight = "Solid foundation, consider targeting specific concerns."

    score = max(0, min(100, score))
    analysis.grade = grade_for_score(score)
    logger.debug(
        "Shelf graded %s (%d): %d risky, %d conflicts, missing %s",
        analysis.grade, score, len(analysis.risky_products), len(analysis.conflicts), analysis.missing,
    )
    return ShelfHealth(score=score, grade=analysis.grade, analysis=analysis)


def analyze_product_context(product: Product, shelf: Sequence[Product]) -> ProductContext:
    """Check a candidate product against what is already on the shelf."""

    conflicts: List[str] = []
    text = product.ingredient_text()
    shelf_text = " ".join(item.ingredient_text() for item in shelf)

    if "retinol" in text and "retinol" in shelf_text:
        conflicts.append("Redundant Retinol")
    if "exfoliant" in text and "retinol" in shelf_text:
        conflicts.append("Exfoliant + Retinol Caution")

    type_count = sum(1 for item in shelf if item.type == product.type)
    return ProductContext(conflicts=conflicts, type_count=type_count)


def get_buying_decision(
    product: Product, shelf: Sequence[Product], profile: UserProfile
) -> BuyingDecision:
    prescription = get_clinical_prescription(profile)
    audit = audit_product(product, profile, prescription=prescription)
    context = analyze_product_context(product, shelf)
    score = audit.adjusted_score
    margin = BUYING_SETTINGS["significance"]

    existing = [item for item in shelf if item.type == product.type]
    best_existing: Optional[int] = None
    if existing:
        best_existing = max(
            audit_product(item, profile, prescription=prescription).adjusted_score
            for item in existing
        )

    kind = product.type.value.lower()
    if audit.warnings:
        verdict = Verdict(
            decision="AVOID",
            title="Not Recommended",
            description="Contains ingredients not suitable for your skin.",
        )
    elif context.conflicts:
        verdict = Verdict(
            decision="CAUTION",
            title="Conflict Detected",
            description="Clashes with products currently on your shelf.",
        )
    elif best_existing is not None:
        if score > best_existing + margin:
            verdict = Verdict(
                decision="SWAP",
                title="Upgrade Found",
                description=f"Significantly better than your current {kind}.",
            )
        elif score < best_existing - margin:
            verdict = Verdict(
                decision="SKIP",
                title="Keep Your Current Pick",
                description=f"Your current {kind} is a better match.",
            )
        else:
            verdict = Verdict(
                decision="COMPARE",
                title="Duplicate Step",
                description=f"You already have a {kind}.",
            )
    elif score < BUYING_SETTINGS["min_match"]:
        verdict = Verdict(
            decision="AVOID",
            title="Low Match",
            description="There are better options for your metrics.",
        )
    else:
        verdict = Verdict(
            decision="BUY",
            title="Approved",
            description="Great addition to your routine.",
        )

    comparison = "EQUAL"
    if best_existing is not None:
        if score > best_existing:
            comparison = "BETTER"
        elif score < best_existing:
            comparison = "WORSE"

    logger.debug("Buying decision for %s: %s", product.name, verdict.decision)
    return BuyingDecision(
        verdict=verdict,
        audit=audit,
        shelf_conflicts=context.conflicts,
        existing_same_type=existing,
        comparison=comparison,
    )


__all__ = [
    "AUDIT_RULES",
    "GRADE_CUTOFFS",
    "analyze_product_context",
    "analyze_shelf_health",
    "audit_product",
    "get_buying_decision",
    "grade_for_score",
]
