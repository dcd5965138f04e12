"""Greedy AM/PM routine allocation of prescribed actives.

Slots are filled one at a time in :data:`SLOT_ORDER`. Each slot takes the
first unused prescribed ingredient that fits its vehicle and time of day;
there is no backtracking, so earlier (PM-first) slots win scarce actives.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from src.analyzers.metrics import SkinMetrics

from .models import (
    CamelModel,
    Prescription,
    Product,
    ProductType,
    RoutineRecommendation,
    ShelfMatch,
    UserProfile,
)
from .prescription import get_clinical_prescription
from .shelf import audit_product
from .skin_profile import skin_traits

logger = logging.getLogger(__name__)


class Slot(NamedTuple):
    key: str
    type: str
    time: str


SLOT_ORDER: Tuple[Slot, ...] = (
    Slot("SERUM_PM", "SERUM", "PM"),
    Slot("CLEANSER_PM", "CLEANSER", "PM"),
    Slot("TREATMENT_PM", "TREATMENT", "PM"),
    Slot("SERUM_AM", "SERUM", "AM"),
    Slot("CLEANSER_AM", "CLEANSER", "AM"),
    Slot("TONER_AM", "TONER", "AM"),
    Slot("TONER_PM", "TONER", "PM"),
    Slot("MOISTURIZER_PM", "MOISTURIZER", "PM"),
    Slot("SPF_AM", "SPF", "AM"),
)

VEHICLE_MAP: Mapping[str, Tuple[str, ...]] = {
    "CLEANSER": ("Salicylic Acid", "Benzoyl Peroxide", "Glycolic Acid", "Lactic Acid", "BHA", "AHA", "Tea Tree", "Oat"),
    "TONER": ("Glycolic Acid", "Salicylic Acid", "Lactic Acid", "BHA", "AHA", "Centella", "Green Tea"),
    "SERUM": ("Retinol", "Retinal", "Vitamin C", "Niacinamide", "Tranexamic Acid", "Alpha Arbutin", "Peptides", "Copper Peptides", "Azelaic Acid"),
    "MOISTURIZER": ("Ceramides", "Urea", "Peptides", "Centella", "Panthenol", "Squalane", "Hyaluronic Acid"),
    "SPF": ("Zinc Oxide", "Titanium Dioxide", "Vitamin C", "Niacinamide"),
    "TREATMENT": ("Benzoyl Peroxide", "Salicylic Acid", "Adapalene", "Azelaic Acid", "Retinol", "Tretinoin", "Sulfur"),
}

PM_ONLY = ("Retinol", "Retinal", "Growth Factors", "Glycolic Acid", "AHA")
AM_ONLY = ("Vitamin C", "SPF")

# Per slot type, the first matching skin trait decides the texture.
FORMULATIONS: Mapping[str, Tuple[Tuple[Optional[str], str], ...]] = {
    "CLEANSER": (("oily", "Foaming Gel"), ("dry", "Milky Lotion"), ("sensitive", "Fragrance-Free Gel"), (None, "Gentle Gel")),
    "TONER": (("oily", "Light Liquid"), ("dry", "Milky Essence"), (None, "Hydrating Mist")),
    "SERUM": (("oily", "Water-based"), ("dry", "Oil-in-Water Emulsion"), (None, "Lightweight Fluid")),
    "MOISTURIZER": (("oily", "Gel-Cream"), ("dry", "Rich Cream or Balm"), (None, "Light Cream")),
    "SPF": (("oily", "Matte / Oil-Free"), ("sensitive", "Mineral (Zinc Based)"), (None, "Invisible Finish")),
    "TREATMENT": ((None, "Spot Gel"),),
}

# (slot type, time of day or None for any time) -> (ingredients, benefit)
FALLBACK_STEPS: Mapping[Tuple[str, Optional[str]], Tuple[Tuple[str, ...], str]] = {
    ("CLEANSER", None): (("Glycerin", "Ceramides"), "Gentle Cleansing"),
    ("TONER", None): (("Hyaluronic Acid", "Rose Water"), "pH Balance"),
    ("SERUM", "AM"): (("Vitamin E", "Ferulic Acid"), "Antioxidant Protection"),
    ("SERUM", "PM"): (("Peptides", "Niacinamide"), "Repair & Recovery"),
    ("MOISTURIZER", None): (("Ceramides", "Squalane"), "Barrier Support"),
    ("SPF", None): (("Zinc Oxide", "Avobenzone"), "UV Defense"),
    ("TREATMENT", None): (("Spot Treatment", "Patches"), "Targeted Correction"),
}

# Oily skin swaps the gentle cleanser default for an oil-control wash. This
# is static fallback content, not an allocation: it is not tracked in the
# used set, so Salicylic Acid can show up here even when a prescribed
# Salicylic Acid already holds another slot.
OILY_CLEANSER_STEP: Tuple[Tuple[str, ...], str] = (("Salicylic Acid", "Tea Tree"), "Oil Control")

MAX_ALTERNATIVES = 2


def _contains_any(name: str, markers: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(marker.lower() in lowered for marker in markers)


def fits_slot(ingredient: str, slot: Slot) -> bool:
    if not _contains_any(ingredient, VEHICLE_MAP.get(slot.type, ())):
        return False
    if slot.time == "AM" and _contains_any(ingredient, PM_ONLY):
        return False
    if slot.time == "PM" and _contains_any(ingredient, AM_ONLY):
        return False
    return True


def formulation_for(slot_type: str, traits: frozenset) -> str:
    for trait, label in FORMULATIONS.get(slot_type, ()):
        if trait is None or trait in traits:
            return label
    return "Standard"


def fallback_for(slot: Slot, traits: frozenset) -> Tuple[Tuple[str, ...], str]:
    """Default content for a slot no prescribed ingredient could fill.

    Lookup order: the oily-skin cleanser, then the entry for the slot's time
    of day, then the slot type's any-time entry.
    """

    if slot.type == "CLEANSER" and "oily" in traits:
        return OILY_CLEANSER_STEP
    step = FALLBACK_STEPS.get((slot.type, slot.time))
    if step is None:
        step = FALLBACK_STEPS.get((slot.type, None))
    return step if step is not None else ((), "Maintenance")


def build_routine_plan(
    prescription: Prescription, metrics: SkinMetrics
) -> Dict[str, RoutineRecommendation]:
    """Fill every routine slot, in processing order, from the prescription."""

    traits = skin_traits(metrics)
    used: set = set()
    plan: Dict[str, RoutineRecommendation] = {}

    for slot in SLOT_ORDER:
        formulation = formulation_for(slot.type, traits)
        matches = [
            item
            for item in prescription.ingredients
            if item.name not in used and fits_slot(item.name, slot)
        ]

        if matches:
            primary = matches[0]
            used.add(primary.name)
            alternatives = [item.name for item in matches[1:1 + MAX_ALTERNATIVES]]
            plan[slot.key] = RoutineRecommendation(
                ingredients=[primary.name, *alternatives],
                benefit=primary.action,
                formulation=formulation,
                vehicle=slot.type,
                action_type="Wash-off Treatment" if slot.type == "CLEANSER" else "Leave-on Active",
                from_prescription=True,
            )
            continue

        ingredients, benefit = fallback_for(slot, traits)
        plan[slot.key] = RoutineRecommendation(
            ingredients=list(ingredients),
            benefit=benefit,
            formulation=formulation,
            vehicle=slot.type,
            action_type="Essential Step",
        )

    logger.debug(
        "Routine slots filled from prescription: %s",
        [key for key, rec in plan.items() if rec.from_prescription],
    )
    return plan


# -- routine presentation ---------------------------------------------------

ROUTINE_LAYOUTS: Mapping[str, Mapping[str, Tuple[str, ...]]] = {
    "BASIC": {
        "AM": ("CLEANSER_AM", "SERUM_AM", "SPF_AM"),
        "PM": ("CLEANSER_PM", "SERUM_PM", "MOISTURIZER_PM"),
    },
    # Advanced evenings open with a double cleanse.
    "ADVANCED": {
        "AM": ("CLEANSER_AM", "TONER_AM", "SERUM_AM", "SPF_AM"),
        "PM": ("CLEANSER_PM", "CLEANSER_PM", "TONER_PM", "SERUM_PM", "TREATMENT_PM", "MOISTURIZER_PM"),
    },
}

COMPATIBLE_TYPES: Mapping[str, Tuple[ProductType, ...]] = {
    "CLEANSER": (ProductType.CLEANSER,),
    "TONER": (ProductType.TONER,),
    "SERUM": (ProductType.SERUM, ProductType.TREATMENT),
    "TREATMENT": (ProductType.TREATMENT, ProductType.SERUM),
    "MOISTURIZER": (ProductType.MOISTURIZER,),
    "SPF": (ProductType.SPF,),
}
PRESCRIBED_MATCH_BONUS = 15


def routine_layout(complexity: Optional[str]) -> Mapping[str, Tuple[str, ...]]:
    return ROUTINE_LAYOUTS["ADVANCED" if complexity == "ADVANCED" else "BASIC"]


def _fits_step(product: Product, slot_type: str) -> bool:
    if product.type in COMPATIBLE_TYPES.get(slot_type, ()):
        return True
    return (
        slot_type == "SPF"
        and product.type == ProductType.MOISTURIZER
        and "spf" in product.name.lower()
    )


def find_best_match(
    slot_type: str,
    shelf: Sequence[Product],
    profile: UserProfile,
    prescription: Optional[Prescription] = None,
) -> Optional[ShelfMatch]:
    """Pick the shelf product that best serves one routine step."""

    prescription = prescription or get_clinical_prescription(profile)
    candidates: List[ShelfMatch] = []
    for product in shelf:
        if not _fits_step(product, slot_type):
            continue
        audit = audit_product(product, profile, prescription=prescription)
        text = product.ingredient_text()
        has_prescribed = any(name.lower() in text for name in prescription.ingredient_names)
        score = audit.adjusted_score + (PRESCRIBED_MATCH_BONUS if has_prescribed else 0)
        candidates.append(
            ShelfMatch(product=product, score=score, audit=audit, has_prescribed=has_prescribed)
        )

    if not candidates:
        return None
    return max(candidates, key=lambda match: match.score)


class RoutineStep(CamelModel):
    step: str
    slot: str
    recommendation: RoutineRecommendation
    match: Optional[ShelfMatch] = None


class Routine(CamelModel):
    skin_complexity: str
    am: List[RoutineStep]
    pm: List[RoutineStep]
    plan: Dict[str, RoutineRecommendation]


def build_routine(profile: UserProfile, shelf: Sequence[Product] = ()) -> Routine:
    """Assemble the AM/PM routine for a profile, paired with shelf products."""

    prescription = get_clinical_prescription(profile)
    plan = build_routine_plan(prescription, profile.biometrics)
    complexity = profile.preferences.complexity if profile.preferences else None
    layout = routine_layout(complexity)

    def _steps(time: str) -> List[RoutineStep]:
        steps = []
        for index, key in enumerate(layout[time], start=1):
            slot_type = key.rsplit("_", 1)[0]
            steps.append(
                RoutineStep(
                    step=f"{index:02d}",
                    slot=key,
                    recommendation=plan[key],
                    match=find_best_match(slot_type, shelf, profile, prescription),
                )
            )
        return steps

    return Routine(
        skin_complexity="ADVANCED" if complexity == "ADVANCED" else "BASIC",
        am=_steps("AM"),
        pm=_steps("PM"),
        plan=plan,
    )


__all__ = [
    "FALLBACK_STEPS",
    "OILY_CLEANSER_STEP",
    "FORMULATIONS",
    "ROUTINE_LAYOUTS",
    "Routine",
    "RoutineStep",
    "SLOT_ORDER",
    "Slot",
    "VEHICLE_MAP",
    "build_routine",
    "build_routine_plan",
    "fallback_for",
    "find_best_match",
    "fits_slot",
    "routine_layout",
]
