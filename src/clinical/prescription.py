"""Clinical prioritisation: rank skin concerns and derive an active prescription.

Sign convention: metric channels are health scores (100 = perfect). Ranking
works on *urgency* instead, ``urgency = 100 - health + boosts``, so the most
urgent concern sorts first and clinical boosts are positive numbers.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from src.analyzers.metrics import SkinMetrics

from .models import (
    PrescribedIngredient,
    Prescription,
    RankedConcern,
    UserPreferences,
    UserProfile,
)

logger = logging.getLogger(__name__)

# Fixed concern order; also the final tie-break.
CONCERN_ORDER: Tuple[str, ...] = (
    "acneActive",
    "acneScars",
    "pigmentation",
    "redness",
    "wrinkleFine",
    "wrinkleDeep",
    "hydration",
    "oiliness",
    "poreSize",
    "blackheads",
    "texture",
    "sagging",
    "darkCircles",
)

CLINICAL_GRAVITY: Mapping[str, float] = {"acneActive": 15.0, "redness": 10.0}

GOAL_CONCERNS: Mapping[str, str] = {
    "Look Younger & Firm": "wrinkleFine",
    "Clear Acne & Blemishes": "acneActive",
    "Brighten Dark Spots": "pigmentation",
    "Smooth & Hydrated Skin": "hydration",
}
GOAL_NUDGE = 5.0
# Concerns this unhealthy keep their place against goal nudges.
CRITICAL_SCORE = 50

TOP_CONCERNS = 3
MAX_INGREDIENTS = 4

CONCERN_INGREDIENTS: Mapping[str, Tuple[Tuple[str, str], ...]] = {
    "acneActive": (("Salicylic Acid", "Unclogs pores & clears acne."), ("Benzoyl Peroxide", "Kills acne bacteria.")),
    "acneScars": (("Azelaic Acid", "Fades post-acne redness."), ("Niacinamide", "Fades dark spots.")),
    "pigmentation": (("Vitamin C", "Brightens skin tone."), ("Tranexamic Acid", "Prevents pigment transfer.")),
    "redness": (("Centella", "Soothes inflammation."), ("Panthenol", "Strengthens barrier.")),
    "wrinkleFine": (("Retinol", "Smooths fine lines."), ("Peptides", "Boosts collagen.")),
    "wrinkleDeep": (("Retinal", "Reduces deep wrinkles."), ("Growth Factors", "Deep tissue repair.")),
    "hydration": (("Hyaluronic Acid", "Deep hydration."), ("Polyglutamic Acid", "Locks in moisture.")),
    "oiliness": (("Niacinamide", "Balances oil production."), ("Green Tea", "Antioxidant & Oil control.")),
    "poreSize": (("BHA", "Cleans out pores."), ("Niacinamide", "Tightens pore appearance.")),
    "blackheads": (("Salicylic Acid", "Dissolves blackheads."), ("Clay", "Absorbs excess oil.")),
    "texture": (("Glycolic Acid", "Exfoliates surface."), ("Urea", "Softens rough skin.")),
    "sagging": (("Copper Peptides", "Firms skin."), ("Vitamin C", "Boosts firmness.")),
    "darkCircles": (("Caffeine", "Depuffs eyes."),),
}

# (concern, threshold, ingredients to avoid when the score is below it)
AVOID_RULES: Tuple[Tuple[str, int, Tuple[str, ...]], ...] = (
    ("redness", 65, ("Fragrance", "Alcohol Denat", "Essential Oils")),
    ("hydration", 55, ("Clay Masks", "SLS", "High % Acids")),
    ("acneActive", 65, ("Coconut Oil", "Shea Butter")),
)
DEFAULT_AVOID = "Harsh Physical Scrubs"


def _nudged_concerns(goals: Iterable[str]) -> List[str]:
    concerns: List[str] = []
    for goal in list(goals)[:2]:
        concern = GOAL_CONCERNS.get(goal)
        if concern and concern not in concerns:
            concerns.append(concern)
    return concerns


def rank_concerns(
    metrics: SkinMetrics, preferences: Optional[UserPreferences] = None
) -> List[RankedConcern]:
    """Order all concerns from most to least urgent.

    Clinical gravity is applied first. Goal nudges then act as tie-breakers:
    a nudged concern may not overtake any concern that already outranked it
    and is either gravity-boosted or critically low.
    """

    raw: Dict[str, int] = {concern: metrics.channel(concern) for concern in CONCERN_ORDER}
    urgency: Dict[str, float] = {
        concern: 100.0 - raw[concern] + CLINICAL_GRAVITY.get(concern, 0.0)
        for concern in CONCERN_ORDER
    }

    base_order = sorted(
        CONCERN_ORDER, key=lambda c: (-urgency[c], CONCERN_ORDER.index(c))
    )
    base_rank = {concern: idx for idx, concern in enumerate(base_order)}

    goals = preferences.goals if preferences else []
    for concern in _nudged_concerns(goals):
        protected = [
            urgency[other]
            for other in CONCERN_ORDER
            if other != concern
            and base_rank[other] < base_rank[concern]
            and (other in CLINICAL_GRAVITY or raw[other] < CRITICAL_SCORE)
        ]
        boosted = urgency[concern] + GOAL_NUDGE
        if protected:
            boosted = min(boosted, min(protected))
        urgency[concern] = boosted

    ordered = sorted(CONCERN_ORDER, key=lambda c: (-urgency[c], base_rank[c]))
    return [
        RankedConcern(concern=concern, raw_score=raw[concern], urgency=urgency[concern])
        for concern in ordered
    ]


def prescribe_ingredients(concerns: Sequence[str]) -> List[PrescribedIngredient]:
    """Map concerns to actives, keeping first-seen order without duplicates."""

    seen = set()
    prescribed: List[PrescribedIngredient] = []
    for concern in concerns:
        for name, action in CONCERN_INGREDIENTS.get(concern, ()):
            if name in seen:
                continue
            seen.add(name)
            prescribed.append(PrescribedIngredient(name=name, action=action))
    return prescribed[:MAX_INGREDIENTS]


def avoid_list(metrics: SkinMetrics) -> List[str]:
    avoid: List[str] = []
    for concern, threshold, items in AVOID_RULES:
        if metrics.channel(concern) < threshold:
            avoid.extend(items)
    return avoid or [DEFAULT_AVOID]


def get_clinical_prescription(
    profile: UserProfile | SkinMetrics,
    preferences: Optional[UserPreferences] = None,
) -> Prescription:
    """Build the prescription for a profile (or bare metrics + preferences)."""

    if isinstance(profile, UserProfile):
        metrics = profile.biometrics
        preferences = preferences or profile.preferences
    else:
        metrics = profile

    ranking = rank_concerns(metrics, preferences)
    top = [item.concern for item in ranking[:TOP_CONCERNS]]
    logger.debug("Top concerns: %s", top)

    return Prescription(
        top_concerns=top,
        ingredients=prescribe_ingredients(top),
        avoid=avoid_list(metrics),
        ranking=ranking,
    )


__all__ = [
    "AVOID_RULES",
    "CLINICAL_GRAVITY",
    "CONCERN_INGREDIENTS",
    "CONCERN_ORDER",
    "GOAL_CONCERNS",
    "avoid_list",
    "get_clinical_prescription",
    "prescribe_ingredients",
    "rank_concerns",
]
