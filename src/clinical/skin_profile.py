"""Skin-type labelling, concern groups and goal-vs-need strategy hints."""
from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional

from src.analyzers.metrics import SkinMetrics

from .models import CamelModel, UserPreferences

SKIN_TYPE_THRESHOLDS = {
    "sensitive_redness": 60,
    "oily_oiliness": 50,
    "dry_hydration": 55,
    "critically_dry_hydration": 45,
    "very_dry_oiliness": 80,
    "combination_low": 50,
    "combination_high": 70,
}


def skin_traits(metrics: SkinMetrics) -> FrozenSet[str]:
    """Traits used to pick product textures: ``oily``, ``dry``, ``sensitive``."""

    cfg = SKIN_TYPE_THRESHOLDS
    traits = set()
    if metrics.oiliness < cfg["oily_oiliness"]:
        traits.add("oily")
    if metrics.hydration < cfg["dry_hydration"] or metrics.oiliness > cfg["very_dry_oiliness"]:
        traits.add("dry")
    if metrics.redness < cfg["sensitive_redness"]:
        traits.add("sensitive")
    return frozenset(traits)


def classify_skin_type(metrics: SkinMetrics) -> str:
    """Human-readable skin type such as ``"Sensitive + Dry"``.

    Critically low hydration wins over oiliness: peeling skin reflects light
    and reads as shine to the pixel heuristics.
    """

    cfg = SKIN_TYPE_THRESHOLDS
    parts: List[str] = []
    if metrics.redness < cfg["sensitive_redness"]:
        parts.append("Sensitive")

    if metrics.hydration < cfg["critically_dry_hydration"]:
        parts.append("Dry")
    elif metrics.oiliness < cfg["oily_oiliness"]:
        parts.append("Oily")
    elif metrics.hydration < cfg["dry_hydration"]:
        parts.append("Dry")
    elif cfg["combination_low"] < metrics.oiliness < cfg["combination_high"]:
        parts.append("Combination")
    else:
        parts.append("Normal")
    return " + ".join(parts)


class GroupAnalysis(CamelModel):
    blemish_score: float
    health_score: float
    aging_score: float
    priority_category: str
    priority_score: float
    summary: str


GROUP_SUMMARIES: Dict[str, str] = {
    "Blemishes": "Blemishes are the primary concern. We detected congestion and active spots.",
    "Skin Health": "Barrier health is compromised. Signs of sensitivity or dehydration detected.",
    "Aging Signs": "Early structural changes detected. Focus on collagen support.",
}
RESILIENT_SUMMARY = "Your skin is resilient and balanced. Focus on maintenance."


def group_scores(metrics: SkinMetrics) -> GroupAnalysis:
    blemish = (metrics.acne_active + metrics.acne_scars + metrics.blackheads + metrics.pore_size) / 4
    health = (metrics.hydration + metrics.oiliness + metrics.redness + metrics.texture) / 4
    aging = (
        metrics.pigmentation
        + metrics.dark_circles
        + metrics.wrinkle_fine
        + metrics.wrinkle_deep
        + metrics.sagging
    ) / 5

    groups = sorted(
        [("Blemishes", blemish), ("Skin Health", health), ("Aging Signs", aging)],
        key=lambda item: item[1],
    )
    name, value = groups[0]
    summary = RESILIENT_SUMMARY if value > 80 else GROUP_SUMMARIES[name]

    return GroupAnalysis(
        blemish_score=blemish,
        health_score=health,
        aging_score=aging,
        priority_category=name,
        priority_score=value,
        summary=metrics.analysis_summary or summary,
    )


class StrategyInsight(CamelModel):
    type: str
    title: str
    message: str
    sub_message: str


def strategy_insight(
    metrics: SkinMetrics, preferences: Optional[UserPreferences]
) -> Optional[StrategyInsight]:
    """Compare the primary goal with what the skin needs right now."""

    goals = preferences.goals if preferences else []
    if not goals:
        return None

    primary = goals[0]
    acne_critical = metrics.acne_active < 60
    barrier_critical = metrics.redness < 55 or metrics.hydration < 50

    if primary in ("Look Younger & Firm", "Brighten Dark Spots") and acne_critical:
        return StrategyInsight(
            type="CONFLICT",
            title="Prioritizing Health",
            message=f"You targeted {primary.lower()}, but active inflammation must be cleared first.",
            sub_message="We've focused the routine on stabilization. Anti-aging actives can be added once skin is clear.",
        )

    if primary != "Smooth & Hydrated Skin" and barrier_critical:
        return StrategyInsight(
            type="CONFLICT",
            title="Barrier Repair First",
            message="Your skin barrier is compromised. Strong actives for your goal may cause irritation right now.",
            sub_message="We're starting with repair. Your goal actives are phased in later.",
        )

    return StrategyInsight(
        type="ALIGNED",
        title="Goal Aligned",
        message=f"Your clinical needs align perfectly with your goal to {primary.lower()}.",
        sub_message="Routine optimized for maximum efficacy toward your target.",
    )


__all__ = [
    "GroupAnalysis",
    "StrategyInsight",
    "classify_skin_type",
    "group_scores",
    "skin_traits",
    "strategy_insight",
]
