"""Profile, product and derived-result models shared by the clinical engine."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.analyzers.metrics import NEUTRAL_SCORE, SkinMetrics, coerce_score

GOAL_LABELS = (
    "Clear Acne & Blemishes",
    "Smooth & Hydrated Skin",
    "Look Younger & Firm",
    "Brighten Dark Spots",
)
MAX_GOALS = 2


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class ProductType(str, Enum):
    CLEANSER = "CLEANSER"
    TONER = "TONER"
    SERUM = "SERUM"
    MOISTURIZER = "MOISTURIZER"
    SPF = "SPF"
    TREATMENT = "TREATMENT"
    FOUNDATION = "FOUNDATION"
    CONCEALER = "CONCEALER"
    PRIMER = "PRIMER"
    POWDER = "POWDER"
    BLUSH = "BLUSH"
    BRONZER = "BRONZER"
    SETTING_SPRAY = "SETTING_SPRAY"
    UNKNOWN = "UNKNOWN"


def coerce_product_type(value: Any) -> ProductType:
    if isinstance(value, ProductType):
        return value
    if isinstance(value, str):
        try:
            return ProductType(value.strip().upper())
        except ValueError:
            pass
    return ProductType.UNKNOWN


class UserPreferences(CamelModel):
    goals: List[str] = Field(default_factory=list)
    sensitivity: Literal["NOT_SENSITIVE", "MILD", "VERY_SENSITIVE"] = "NOT_SENSITIVE"
    complexity: Literal["SIMPLE", "MODERATE", "ADVANCED"] = "MODERATE"
    sunscreen_usage: Literal["DAILY", "SUNNY", "RARELY"] = "SUNNY"
    lifestyle: List[str] = Field(default_factory=list)
    buying_priority: Optional[str] = None

    @field_validator("goals")
    @classmethod
    def _limit_goals(cls, goals: List[str]) -> List[str]:
        ordered: List[str] = []
        for goal in goals:
            if goal not in ordered:
                ordered.append(goal)
        return ordered[:MAX_GOALS]


class UserProfile(CamelModel):
    name: str = ""
    age: int = 25
    biometrics: SkinMetrics
    preferences: Optional[UserPreferences] = None

    @property
    def goals(self) -> List[str]:
        return list(self.preferences.goals) if self.preferences else []


class IngredientRisk(CamelModel):
    ingredient: str
    risk_level: str = "LOW"
    reason: str = ""


class IngredientBenefit(CamelModel):
    ingredient: str
    target: str = ""
    description: str = ""
    relevance: str = ""


class Product(CamelModel):
    id: str
    name: str = "Unknown Product"
    brand: str = "Unknown Brand"
    ingredients: List[str] = Field(default_factory=list)
    type: ProductType = ProductType.UNKNOWN
    suitability_score: int = NEUTRAL_SCORE
    risks: List[IngredientRisk] = Field(default_factory=list)
    benefits: List[IngredientBenefit] = Field(default_factory=list)
    date_scanned: Optional[float] = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> ProductType:
        return coerce_product_type(value)

    @field_validator("suitability_score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> int:
        return coerce_score(value)

    def ingredient_text(self) -> str:
        """Lower-cased ingredient list joined for substring matching."""

        return " ".join(item.lower() for item in self.ingredients)


# -- derived results -------------------------------------------------------


class PrescribedIngredient(CamelModel):
    name: str
    action: str


class RankedConcern(CamelModel):
    concern: str
    raw_score: int
    urgency: float


class Prescription(CamelModel):
    top_concerns: List[str]
    ingredients: List[PrescribedIngredient]
    avoid: List[str]
    ranking: List[RankedConcern] = Field(default_factory=list)

    @property
    def ingredient_names(self) -> List[str]:
        return [item.name for item in self.ingredients]


class RoutineRecommendation(CamelModel):
    ingredients: List[str]
    benefit: str
    formulation: str
    vehicle: str
    action_type: str
    from_prescription: bool = False


class AuditWarning(CamelModel):
    reason: str
    severity: Literal["HIGH", "MEDIUM"]


class ProductAudit(CamelModel):
    warnings: List[AuditWarning]
    adjusted_score: int


class RiskyProduct(CamelModel):
    name: str
    reason: str


class ShelfBalance(CamelModel):
    exfoliation: float = 0.0
    hydration: float = 0.0
    protection: float = 0.0
    treatment: float = 0.0


Grade = Literal["S", "A", "B", "C", "D"]


class ShelfAnalysis(CamelModel):
    risky_products: List[RiskyProduct] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    redundancies: List[str] = Field(default_factory=list)
    synergies: List[str] = Field(default_factory=list)
    balance: ShelfBalance = Field(default_factory=ShelfBalance)
    grade: Grade = "C"
    critical_insight: str = ""


class ShelfHealth(CamelModel):
    score: int
    grade: Grade
    analysis: ShelfAnalysis

    @property
    def critical_insight(self) -> str:
        return self.analysis.critical_insight


class ProductContext(CamelModel):
    conflicts: List[str]
    type_count: int


class Verdict(CamelModel):
    decision: Literal["BUY", "AVOID", "CAUTION", "SWAP", "SKIP", "COMPARE"]
    title: str
    description: str


class BuyingDecision(CamelModel):
    verdict: Verdict
    audit: ProductAudit
    shelf_conflicts: List[str]
    existing_same_type: List[Product]
    comparison: Literal["BETTER", "WORSE", "EQUAL"]


class ShelfMatch(CamelModel):
    product: Product
    score: int
    audit: ProductAudit
    has_prescribed: bool


__all__ = [
    "AuditWarning",
    "BuyingDecision",
    "GOAL_LABELS",
    "IngredientBenefit",
    "IngredientRisk",
    "PrescribedIngredient",
    "Prescription",
    "Product",
    "ProductAudit",
    "ProductContext",
    "ProductType",
    "RankedConcern",
    "RiskyProduct",
    "RoutineRecommendation",
    "ShelfAnalysis",
    "ShelfBalance",
    "ShelfHealth",
    "ShelfMatch",
    "UserPreferences",
    "UserProfile",
    "Verdict",
    "coerce_product_type",
]
