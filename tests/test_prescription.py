import unittest

from src.analyzers.metrics import ALL_CHANNELS, SkinMetrics
from src.clinical.models import UserPreferences, UserProfile
from src.clinical.prescription import (
    avoid_list,
    get_clinical_prescription,
    prescribe_ingredients,
    rank_concerns,
)


def make_metrics(default: int = 80, **overrides) -> SkinMetrics:
    values = {name: default for name in ALL_CHANNELS}
    values.update(overrides)
    return SkinMetrics(**values)


def make_profile(metrics: SkinMetrics, goals=()) -> UserProfile:
    return UserProfile(
        name="Tester",
        biometrics=metrics,
        preferences=UserPreferences(goals=list(goals)),
    )


class RankConcernsTests(unittest.TestCase):
    def test_active_acne_ranks_first(self) -> None:
        metrics = make_metrics(acne_active=40, redness=75, hydration=75)
        result = get_clinical_prescription(make_profile(metrics))
        self.assertEqual(result.top_concerns[0], "acneActive")

    def test_gravity_overtakes_a_lower_raw_score(self) -> None:
        metrics = make_metrics(acne_active=45, pigmentation=35)
        ranking = rank_concerns(metrics)
        self.assertEqual([item.concern for item in ranking[:2]], ["acneActive", "pigmentation"])
        self.assertEqual(ranking[0].raw_score, 45)
        self.assertEqual(ranking[0].urgency, 70.0)

    def test_goal_nudge_breaks_ties(self) -> None:
        metrics = make_metrics(95, acne_active=100, redness=100, pigmentation=80, wrinkle_fine=80)

        plain = get_clinical_prescription(make_profile(metrics))
        nudged = get_clinical_prescription(make_profile(metrics, ["Look Younger & Firm"]))

        self.assertEqual(plain.top_concerns, ["pigmentation", "wrinkleFine", "acneActive"])
        self.assertEqual(nudged.top_concerns, ["wrinkleFine", "pigmentation", "acneActive"])

    def test_goal_nudge_never_overtakes_gravity(self) -> None:
        metrics = make_metrics(95, acne_active=90, redness=90, wrinkle_fine=84)
        ranking = rank_concerns(metrics, UserPreferences(goals=["Look Younger & Firm"]))
        self.assertEqual(
            [item.concern for item in ranking[:3]], ["acneActive", "redness", "wrinkleFine"]
        )

    def test_goal_nudge_never_overtakes_critical_concern(self) -> None:
        metrics = make_metrics(95, acne_active=100, redness=100, texture=45, wrinkle_fine=47)
        ranking = rank_concerns(metrics, UserPreferences(goals=["Look Younger & Firm"]))
        self.assertEqual([item.concern for item in ranking[:2]], ["texture", "wrinkleFine"])

    def test_ranking_is_deterministic(self) -> None:
        metrics = make_metrics(70, hydration=50, oiliness=50, pore_size=50)
        profile = make_profile(metrics, ["Smooth & Hydrated Skin", "Brighten Dark Spots"])

        first = get_clinical_prescription(profile)
        for _ in range(5):
            again = get_clinical_prescription(profile)
            self.assertEqual(again.model_dump_json(), first.model_dump_json())
        self.assertEqual(len(first.top_concerns), 3)
        self.assertEqual(len(first.ranking), 13)


class PrescriptionTests(unittest.TestCase):
    def test_ingredients_are_unique_and_capped(self) -> None:
        ingredients = prescribe_ingredients(["acneActive", "blackheads", "poreSize"])
        names = [item.name for item in ingredients]

        self.assertEqual(names, ["Salicylic Acid", "Benzoyl Peroxide", "Clay", "BHA"])

    def test_every_prescription_respects_cap(self) -> None:
        for low in ("acne_active", "redness", "hydration", "sagging", "dark_circles"):
            result = get_clinical_prescription(make_metrics(**{low: 20}))
            names = result.ingredient_names
            self.assertLessEqual(len(names), 4)
            self.assertEqual(len(names), len(set(names)))

    def test_avoid_list_defaults_to_scrubs(self) -> None:
        self.assertEqual(avoid_list(make_metrics(90)), ["Harsh Physical Scrubs"])

    def test_avoid_list_rules(self) -> None:
        avoid = avoid_list(make_metrics(90, redness=60, hydration=50, acne_active=64))
        self.assertEqual(
            avoid,
            [
                "Fragrance", "Alcohol Denat", "Essential Oils",
                "Clay Masks", "SLS", "High % Acids",
                "Coconut Oil", "Shea Butter",
            ],
        )

    def test_avoid_list_never_empty(self) -> None:
        for value in (0, 18, 50, 70, 98, 100):
            self.assertGreaterEqual(len(avoid_list(make_metrics(value))), 1)

    def test_accepts_bare_metrics_with_preferences(self) -> None:
        metrics = make_metrics(acne_active=40)
        by_profile = get_clinical_prescription(make_profile(metrics, ["Clear Acne & Blemishes"]))
        by_metrics = get_clinical_prescription(
            metrics, UserPreferences(goals=["Clear Acne & Blemishes"])
        )
        self.assertEqual(by_profile, by_metrics)

    def test_goals_are_capped_at_two(self) -> None:
        preferences = UserPreferences(
            goals=["Brighten Dark Spots", "Brighten Dark Spots", "Look Younger & Firm", "Clear Acne & Blemishes"]
        )
        self.assertEqual(preferences.goals, ["Brighten Dark Spots", "Look Younger & Firm"])


if __name__ == "__main__":
    unittest.main()
