import math
import unittest
from unittest import mock

from src.analyzers.metrics import (
    ALL_CHANNELS,
    BLEND_WEIGHTS,
    SkinMetrics,
    average_metrics,
    blend_metrics,
    blend_scores,
    channel_field,
    compute_overall_score,
    normalize_score,
)


def make_metrics(default: int = 80, **overrides) -> SkinMetrics:
    values = {name: default for name in ALL_CHANNELS}
    values.update(overrides)
    return SkinMetrics(**values)


class NormalizeScoreTests(unittest.TestCase):
    def test_clamps_to_floor_and_ceiling(self) -> None:
        self.assertEqual(normalize_score(-400.0), 18)
        self.assertEqual(normalize_score(17.9), 18)
        self.assertEqual(normalize_score(98.7), 98)
        self.assertEqual(normalize_score(250.0), 98)

    def test_floors_in_range_values(self) -> None:
        self.assertEqual(normalize_score(55.9), 55)
        self.assertEqual(normalize_score(55.0), 55)

    def test_nan_becomes_neutral(self) -> None:
        self.assertEqual(normalize_score(math.nan), 70)
        self.assertEqual(normalize_score(None), 70)

    def test_monotonic_non_decreasing(self) -> None:
        previous = normalize_score(-50.0)
        raw = -50.0
        while raw < 150.0:
            raw += 0.7
            current = normalize_score(raw)
            self.assertGreaterEqual(current, previous)
            self.assertTrue(18 <= current <= 98)
            previous = current


class OverallScoreTests(unittest.TestCase):
    def test_extremes_are_normalised(self) -> None:
        perfect = {name: 100 for name in ALL_CHANNELS}
        worst = {name: 0 for name in ALL_CHANNELS}
        self.assertEqual(compute_overall_score(perfect), 98)
        self.assertEqual(compute_overall_score(worst), 18)

    def test_heavier_channels_move_the_score_more(self) -> None:
        base = {name: 80 for name in ALL_CHANNELS}
        acne = dict(base, acne_active=40)
        circles = dict(base, dark_circles=40)
        self.assertLess(compute_overall_score(acne), compute_overall_score(circles))


class BlendTests(unittest.TestCase):
    def test_fixed_weights(self) -> None:
        self.assertEqual(blend_scores(50, 100), 90)
        self.assertEqual(blend_scores(0, 0), 0)

    def test_exact_halves_round_up(self) -> None:
        with mock.patch.dict(BLEND_WEIGHTS, {"local": 0.5, "remote": 0.5}):
            self.assertEqual(blend_scores(0, 1), 1)
            self.assertEqual(blend_scores(2, 3), 3)
            self.assertEqual(blend_scores(70, 71), 71)

    def test_identical_inputs_are_unchanged(self) -> None:
        for value in range(0, 101):
            self.assertEqual(blend_scores(value, value), value)

    def test_single_estimate_passes_through(self) -> None:
        local = make_metrics(60)
        remote = make_metrics(90)
        self.assertIs(blend_metrics(local, None), local)
        self.assertIs(blend_metrics(None, remote), remote)
        self.assertIsNone(blend_metrics(None, None))

    def test_blend_keeps_remote_summary(self) -> None:
        local = make_metrics(50)
        remote = make_metrics(100).model_copy(
            update={"analysis_summary": "Calm skin", "observations": {"redness": "Minimal"}}
        )
        blended = blend_metrics(local, remote)

        self.assertEqual(blended.acne_active, 90)
        self.assertEqual(blended.analysis_summary, "Calm skin")
        self.assertEqual(blended.observations, {"redness": "Minimal"})


class AverageTests(unittest.TestCase):
    def test_empty_buffer_is_neutral(self) -> None:
        averaged = average_metrics([])
        self.assertTrue(all(value == 70 for value in averaged.channels().values()))

    def test_rounds_half_up(self) -> None:
        averaged = average_metrics([make_metrics(60), make_metrics(81)])
        self.assertEqual(averaged.redness, 71)
        self.assertEqual(averaged.overall_score, 71)


class SkinMetricsModelTests(unittest.TestCase):
    def test_malformed_channels_become_neutral(self) -> None:
        metrics = make_metrics(acne_active="abc", redness=math.nan, hydration=None)
        self.assertEqual(metrics.acne_active, 70)
        self.assertEqual(metrics.redness, 70)
        self.assertEqual(metrics.hydration, 70)

    def test_values_are_rounded_and_clamped(self) -> None:
        metrics = make_metrics(acne_active=120, redness=-3, hydration="55.5", oiliness=41.4)
        self.assertEqual(metrics.acne_active, 100)
        self.assertEqual(metrics.redness, 0)
        self.assertEqual(metrics.hydration, 56)
        self.assertEqual(metrics.oiliness, 41)

    def test_camel_case_wire_format(self) -> None:
        metrics = SkinMetrics.model_validate({"acneActive": 40, **{
            name: 80 for name in ALL_CHANNELS if name != "acne_active"
        }})
        self.assertEqual(metrics.channel("acneActive"), 40)
        self.assertEqual(metrics.channel("acne_active"), 40)
        self.assertIn("darkCircles", metrics.model_dump(by_alias=True))

    def test_unknown_channel_lookup_raises(self) -> None:
        with self.assertRaises(KeyError):
            channel_field("freckles")


if __name__ == "__main__":
    unittest.main()
