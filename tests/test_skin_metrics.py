import unittest
from unittest import mock

import numpy as np

from src.analyzers.face_detection import (
    FaceBounds,
    detect_face_bounds,
    rgba_from_buffer,
)
from src.analyzers.skin_metrics import (
    SkinMetricsAnalyzer,
    calculate_blemishes,
    calculate_dark_circles,
    calculate_hydration,
    calculate_oiliness,
    calculate_pores,
    calculate_redness,
    calculate_sagging,
    calculate_wrinkles,
)
from src.analyzers.skin_roi import compute_roi_boxes, extract_face_rois


def solid_rgba(height: int, width: int, rgb) -> np.ndarray:
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[..., :3] = rgb
    image[..., 3] = 255
    return image


def textured_face(size: int = 240) -> np.ndarray:
    rng = np.random.default_rng(7)
    image = solid_rgba(size, size, (205, 150, 125))
    noise = rng.integers(-25, 25, size=(size, size, 1))
    image[..., :3] = np.clip(image[..., :3].astype(np.int16) + noise, 0, 255).astype(np.uint8)
    image[size // 2: size // 2 + 6, size // 3: size // 3 + 6, :3] = (200, 60, 60)
    return image


class FaceDetectionTests(unittest.TestCase):
    def test_dark_frame_has_no_face(self) -> None:
        bounds = detect_face_bounds(solid_rgba(120, 160, (0, 0, 0)))

        self.assertFalse(bounds.detected)
        self.assertEqual(bounds.center, (80.0, 60.0))
        self.assertEqual(bounds.region_size, (160.0, 120.0))

    def test_skin_frame_is_detected(self) -> None:
        bounds = detect_face_bounds(solid_rgba(200, 200, (200, 150, 120)))

        self.assertTrue(bounds.detected)
        self.assertEqual(bounds.skin_samples, 100)
        self.assertAlmostEqual(bounds.width, 300.0)
        self.assertAlmostEqual(bounds.height, 405.0)

    def test_flat_buffer_size_is_checked(self) -> None:
        data = bytes(4 * 4 * 4)
        self.assertEqual(rgba_from_buffer(data, 4, 4).shape, (4, 4, 4))
        with self.assertRaises(ValueError):
            rgba_from_buffer(data, 5, 4)


class RoiTests(unittest.TestCase):
    def test_regions_are_clamped_to_frame(self) -> None:
        bounds = FaceBounds(
            cx=10.0, cy=190.0, width=300.0, height=405.0,
            frame_width=200, frame_height=200, skin_samples=100,
        )
        for name, box in compute_roi_boxes(bounds).items():
            self.assertGreaterEqual(box.x, 0, name)
            self.assertGreaterEqual(box.y, 0, name)
            self.assertLessEqual(box.x + box.width, 200, name)
            self.assertLessEqual(box.y + box.height, 200, name)

    def test_every_region_is_extracted(self) -> None:
        image = solid_rgba(100, 100, (0, 0, 0))
        rois = extract_face_rois(image, detect_face_bounds(image))
        self.assertEqual(
            set(rois), {"forehead", "left_cheek", "right_cheek", "under_eye", "nose", "jaw"}
        )


SKIN = (200, 150, 120)
FLUSHED = (220, 60, 60)
DARK_SPOT = (60, 45, 36)


def striped_patch(rows: int, rgb, base=SKIN, size: int = 20) -> np.ndarray:
    """Square patch whose first ``rows`` rows differ; every row holds five samples."""

    patch = solid_rgba(size, size, base)
    patch[:rows, :, :3] = rgb
    return patch


class ChannelHeuristicTests(unittest.TestCase):
    def test_tiny_patch_has_no_wrinkles(self) -> None:
        self.assertEqual(calculate_wrinkles(solid_rgba(2, 2, (10, 10, 10))), (100.0, 100.0))

    def test_dark_under_eye_lowers_score(self) -> None:
        eye = solid_rgba(10, 10, (100, 100, 100))
        cheek = solid_rgba(10, 10, (125, 125, 125))
        self.assertAlmostEqual(calculate_dark_circles(eye, cheek), 60.0, places=4)
        self.assertAlmostEqual(calculate_dark_circles(cheek, cheek), 100.0, places=4)

    def test_redness_is_relative_to_the_patch(self) -> None:
        self.assertEqual(calculate_redness(solid_rgba(20, 20, SKIN)), 100.0)
        self.assertEqual(calculate_redness(solid_rgba(20, 20, FLUSHED)), 100.0)
        self.assertLess(calculate_redness(striped_patch(5, FLUSHED)), 70.0)
        self.assertLess(
            calculate_redness(striped_patch(5, FLUSHED)),
            calculate_redness(striped_patch(2, FLUSHED)),
        )

    def test_blemishes_split_active_and_scars(self) -> None:
        self.assertEqual(calculate_blemishes(solid_rgba(20, 20, SKIN)), (100.0, 100.0))

        active, scars = calculate_blemishes(striped_patch(5, DARK_SPOT))
        self.assertEqual(active, 100.0)
        self.assertAlmostEqual(scars, -25.0)

        active, _ = calculate_blemishes(striped_patch(5, FLUSHED))
        self.assertAlmostEqual(active, -100.0)

    def test_hydration_peaks_at_ideal_glow_ratio(self) -> None:
        matte = (120, 120, 120)
        self.assertAlmostEqual(calculate_hydration(striped_patch(3, (220, 220, 220), base=matte)), 100.0)
        self.assertAlmostEqual(calculate_hydration(solid_rgba(20, 20, matte)), 40.0)
        self.assertAlmostEqual(calculate_hydration(solid_rgba(20, 20, (220, 220, 220))), -240.0)

    def test_oiliness_counts_bright_unsaturated_shine(self) -> None:
        self.assertEqual(calculate_oiliness(solid_rgba(20, 20, SKIN)), 100.0)
        self.assertAlmostEqual(calculate_oiliness(striped_patch(5, (240, 240, 235))), -100.0)
        self.assertEqual(calculate_oiliness(np.zeros((0, 20, 4), dtype=np.uint8)), 100.0)

    def test_sagging_is_clamped(self) -> None:
        self.assertEqual(calculate_sagging(solid_rgba(10, 8, SKIN)), 20.0)
        self.assertEqual(calculate_sagging(np.zeros((0, 10, 4), dtype=np.uint8)), 50.0)

        banded = solid_rgba(10, 8, (0, 0, 0))
        banded[::2, :, :3] = 255
        self.assertEqual(calculate_sagging(banded), 100.0)

    def test_pores_and_blackheads_by_depth(self) -> None:
        self.assertEqual(calculate_pores(solid_rgba(20, 20, SKIN)), (100.0, 100.0))

        pores, blackheads = calculate_pores(striped_patch(5, DARK_SPOT))
        self.assertEqual(pores, 100.0)
        self.assertAlmostEqual(blackheads, -50.0)

        pores, blackheads = calculate_pores(striped_patch(2, (150, 110, 88)))
        self.assertAlmostEqual(pores, 60.0)
        self.assertEqual(blackheads, 100.0)


class SkinMetricsAnalyzerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analyzer = SkinMetricsAnalyzer()

    def test_faceless_frame_degrades_to_full_frame(self) -> None:
        with self.assertLogs("src.analyzers.skin_metrics", level="INFO"):
            result = self.analyzer.analyze_frame(solid_rgba(64, 64, (0, 0, 0)))

        self.assertFalse(result.face_detected)
        for value in result.metrics.channels().values():
            self.assertTrue(18 <= value <= 98)

    def test_identical_frames_give_identical_metrics(self) -> None:
        image = textured_face()
        first = self.analyzer.analyze(image)
        second = self.analyzer.analyze(image.copy())

        self.assertEqual(first.channels(), second.channels())

    def test_scores_stay_in_normalised_range(self) -> None:
        result = self.analyzer.analyze_frame(textured_face())

        self.assertTrue(result.face_detected)
        self.assertEqual(set(result.raw), set(result.metrics.channels()) - {"overall_score"})
        for value in result.metrics.channels().values():
            self.assertTrue(18 <= value <= 98)

    def test_texture_is_mean_of_fine_lines_pores_and_scars(self) -> None:
        with mock.patch(
            "src.analyzers.skin_metrics.calculate_wrinkles", return_value=(60.0, 90.0)
        ), mock.patch(
            "src.analyzers.skin_metrics.calculate_pores", return_value=(30.0, 80.0)
        ), mock.patch(
            "src.analyzers.skin_metrics.calculate_blemishes", return_value=(70.0, 45.0)
        ):
            result = self.analyzer.analyze_frame(solid_rgba(100, 100, SKIN))

        self.assertAlmostEqual(result.raw["texture"], 45.0)
        self.assertEqual(result.raw["pigmentation"], 45.0)
        self.assertEqual(result.metrics.texture, 45)

    def test_known_bounds_skip_face_detection(self) -> None:
        image = solid_rgba(100, 100, SKIN)
        bounds = detect_face_bounds(image)

        with mock.patch("src.analyzers.skin_metrics.detect_face_bounds") as detect:
            result = self.analyzer.analyze_frame(image, bounds=bounds)
            metrics = self.analyzer.analyze(image, bounds=bounds)

        detect.assert_not_called()
        self.assertIs(result.bounds, bounds)
        self.assertEqual(metrics.channels(), result.metrics.channels())


if __name__ == "__main__":
    unittest.main()
