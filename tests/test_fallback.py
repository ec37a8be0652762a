"""
Tests for approximate placement and identifier hashing.
"""

import os
import subprocess
import sys
import unittest

import numpy as np

SRC_DIR = os.path.join(os.path.dirname(__file__), "..", "src")
sys.path.insert(0, SRC_DIR)

from qranchor.fallback import (  # type: ignore
    FallbackConfig,
    color_from_identifier,
    color_hash,
    hue_from_identifier,
    position_from_hash,
    position_from_region,
    region_distance,
    rgb_to_hex,
    string_hash,
)
from qranchor.geometry import BoundingRegion, Point2D  # type: ignore
from qranchor.pose import Viewport  # type: ignore


class TestStringHash(unittest.TestCase):
    """Test cases for the identifier hash."""

    def test_known_values(self):
        self.assertEqual(string_hash(""), 0)
        self.assertEqual(string_hash("a"), 97)
        self.assertEqual(string_hash("ab"), 97 * 31 + 98)
        self.assertEqual(string_hash("QR-A"), 2493333)

    def test_long_strings_stay_in_32_bits(self):
        h = string_hash("https://example.com/" + "x" * 500)
        self.assertGreaterEqual(h, 0)
        self.assertLessEqual(h, 2 ** 31)

    def test_stable_across_processes(self):
        """Unlike hash(), the value does not depend on PYTHONHASHSEED."""
        code = "import sys; sys.path.insert(0, sys.argv[1]); from qranchor.fallback import string_hash; print(string_hash('QR-A'))"
        output = subprocess.check_output(
            [sys.executable, "-c", code, SRC_DIR],
            env=dict(os.environ, PYTHONHASHSEED="123"),
        )
        self.assertEqual(int(output.strip()), string_hash("QR-A"))


class TestColor(unittest.TestCase):
    """Test cases for identifier colours."""

    def test_hue_is_deterministic(self):
        self.assertEqual(hue_from_identifier("QR-A"), 333)
        self.assertEqual(color_from_identifier("QR-A"), color_from_identifier("QR-A"))

    def test_different_identifiers_usually_differ(self):
        colors = {color_from_identifier(f"marker-{i}") for i in range(20)}
        self.assertGreater(len(colors), 10)

    def test_long_identifiers_use_unwrapped_color_hash(self):
        """Colour hue keeps the running sum unwrapped; placement hash wraps it."""
        url = "https://example.com/item/42"
        self.assertEqual(hue_from_identifier(url), 159)
        self.assertEqual(string_hash(url) % 360, 97)
        self.assertEqual(color_hash("QR-A"), string_hash("QR-A"))

    def test_components_in_range(self):
        rgb = color_from_identifier("anything")
        for c in rgb:
            self.assertGreaterEqual(c, 0.0)
            self.assertLessEqual(c, 1.0)
        self.assertLessEqual(rgb_to_hex(rgb), 0xFFFFFF)


class TestRegionPlacement(unittest.TestCase):
    """Test cases for bounding-region placement."""

    def setUp(self):
        self.viewport = Viewport(640, 480)
        self.config = FallbackConfig()

    def test_small_region_clamps_to_max_distance(self):
        region = BoundingRegion(Point2D(318, 238), 4, 4)
        self.assertEqual(region_distance(region, self.viewport, self.config), 3.0)

        position = position_from_region(region, self.viewport, self.config)
        self.assertAlmostEqual(float(np.linalg.norm(position)), 3.0)

    def test_huge_region_clamps_to_min_distance(self):
        region = BoundingRegion(Point2D(-700, -700), 2000, 2000)
        self.assertEqual(region_distance(region, self.viewport, self.config), 0.4)

    def test_distance_scales_inversely_with_size(self):
        region = BoundingRegion(Point2D(180, 100), 280, 280)
        self.assertAlmostEqual(region_distance(region, self.viewport, self.config), 0.9 / 0.5)

    def test_centred_region_is_straight_ahead(self):
        region = BoundingRegion(Point2D(270, 190), 100, 100)
        position = position_from_region(region, self.viewport, self.config)
        self.assertAlmostEqual(position[0], 0.0)
        self.assertAlmostEqual(position[1], 0.0)
        self.assertLess(position[2], 0.0)

    def test_top_right_region_maps_to_positive_x_and_y(self):
        region = BoundingRegion(Point2D(560, 20), 40, 40)
        position = position_from_region(region, self.viewport, self.config)
        self.assertGreater(position[0], 0.0)
        self.assertGreater(position[1], 0.0)
        self.assertLess(position[2], 0.0)


class TestHashPlacement(unittest.TestCase):
    """Test cases for hash-based placeholder positions."""

    def test_known_offset(self):
        position = position_from_hash("QR-A", FallbackConfig())
        np.testing.assert_allclose(position, [0.198, -0.204, -1.2], atol=1e-12)

    def test_within_spread_at_fixed_depth(self):
        config = FallbackConfig()
        for i in range(50):
            x, y, z = position_from_hash(f"id-{i}", config)
            self.assertLessEqual(abs(x), 0.6)
            self.assertLessEqual(abs(y), 0.6)
            self.assertEqual(z, -1.2)


if __name__ == "__main__":
    unittest.main()
