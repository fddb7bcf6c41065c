"""
Tests for the synthetic tag generator script.
"""

import os
import sys
import unittest

import numpy as np

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "examples"))

from generate_tags import drawable_families, expected_corners, render_marker  # type: ignore
from tagbatch.families import FamilyRegistry  # type: ignore
from tagbatch.marker_detect import MarkerDetector  # type: ignore


class TestGenerateTags(unittest.TestCase):

    def setUp(self):
        self.registry = FamilyRegistry.default()

    def test_expected_corners_match_detector(self):
        """The logged corners are the ones the OpenCV decoder reports."""
        side, margin = 100, 50
        for name in ("tag36h11", "tag16h5"):
            with self.subTest(family=name):
                family = self.registry.get(name)
                canvas = render_marker(family, 0, side, margin)
                detections = MarkerDetector(family, (canvas.shape[1], canvas.shape[0])).detect(canvas)

                self.assertEqual(len(detections), 1)
                np.testing.assert_allclose(
                    detections[0].corners, np.array(expected_corners(side, margin)), atol=0.75
                )

    def test_expected_corners_are_inclusive(self):
        self.assertEqual(
            expected_corners(100, 50),
            [(50.0, 149.0), (149.0, 149.0), (149.0, 50.0), (50.0, 50.0)],
        )

    def test_drawable_families_skip_apriltag_only_layouts(self):
        families = drawable_families(self.registry)
        self.assertEqual([f.name for f in families], ["tag36h11", "tag36h10", "tag25h9", "tag16h5"])

        with self.assertRaises(ValueError):
            drawable_families(self.registry.subset(["tagCircle21h7"]))


if __name__ == "__main__":
    unittest.main()
