"""
Tests for the AprilTag 3 decoder backend.

The native bindings are replaced by a recording stand-in, so these tests cover
family setup and result conversion without the compiled library.
"""

import os
import sys
import unittest
from unittest import mock

import numpy as np

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from tagbatch import apriltag_detect  # type: ignore
from tagbatch.apriltag_detect import AprilTagDetector, load_binding  # type: ignore
from tagbatch.families import FamilyRegistry  # type: ignore


class RecordingBinding:
    """Mimics ``apriltag.apriltag``: built per family, returns dicts from detect."""

    created = []

    def __init__(self, family, maxhamming=2):
        self.family = family
        self.maxhamming = maxhamming
        self.results = []
        RecordingBinding.created.append(self)

    def detect(self, image):
        return self.results


class TestAprilTagDetector(unittest.TestCase):

    def setUp(self):
        self.registry = FamilyRegistry.default()
        RecordingBinding.created = []

    def build(self, name):
        return AprilTagDetector(self.registry.get(name), (64, 48), binding=RecordingBinding)

    def test_large_families_use_one_bit(self):
        """tagCircle49h12 and tagStandard52h13 correct one bit, the rest two."""
        for name, expected in [
            ("tagCircle21h7", 2),
            ("tagCircle49h12", 1),
            ("tagCustom48h12", 2),
            ("tagStandard41h12", 2),
            ("tagStandard52h13", 1),
        ]:
            with self.subTest(family=name):
                detector = self.build(name)
                self.assertEqual(detector.max_hamming, expected)
                binding = RecordingBinding.created[-1]
                self.assertEqual((binding.family, binding.maxhamming), (name, expected))

    def test_detections_keep_binding_corner_order(self):
        detector = self.build("tagStandard41h12")
        RecordingBinding.created[-1].results = [
            {
                "id": np.int32(17),
                "hamming": 0,
                "margin": 80.0,
                "center": np.array([50.0, 50.0]),
                "lb-rb-rt-lt": np.array([[10.0, 90.0], [90.0, 90.0], [90.0, 10.0], [10.0, 10.0]]),
            }
        ]

        detections = detector.detect(np.zeros((48, 64), dtype=np.uint8))

        self.assertEqual(len(detections), 1)
        self.assertEqual(detections[0].id, 17)
        self.assertIsInstance(detections[0].id, int)
        self.assertEqual(detections[0].family_selector, "tagStandard41h12")
        self.assertEqual(self.registry.name_for(detections[0].family_selector), "tagStandard41h12")
        np.testing.assert_array_equal(
            detections[0].corners, [[10.0, 90.0], [90.0, 90.0], [90.0, 10.0], [10.0, 10.0]]
        )

    def test_no_tags(self):
        detector = self.build("tagCircle21h7")
        self.assertEqual(detector.detect(np.zeros((48, 64), dtype=np.uint8)), [])

    def test_rejects_opencv_family(self):
        with self.assertRaises(ValueError):
            self.build("tag36h11")
        self.assertEqual(RecordingBinding.created, [])

    def test_binding_loaded_on_demand(self):
        with mock.patch.object(apriltag_detect, "load_binding", return_value=RecordingBinding) as loader:
            AprilTagDetector(self.registry.get("tagCustom48h12"), (64, 48))
        loader.assert_called_once_with()
        self.assertEqual(RecordingBinding.created[-1].family, "tagCustom48h12")


class TestLoadBinding(unittest.TestCase):

    def test_missing_module_explains_install(self):
        with mock.patch.dict(sys.modules, {"apriltag": None}):
            with self.assertRaises(ImportError) as ctx:
                load_binding()
        self.assertIn("BUILD_PYTHON_WRAPPER", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
