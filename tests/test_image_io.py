"""
Tests for image loading and intensity conversion.
"""

import os
import sys
import tempfile
import unittest

import cv2
import numpy as np

sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from tagbatch.exceptions import ColorConversionError, ImageLoadError  # type: ignore
from tagbatch.image_io import IntensityImage, load_intensity_image, to_intensity  # type: ignore


class TestLoadIntensityImage(unittest.TestCase):
    """Loader output shape, determinism and rejection paths."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def _path(self, name):
        return os.path.join(self.tmpdir, name)

    def test_color_png_becomes_native_size_gray(self):
        """A colour PNG loads as (H, W) uint8 with OpenCV's luminance weights."""
        rng = np.random.default_rng(7)
        bgr = rng.integers(0, 256, (30, 40, 3), dtype=np.uint8)
        path = self._path("color.png")
        cv2.imwrite(path, bgr)

        image = load_intensity_image(path)

        self.assertIsInstance(image, IntensityImage)
        self.assertEqual(image.size, (40, 30))
        self.assertEqual(image.pixels.dtype, np.uint8)
        np.testing.assert_array_equal(image.pixels, cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY))

    def test_gray_png_is_passed_through(self):
        gray = np.arange(0, 200, dtype=np.uint8).reshape(10, 20)
        path = self._path("gray.png")
        cv2.imwrite(path, gray)

        np.testing.assert_array_equal(load_intensity_image(path).pixels, gray)

    def test_sixteen_bit_png_is_quantized(self):
        deep = np.full((8, 8), 65535, dtype=np.uint16)
        path = self._path("deep.png")
        cv2.imwrite(path, deep)

        image = load_intensity_image(path)
        self.assertEqual(image.pixels.dtype, np.uint8)
        self.assertTrue(np.all(image.pixels == 255))

    def test_jpeg_with_uppercase_extension(self):
        path = self._path("photo.JPG")
        cv2.imwrite(path.replace(".JPG", ".jpg"), np.full((16, 16, 3), 128, dtype=np.uint8))
        os.rename(path.replace(".JPG", ".jpg"), path)

        self.assertEqual(load_intensity_image(path).size, (16, 16))

    def test_loading_is_deterministic(self):
        path = self._path("repeat.png")
        cv2.imwrite(path, np.random.default_rng(1).integers(0, 256, (12, 12, 3), dtype=np.uint8))
        first = load_intensity_image(path)
        second = load_intensity_image(path)
        np.testing.assert_array_equal(first.pixels, second.pixels)

    def test_missing_file(self):
        with self.assertRaises(ImageLoadError) as ctx:
            load_intensity_image(self._path("absent.png"))
        self.assertIn("absent.png", str(ctx.exception))

    def test_corrupt_file(self):
        path = self._path("broken.jpg")
        with open(path, "wb") as f:
            f.write(b"this is not a jpeg")
        with self.assertRaises(ImageLoadError):
            load_intensity_image(path)

    def test_empty_file(self):
        path = self._path("empty.png")
        open(path, "wb").close()
        with self.assertRaises(ImageLoadError):
            load_intensity_image(path)


class TestToIntensity(unittest.TestCase):

    def test_bgra_drops_alpha(self):
        bgra = np.zeros((4, 4, 4), dtype=np.uint8)
        bgra[..., :3] = 100
        bgra[..., 3] = 7
        np.testing.assert_array_equal(to_intensity(bgra), np.full((4, 4), 100, dtype=np.uint8))

    def test_unsupported_layouts(self):
        with self.assertRaises(ColorConversionError):
            to_intensity(np.zeros((4, 4, 2), dtype=np.uint8))
        with self.assertRaises(ColorConversionError):
            to_intensity(np.zeros((4, 4), dtype=np.float32))

    def test_intensity_image_rejects_color(self):
        with self.assertRaises(ValueError):
            IntensityImage(np.zeros((4, 4, 3), dtype=np.uint8))


if __name__ == "__main__":
    unittest.main()
