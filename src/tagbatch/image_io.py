"""
Image input utilities.

This module turns an image file on disk into the single-channel 8-bit
intensity buffer the tag decoder consumes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np

from .exceptions import ColorConversionError, ImageLoadError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntensityImage:
    """Single-channel 8-bit image at native resolution."""

    pixels: np.ndarray  # shape (height, width), dtype uint8

    def __post_init__(self):
        if self.pixels.ndim != 2 or self.pixels.dtype != np.uint8:
            raise ValueError(
                f"Intensity image must be a 2-D uint8 array, got shape {self.pixels.shape} "
                f"dtype {self.pixels.dtype}"
            )

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) in pixels."""
        return self.width, self.height


def to_intensity(image: np.ndarray) -> np.ndarray:
    """Convert a decoded image to one 8-bit intensity channel.

    Colour input goes through OpenCV's fixed BGR->gray luminance weights.
    Alpha is dropped and 16-bit samples are rescaled to 8 bits.

    Args:
        image: Decoded image, (H, W), (H, W, 3) BGR or (H, W, 4) BGRA

    Returns:
        np.ndarray: uint8 array of shape (H, W)
    """
    try:
        if image.dtype == np.uint16:
            image = (image / 257.0).round().astype(np.uint8)
        elif image.dtype != np.uint8:
            raise ColorConversionError(f"Unsupported sample type {image.dtype}")

        if image.ndim == 2:
            gray = image
        elif image.ndim == 3 and image.shape[2] == 1:
            gray = image[:, :, 0]
        elif image.ndim == 3 and image.shape[2] == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif image.ndim == 3 and image.shape[2] == 4:
            gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        else:
            raise ColorConversionError(f"Unsupported image shape {image.shape}")
    except cv2.error as e:
        raise ColorConversionError(f"Colour conversion failed: {e}") from e

    return np.ascontiguousarray(gray)


def load_intensity_image(path: Union[str, Path]) -> IntensityImage:
    """Load an image file as an intensity image.

    Args:
        path: Path to a JPEG or PNG file

    Returns:
        IntensityImage: Native-resolution grayscale buffer

    Raises:
        ImageLoadError: If the file cannot be read, is not a decodable image,
            or has zero area.
        ColorConversionError: If the decoded samples cannot be reduced to gray.
    """
    path = Path(path)
    try:
        data = np.fromfile(str(path), dtype=np.uint8)
    except OSError as e:
        raise ImageLoadError(f"Failed to read image {path}: {e}") from e

    if data.size == 0:
        raise ImageLoadError(f"Failed to load image {path}: file is empty")

    try:
        decoded = cv2.imdecode(data, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise ImageLoadError(f"Failed to load image {path}: {e}") from e
    if decoded is None:
        raise ImageLoadError(f"Failed to load image {path}: unsupported or corrupt image data")

    if decoded.size == 0 or decoded.shape[0] == 0 or decoded.shape[1] == 0:
        raise ImageLoadError(f"Failed to load image {path}: image has zero area")

    try:
        gray = to_intensity(decoded)
    except ColorConversionError as e:
        raise ColorConversionError(f"Failed to convert {path} to grayscale: {e}") from e

    LOGGER.debug("Loaded %s as %dx%d intensity image", path.name, gray.shape[1], gray.shape[0])
    return IntensityImage(gray)
