"""
AprilTag 3 decoder backend.

Covers the families OpenCV's ArUco module does not ship (the circle, custom and
standard layouts) through the Python binding of the AprilTag 3 library. The
binding is an optional dependency and is only imported when one of these
families is built.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from .families import APRILTAG_BACKEND, FamilyDescriptor
from .marker_detect import RawDetection

LOGGER = logging.getLogger(__name__)

# Error-correction bits per family. The large codebooks are limited to one bit,
# two would allocate lookup tables of several gigabytes.
DEFAULT_MAX_HAMMING = 2
MAX_HAMMING = {
    "tagCircle49h12": 1,
    "tagStandard52h13": 1,
}

# The binding reports corners as lb, rb, rt, lt: already BL, BR, TR, TL.
CORNERS_KEY = "lb-rb-rt-lt"


def load_binding() -> Callable[..., Any]:
    """Import the AprilTag 3 detector class.

    Raises:
        ImportError: If the ``apriltag`` module is missing or is not the
            AprilTag 3 binding.
    """
    try:
        from apriltag import apriltag
    except ImportError as e:
        raise ImportError(
            "AprilTag 3 Python bindings are required for the tagCircle, tagCustom and "
            "tagStandard families; build them from the AprilTag sources with "
            f"-DBUILD_PYTHON_WRAPPER=ON ({e})"
        ) from e
    return apriltag


class AprilTagDetector:
    """Tag decoder for one AprilTag 3 family."""

    def __init__(
        self,
        family: FamilyDescriptor,
        image_size: Tuple[int, int],
        binding: Optional[Callable[..., Any]] = None,
    ):
        """Initialize AprilTag detector.

        Args:
            family: Family whose codebook the detector decodes
            image_size: (width, height) of the images it will be given
            binding: AprilTag 3 detector class (default: imported on demand)
        """
        if family.backend != APRILTAG_BACKEND:
            raise ValueError(f"{family.name} is not an AprilTag 3 family")

        self.family = family
        self.image_size = (int(image_size[0]), int(image_size[1]))
        self.max_hamming = MAX_HAMMING.get(family.name, DEFAULT_MAX_HAMMING)

        detector_class = binding or load_binding()
        self._detector = detector_class(str(family.selector), maxhamming=self.max_hamming)
        LOGGER.debug("Created AprilTag 3 detector for %s (max hamming %d)", family.name, self.max_hamming)

    def detect(self, gray: np.ndarray) -> List[RawDetection]:
        """Detect markers in a grayscale frame.

        Returns:
            List of raw detections in decoder emission order
        """
        detections = []
        for found in self._detector.detect(gray):
            corners = np.asarray(found[CORNERS_KEY], dtype=np.float64).reshape(4, 2)
            detections.append(
                RawDetection(id=int(found["id"]), family_selector=self.family.selector, corners=corners)
            )
        return detections
