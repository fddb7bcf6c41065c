"""
Marker detection module.

This module drives OpenCV's ArUco detector over AprilTag dictionaries, one
family at a time, and reports raw detections with corners in the pipeline's
fixed order: bottom-left, bottom-right, top-right, top-left. Families OpenCV
does not ship are decoded by ``apriltag_detect``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .exceptions import FamilyDetectionError
from .families import APRILTAG_BACKEND, ARUCO_BACKEND, FamilyDescriptor
from .image_io import IntensityImage
from .utils import FailurePolicy

LOGGER = logging.getLogger(__name__)

# OpenCV reports TL, TR, BR, BL; this permutation yields BL, BR, TR, TL.
OPENCV_TO_CONTRACT_ORDER = (3, 2, 1, 0)

# Keys match utils.CORNER_REFINEMENTS
CORNER_REFINEMENT_METHODS = {
    "none": "CORNER_REFINE_NONE",
    "subpix": "CORNER_REFINE_SUBPIX",
    "contour": "CORNER_REFINE_CONTOUR",
    "apriltag": "CORNER_REFINE_APRILTAG",
}


@dataclass
class RawDetection:
    """Decoder output for one marker."""

    id: int
    family_selector: Hashable
    corners: np.ndarray  # shape (4, 2), order BL, BR, TR, TL


class MarkerDetector:
    """Tag decoder scoped to exactly one family and one image resolution."""

    def __init__(
        self,
        family: FamilyDescriptor,
        image_size: Tuple[int, int],
        corner_refinement: str = "none",
    ):
        """Initialize marker detector.

        Args:
            family: Family whose codebook the detector decodes
            image_size: (width, height) of the images it will be given
            corner_refinement: One of ``CORNER_REFINEMENT_METHODS``
        """
        self.family = family
        self.image_size = (int(image_size[0]), int(image_size[1]))

        if family.backend != ARUCO_BACKEND:
            raise ValueError(f"{family.name} is not an OpenCV ArUco family")
        if corner_refinement not in CORNER_REFINEMENT_METHODS:
            raise ValueError(f"Unknown corner refinement method: {corner_refinement}")

        dictionary = cv2.aruco.getPredefinedDictionary(family.selector)
        parameters = cv2.aruco.DetectorParameters()
        parameters.cornerRefinementMethod = getattr(
            cv2.aruco, CORNER_REFINEMENT_METHODS[corner_refinement]
        )
        self._detector = cv2.aruco.ArucoDetector(dictionary, parameters)

    def detect(self, gray: np.ndarray) -> List[RawDetection]:
        """Detect markers in a grayscale frame.

        Returns:
            List of raw detections in decoder emission order
        """
        corners, ids, _rejected = self._detector.detectMarkers(gray)
        if ids is None or len(ids) == 0:
            return []

        detections = []
        for marker_corners, marker_id in zip(corners, ids.flatten()):
            detections.append(
                RawDetection(
                    id=self.get_marker_id(marker_id),
                    family_selector=self.family.selector,
                    corners=self.get_marker_corners(marker_corners),
                )
            )
        return detections

    @staticmethod
    def get_marker_corners(marker_corners: np.ndarray) -> np.ndarray:
        """Reorder one marker's OpenCV corners into BL, BR, TR, TL."""
        points = np.asarray(marker_corners, dtype=np.float64).reshape(4, 2)
        return points[list(OPENCV_TO_CONTRACT_ORDER)]

    @staticmethod
    def get_marker_id(marker_id) -> int:
        return int(marker_id)


DecoderFactory = Callable[[FamilyDescriptor, Tuple[int, int]], Any]


def default_decoder_factory(corner_refinement: str = "none") -> DecoderFactory:
    """Return a factory building the decoder each family's backend needs.

    ArUco families get an OpenCV ``MarkerDetector``; the remaining AprilTag 3
    families get an ``AprilTagDetector``. ``corner_refinement`` only applies to
    OpenCV decoders.
    """

    def build(family: FamilyDescriptor, image_size: Tuple[int, int]):
        if family.backend == APRILTAG_BACKEND:
            from .apriltag_detect import AprilTagDetector

            return AprilTagDetector(family, image_size)
        return MarkerDetector(family, image_size, corner_refinement=corner_refinement)

    return build


@dataclass
class FamilyOutcome:
    """Result of running one family on one image."""

    family: FamilyDescriptor
    detections: List[RawDetection] = field(default_factory=list)
    initialization_ms: float = 0.0
    detection_ms: float = 0.0
    error: Optional[FamilyDetectionError] = None


class FamilyDetector:
    """Builds and runs the decoder for a single family.

    With ``reuse`` disabled a fresh decoder is constructed for every image.
    With ``reuse`` enabled the decoder is built once, either via ``prepare``
    from a reference size or lazily from the first image, and kept for the
    rest of the run. A failed shared build is not attempted again; every
    later image reports the same failure.
    """

    def __init__(
        self,
        family: FamilyDescriptor,
        decoder_factory: Optional[DecoderFactory] = None,
        reuse: bool = False,
    ):
        self.family = family
        self.decoder_factory = decoder_factory or default_decoder_factory()
        self.reuse = reuse
        self._decoder = None
        self._decoder_size: Optional[Tuple[int, int]] = None
        self._construction_failure: Optional[Exception] = None
        # Construction cost not yet attributed to an image
        self._pending_initialization_ms = 0.0

    def _build_shared(self, image_size: Tuple[int, int]):
        start = time.perf_counter()
        try:
            self._decoder = self.decoder_factory(self.family, image_size)
        except Exception as e:
            self._construction_failure = e
        self._pending_initialization_ms = (time.perf_counter() - start) * 1000.0
        self._decoder_size = image_size

        if self._construction_failure is None:
            LOGGER.debug(
                "Built %s decoder for %dx%d in %.3f ms",
                self.family.name,
                image_size[0],
                image_size[1],
                self._pending_initialization_ms,
            )

    def prepare(self, image_size: Tuple[int, int], image_name: str):
        """Build the shared decoder for ``image_size``.

        The construction time is reported as ``initialization_ms`` of the next
        image this detector runs on.

        Raises:
            FamilyDetectionError: If the decoder cannot be constructed.
        """
        self._build_shared(image_size)
        if self._construction_failure is not None:
            raise FamilyDetectionError(
                self.family.name,
                image_name,
                str(self._construction_failure),
                initialization_ms=self._pending_initialization_ms,
            ) from self._construction_failure

    def _shared_decoder(self, image: IntensityImage, image_name: str, outcome: FamilyOutcome):
        if self._decoder is None and self._construction_failure is None:
            self._build_shared(image.size)

        outcome.initialization_ms = self._pending_initialization_ms
        self._pending_initialization_ms = 0.0

        if self._construction_failure is not None:
            raise FamilyDetectionError(
                self.family.name,
                image_name,
                str(self._construction_failure),
                initialization_ms=outcome.initialization_ms,
            ) from self._construction_failure

        if image.size != self._decoder_size:
            LOGGER.warning(
                "%s is %dx%d but the %s decoder was built for %dx%d; "
                "results for mismatched sizes are undefined",
                image_name,
                image.width,
                image.height,
                self.family.name,
                self._decoder_size[0],
                self._decoder_size[1],
            )
        return self._decoder

    def _fresh_decoder(self, image: IntensityImage, image_name: str, outcome: FamilyOutcome):
        start = time.perf_counter()
        try:
            decoder = self.decoder_factory(self.family, image.size)
        except Exception as e:
            raise FamilyDetectionError(
                self.family.name,
                image_name,
                str(e),
                initialization_ms=(time.perf_counter() - start) * 1000.0,
            ) from e
        outcome.initialization_ms = (time.perf_counter() - start) * 1000.0
        return decoder

    def run(self, image: IntensityImage, image_name: str) -> FamilyOutcome:
        """Detect this family's markers in ``image``.

        Raises:
            FamilyDetectionError: If decoder construction or detection fails.
        """
        outcome = FamilyOutcome(family=self.family)
        if self.reuse:
            decoder = self._shared_decoder(image, image_name, outcome)
        else:
            decoder = self._fresh_decoder(image, image_name, outcome)

        start = time.perf_counter()
        try:
            outcome.detections = list(decoder.detect(image.pixels))
        except Exception as e:
            raise FamilyDetectionError(
                self.family.name, image_name, str(e), initialization_ms=outcome.initialization_ms
            ) from e
        outcome.detection_ms = (time.perf_counter() - start) * 1000.0

        return outcome


def detect_families(
    image: IntensityImage,
    image_name: str,
    detectors: Sequence[FamilyDetector],
    failure_policy: FailurePolicy = FailurePolicy.SKIP_AND_ZERO_RESULT,
) -> List[FamilyOutcome]:
    """Run every family detector on one image, in the order given.

    Under ``SKIP_AND_ZERO_RESULT`` a failing family contributes no detections
    and carries its error; the remaining families still run. Under
    ``ABORT_RUN`` the first failure propagates.
    """
    outcomes = []
    for detector in detectors:
        try:
            outcome = detector.run(image, image_name)
        except FamilyDetectionError as e:
            if failure_policy == FailurePolicy.ABORT_RUN:
                raise
            LOGGER.error("%s", e)
            outcome = FamilyOutcome(family=detector.family, initialization_ms=e.initialization_ms, error=e)

        LOGGER.info(
            "  %s: detecting %s... found %d", image_name, detector.family.name, len(outcome.detections)
        )
        outcomes.append(outcome)
    return outcomes
