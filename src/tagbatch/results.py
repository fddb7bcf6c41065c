"""
Detection result records and per-image aggregation.

Aggregation keeps family order as given (registry order) and decoder emission
order within a family. Corners pass through exactly as the decoder reported
them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .exceptions import DetectionContractError
from .families import FamilyRegistry
from .marker_detect import FamilyOutcome, RawDetection

MAX_TAG_ID = 0xFFFF


@dataclass(frozen=True)
class Corner:
    """Image-pixel-space corner point."""

    x: float
    y: float

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Detection:
    """One decoded tag, ready for serialization."""

    tag_id: int
    tag_family: str
    corners: Tuple[Corner, Corner, Corner, Corner]  # BL, BR, TR, TL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag_id": self.tag_id,
            "tag_family": self.tag_family,
            "corners": [corner.to_dict() for corner in self.corners],
        }


@dataclass(frozen=True)
class FamilyTiming:
    family: str
    initialization_ms: float
    detection_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "initialization_ms": self.initialization_ms,
            "detection_ms": self.detection_ms,
        }


@dataclass(frozen=True)
class Timings:
    """Per-image latency breakdown.

    ``total_detection_ms`` covers decoder construction and detection for every
    family; image loading is reported separately.
    """

    image_load_ms: float
    total_detection_ms: float
    family_timings: Tuple[FamilyTiming, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_load_ms": self.image_load_ms,
            "total_detection_ms": self.total_detection_ms,
            "family_timings": [timing.to_dict() for timing in self.family_timings],
        }


@dataclass(frozen=True)
class FamilyFailure:
    """A family that failed on an image and was recorded as zero detections."""

    family: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"family": self.family, "message": self.message}


@dataclass(frozen=True)
class DetectionResult:
    """Everything detected in one image."""

    image: str
    detections: Tuple[Detection, ...] = ()
    timings: Optional[Timings] = None
    errors: Tuple[FamilyFailure, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "image": self.image,
            "detections": [detection.to_dict() for detection in self.detections],
        }
        if self.timings is not None:
            payload["timings"] = self.timings.to_dict()
        if self.errors:
            payload["errors"] = [failure.to_dict() for failure in self.errors]
        return payload


@dataclass(frozen=True)
class Manifest:
    supported_families: Tuple[str, ...]

    @classmethod
    def from_registry(cls, registry: FamilyRegistry) -> Manifest:
        return cls(supported_families=tuple(registry.names()))

    def to_dict(self) -> Dict[str, Any]:
        return {"supported_families": list(self.supported_families)}


def to_detection(raw: RawDetection, registry: FamilyRegistry) -> Detection:
    """Map a raw decoder detection to a pipeline detection.

    Raises:
        UnknownFamilyError: If the selector is not in the registry.
        DetectionContractError: If the id or corner count is out of contract.
    """
    family_name = registry.name_for(raw.family_selector)

    tag_id = int(raw.id)
    if not 0 <= tag_id <= MAX_TAG_ID:
        raise DetectionContractError(
            f"{family_name} detection has tag id {tag_id} outside 0..{MAX_TAG_ID}"
        )

    points = [tuple(point) for point in raw.corners]
    if len(points) != 4 or any(len(point) != 2 for point in points):
        raise DetectionContractError(
            f"{family_name} detection {tag_id} has {len(points)} corners, expected 4 (x, y) points"
        )

    corners = tuple(Corner(float(x), float(y)) for x, y in points)
    return Detection(tag_id=tag_id, tag_family=family_name, corners=corners)


def aggregate_result(
    image_name: str,
    outcomes: Sequence[FamilyOutcome],
    registry: FamilyRegistry,
    image_load_ms: Optional[float] = None,
) -> DetectionResult:
    """Merge per-family outcomes for one image into a single result.

    Args:
        image_name: Base name of the source file
        outcomes: Family outcomes in registry order
        registry: Registry used to resolve decoder selectors
        image_load_ms: Load-phase duration; ``None`` disables timings

    Returns:
        DetectionResult: Immutable per-image record
    """
    detections: List[Detection] = []
    family_timings: List[FamilyTiming] = []
    failures: List[FamilyFailure] = []

    for outcome in outcomes:
        detections.extend(to_detection(raw, registry) for raw in outcome.detections)
        family_timings.append(
            FamilyTiming(
                family=outcome.family.name,
                initialization_ms=outcome.initialization_ms,
                detection_ms=outcome.detection_ms,
            )
        )
        if outcome.error is not None:
            failures.append(FamilyFailure(family=outcome.family.name, message=str(outcome.error)))

    timings = None
    if image_load_ms is not None:
        timings = Timings(
            image_load_ms=image_load_ms,
            total_detection_ms=sum(t.initialization_ms + t.detection_ms for t in family_timings),
            family_timings=tuple(family_timings),
        )

    return DetectionResult(
        image=image_name,
        detections=tuple(detections),
        timings=timings,
        errors=tuple(failures),
    )


@dataclass
class BatchSummary:
    """Outcome of a complete batch run."""

    processed_count: int = 0
    result_paths: List[str] = field(default_factory=list)
    manifest_path: Optional[str] = None
    family_counts: Dict[str, int] = field(default_factory=dict)
