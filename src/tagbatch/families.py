"""
Marker family registry.

The registry is the fixed, ordered set of tag families a batch run attempts on
every image. Each family pairs a stable display name with the backend that
decodes it and the selector that picks its codebook there: an OpenCV ArUco
dictionary constant, or the family name understood by the AprilTag 3 library.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple

import cv2

from .exceptions import ConfigError, UnknownFamilyError


ARUCO_BACKEND = "aruco"
APRILTAG_BACKEND = "apriltag"


@dataclass(frozen=True)
class FamilyDescriptor:
    """One marker family: display name, decoder backend and selector."""

    name: str
    selector: Hashable
    backend: str = ARUCO_BACKEND


# Registry order is the order families are attempted and reported in.
DEFAULT_FAMILIES: Tuple[FamilyDescriptor, ...] = (
    FamilyDescriptor("tag36h11", cv2.aruco.DICT_APRILTAG_36h11),
    FamilyDescriptor("tag36h10", cv2.aruco.DICT_APRILTAG_36h10),
    FamilyDescriptor("tag25h9", cv2.aruco.DICT_APRILTAG_25h9),
    FamilyDescriptor("tag16h5", cv2.aruco.DICT_APRILTAG_16h5),
    # Not shipped by cv2.aruco
    FamilyDescriptor("tagCircle21h7", "tagCircle21h7", APRILTAG_BACKEND),
    FamilyDescriptor("tagCircle49h12", "tagCircle49h12", APRILTAG_BACKEND),
    FamilyDescriptor("tagCustom48h12", "tagCustom48h12", APRILTAG_BACKEND),
    FamilyDescriptor("tagStandard41h12", "tagStandard41h12", APRILTAG_BACKEND),
    FamilyDescriptor("tagStandard52h13", "tagStandard52h13", APRILTAG_BACKEND),
)


class FamilyRegistry:
    """Ordered, immutable collection of marker families.

    Resolving a selector back to a family name is a table lookup built once at
    construction; an unknown selector is an error rather than a default name.
    """

    def __init__(self, families: Iterable[FamilyDescriptor]):
        self._families: Tuple[FamilyDescriptor, ...] = tuple(families)
        if not self._families:
            raise ConfigError("Family registry must contain at least one family")

        self._by_selector: Dict[Hashable, str] = {}
        self._by_name: Dict[str, FamilyDescriptor] = {}
        for family in self._families:
            if family.name in self._by_name:
                raise ConfigError(f"Duplicate family name in registry: {family.name}")
            if family.selector in self._by_selector:
                raise ConfigError(
                    f"Families {self._by_selector[family.selector]} and {family.name} "
                    f"share selector {family.selector}"
                )
            self._by_selector[family.selector] = family.name
            self._by_name[family.name] = family

    @classmethod
    def default(cls) -> FamilyRegistry:
        """Build the registry of every family the tool supports."""
        return cls(DEFAULT_FAMILIES)

    def __iter__(self) -> Iterator[FamilyDescriptor]:
        return iter(self._families)

    def __len__(self) -> int:
        return len(self._families)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def names(self) -> List[str]:
        """Return family names in registry order."""
        return [family.name for family in self._families]

    def get(self, name: str) -> FamilyDescriptor:
        try:
            return self._by_name[name]
        except KeyError:
            raise ConfigError(
                f"Unknown tag family {name!r}; supported families: {', '.join(self.names())}"
            ) from None

    def name_for(self, selector: Hashable) -> str:
        """Resolve a decoder selector to its family name.

        Raises:
            UnknownFamilyError: If no registry entry owns the selector.
        """
        try:
            return self._by_selector[selector]
        except KeyError:
            raise UnknownFamilyError(
                f"Decoder reported unexpected family selector {selector!r}"
            ) from None

    def subset(self, names: Optional[Sequence[str]]) -> FamilyRegistry:
        """Restrict the registry to ``names``, keeping registry order.

        ``None`` or an empty sequence returns the registry unchanged.
        """
        if not names:
            return self
        wanted = set()
        for name in names:
            wanted.add(self.get(name).name)
        return FamilyRegistry(family for family in self._families if family.name in wanted)
