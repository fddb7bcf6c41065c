"""
Synthetic tag image generator for tagbatch.

Writes a directory of images containing AprilTag markers with known ids,
useful for trying the batch tool or checking a decoder build.

Usage:
    # One image per family with tag id 0
    python generate_tags.py --output ./tags

    # Several ids of one family, larger markers, JPEG output
    python generate_tags.py --output ./tags --families tag36h11 --ids 0,1,2 --side 160 --format jpg

Then run:
    tagbatch --input ./tags --output ./results
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Tuple

import cv2
import numpy as np

# Add src directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from tagbatch.exceptions import TagBatchError  # type: ignore
from tagbatch.families import ARUCO_BACKEND, FamilyDescriptor, FamilyRegistry  # type: ignore
from tagbatch.utils import create_directory, setup_logging  # type: ignore

LOGGER = logging.getLogger(__name__)


def render_marker(family: FamilyDescriptor, tag_id: int, side: int, margin: int) -> np.ndarray:
    """
    Render one marker centred on a white canvas.

    Args:
        family: Family to draw from
        tag_id: Marker id within the family
        side: Marker side in pixels, black border included
        margin: White border around the marker in pixels

    Returns:
        Grayscale image of size (side + 2 * margin) squared
    """
    dictionary = cv2.aruco.getPredefinedDictionary(family.selector)
    marker = cv2.aruco.generateImageMarker(dictionary, tag_id, side)

    size = side + 2 * margin
    canvas = np.full((size, size), 255, dtype=np.uint8)
    canvas[margin:margin + side, margin:margin + side] = marker
    return canvas


def expected_corners(side: int, margin: int) -> List[Tuple[float, float]]:
    """Corner positions the detector should report: BL, BR, TR, TL.

    OpenCV places corners on the outermost marker pixels, so the far edge is
    at ``margin + side - 1``.
    """
    low, high = float(margin), float(margin + side - 1)
    return [(low, high), (high, high), (high, low), (low, low)]


def drawable_families(registry: FamilyRegistry) -> List[FamilyDescriptor]:
    """Families cv2.aruco can draw; the rest have no OpenCV dictionary."""
    families = [family for family in registry if family.backend == ARUCO_BACKEND]
    skipped = [family.name for family in registry if family.backend != ARUCO_BACKEND]
    if not families:
        raise ValueError(f"OpenCV cannot draw {', '.join(skipped)}")
    if skipped:
        LOGGER.info("Skipping families OpenCV cannot draw: %s", ", ".join(skipped))
    return families


def generate(output_dir: Path, families: List[FamilyDescriptor], ids: List[int],
             side: int, margin: int, image_format: str) -> int:
    """Write every (family, id) combination and return the number of images."""
    create_directory(output_dir)
    count = 0
    for family in families:
        for tag_id in ids:
            image = render_marker(family, tag_id, side, margin)
            path = output_dir / f"{family.name}_{tag_id:04d}.{image_format}"
            if not cv2.imwrite(str(path), image):
                raise TagBatchError(f"Failed to write {path}")
            LOGGER.info("Wrote %s (corners %s)", path.name, expected_corners(side, margin))
            count += 1
    return count


def main():
    parser = argparse.ArgumentParser(
        description="Generate synthetic AprilTag images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--output", "-o", required=True, help="Directory to write images into")
    parser.add_argument("--families", default=None,
                        help="Comma-separated family names (default: every OpenCV family)")
    parser.add_argument("--ids", default="0", help="Comma-separated tag ids (default: 0)")
    parser.add_argument("--side", type=int, default=100, help="Marker side in pixels")
    parser.add_argument("--margin", type=int, default=50, help="White border in pixels")
    parser.add_argument("--format", choices=["png", "jpg"], default="png", help="Image format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    registry = FamilyRegistry.default()
    try:
        names = args.families.split(",") if args.families else None
        families = drawable_families(registry.subset(names))
        ids = [int(value) for value in args.ids.split(",")]
        count = generate(Path(args.output), families, ids, args.side, args.margin, args.format)
    except (TagBatchError, ValueError, cv2.error) as e:
        LOGGER.error("%s", e)
        return 1

    print(f"Generated {count} images in {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
