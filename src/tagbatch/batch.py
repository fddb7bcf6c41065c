"""
Batch driver.

Walks an input directory, runs every registered family over each accepted
image, writes one JSON result per image and finishes with the run manifest.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from .exceptions import DuplicateOutputError, FamilyDetectionError, InputDirectoryError
from .families import FamilyRegistry
from .image_io import IntensityImage, load_intensity_image
from .marker_detect import DecoderFactory, FamilyDetector, default_decoder_factory, detect_families
from .results import BatchSummary, DetectionResult, Manifest, aggregate_result
from .utils import BatchConfig, FailurePolicy, ResizePolicy, create_directory
from .writer import MANIFEST_FILENAME, result_filename, write_detection_result, write_manifest

LOGGER = logging.getLogger(__name__)

ImageLoader = Callable[[Union[str, Path]], IntensityImage]


def discover_images(input_dir: Union[str, Path], extensions: Iterable[str], sort_inputs: bool = False) -> List[Path]:
    """List accepted image files directly inside ``input_dir``.

    Only regular files whose extension (case-insensitive, without the dot) is
    in ``extensions`` are returned. Subdirectories are not searched. The order
    is directory-enumeration order unless ``sort_inputs`` is set.
    """
    accepted = {ext.lower().lstrip(".") for ext in extensions}
    images = []
    with os.scandir(input_dir) as entries:
        for entry in entries:
            if not entry.is_file():
                continue
            ext = os.path.splitext(entry.name)[1].lstrip(".").lower()
            if ext not in accepted:
                LOGGER.debug("Skipping %s: extension not accepted", entry.name)
                continue
            images.append(Path(entry.path))

    if sort_inputs:
        images.sort(key=lambda path: path.name)
    return images


def check_output_names(images: Iterable[Path]):
    """Ensure every image maps to its own result file.

    Raises:
        DuplicateOutputError: If two images share a stem, or an image would
            overwrite the manifest.
    """
    owners: Dict[str, str] = {}
    for path in images:
        output_name = result_filename(path.name)
        if output_name == MANIFEST_FILENAME:
            raise DuplicateOutputError(
                f"{path.name} would overwrite {MANIFEST_FILENAME}; rename the input file"
            )
        if output_name in owners:
            raise DuplicateOutputError(
                f"{owners[output_name]} and {path.name} would both be written to {output_name}"
            )
        owners[output_name] = path.name


class BatchProcessor:
    """Runs the load -> detect -> aggregate -> write chain over a directory."""

    def __init__(
        self,
        config: BatchConfig,
        registry: Optional[FamilyRegistry] = None,
        decoder_factory: Optional[DecoderFactory] = None,
        loader: Optional[ImageLoader] = None,
    ):
        """Initialize batch processor.

        Args:
            config: Validated batch configuration
            registry: Families to attempt (default: every supported family),
                narrowed by ``config.families``
            decoder_factory: Builds a decoder for (family, image size)
            loader: Turns a path into an ``IntensityImage``
        """
        self.config = config
        self.registry = (registry or FamilyRegistry.default()).subset(config.families)
        self.decoder_factory = decoder_factory or default_decoder_factory(config.corner_refinement)
        self.loader = loader or load_intensity_image

    def validate_input(self):
        input_dir = self.config.input_dir
        if not input_dir.exists():
            raise InputDirectoryError(f"Input directory does not exist: {input_dir}")
        if not input_dir.is_dir():
            raise InputDirectoryError(f"Input path is not a directory: {input_dir}")

    def build_detectors(self, images: List[Path]) -> List[FamilyDetector]:
        """Create one detector per family in registry order.

        Under the fixed-first-image policy the first accepted image is loaded
        once to fix the resolution every decoder is built for.
        """
        reuse = self.config.resize_policy == ResizePolicy.FIXED_FIRST_IMAGE
        detectors = [
            FamilyDetector(family, decoder_factory=self.decoder_factory, reuse=reuse)
            for family in self.registry
        ]
        if not reuse or not images:
            return detectors

        reference = images[0]
        image_size = self.loader(reference).size
        LOGGER.info(
            "Fixing decoder resolution to %dx%d from %s", image_size[0], image_size[1], reference.name
        )
        for detector in detectors:
            try:
                detector.prepare(image_size, reference.name)
            except FamilyDetectionError as e:
                if self.config.failure_policy == FailurePolicy.ABORT_RUN:
                    raise
                LOGGER.error("%s", e)
        return detectors

    def process_image(self, image_path: Path, detectors: List[FamilyDetector]) -> DetectionResult:
        """Load one image and run every family on it."""
        image_name = image_path.name
        LOGGER.info("Processing: %s", image_name)

        start = time.perf_counter()
        image = self.loader(image_path)
        image_load_ms = (time.perf_counter() - start) * 1000.0

        outcomes = detect_families(image, image_name, detectors, self.config.failure_policy)
        return aggregate_result(
            image_name,
            outcomes,
            self.registry,
            image_load_ms=image_load_ms if self.config.record_timings else None,
        )

    def _process_and_write(self, image_path: Path, detectors: List[FamilyDetector]) -> DetectionResult:
        result = self.process_image(image_path, detectors)
        LOGGER.info("Writing results for %s: %d detections", result.image, len(result.detections))
        write_detection_result(result, self.config.output_dir)
        return result

    def _run_sequential(self, images: List[Path], detectors: List[FamilyDetector]) -> List[DetectionResult]:
        return [self._process_and_write(path, detectors) for path in images]

    def _run_parallel(self, images: List[Path], detectors: List[FamilyDetector]) -> List[DetectionResult]:
        slots: List[Optional[DetectionResult]] = [None] * len(images)
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            futures = [executor.submit(self._process_and_write, path, detectors) for path in images]
            try:
                for index, future in enumerate(futures):
                    slots[index] = future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return [result for result in slots if result is not None]

    def run(self) -> BatchSummary:
        """Process every accepted image and write the manifest.

        Returns:
            BatchSummary: Counts and written paths

        Raises:
            TagBatchError: On any fatal error; the manifest is then not written.
        """
        self.validate_input()
        create_directory(self.config.output_dir)

        images = discover_images(self.config.input_dir, self.config.extensions, self.config.sort_inputs)
        check_output_names(images)
        if not images:
            LOGGER.info("No images found in %s", self.config.input_dir)

        detectors = self.build_detectors(images)
        if self.config.workers > 1 and len(images) > 1:
            results = self._run_parallel(images, detectors)
        else:
            results = self._run_sequential(images, detectors)

        summary = BatchSummary(family_counts={name: 0 for name in self.registry.names()})
        for result in results:
            summary.result_paths.append(str(Path(self.config.output_dir) / result_filename(result.image)))
            for detection in result.detections:
                summary.family_counts[detection.tag_family] += 1
        summary.processed_count = len(results)
        LOGGER.info("Processed %d images", summary.processed_count)

        manifest_path = write_manifest(Manifest.from_registry(self.registry), self.config.output_dir)
        summary.manifest_path = str(manifest_path)
        LOGGER.info("Wrote manifest: %s", manifest_path)
        return summary


def run_batch(config: BatchConfig, **kwargs) -> BatchSummary:
    """Convenience wrapper: build a ``BatchProcessor`` and run it."""
    return BatchProcessor(config, **kwargs).run()
