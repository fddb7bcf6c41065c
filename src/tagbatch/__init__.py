"""
tagbatch - batch AprilTag detection.

This package provides functionality for:
- Discovering images in a directory
- Normalizing them to 8-bit intensity buffers
- Running every supported tag family over each image
- Writing per-image JSON results and a run manifest
"""

from .batch import BatchProcessor, discover_images, run_batch
from .exceptions import (
    ColorConversionError,
    ConfigError,
    DetectionContractError,
    DuplicateOutputError,
    FamilyDetectionError,
    ImageLoadError,
    InputDirectoryError,
    OutputDirectoryError,
    OutputWriteError,
    TagBatchError,
    UnknownFamilyError,
)
from .families import FamilyDescriptor, FamilyRegistry
from .image_io import IntensityImage, load_intensity_image
from .marker_detect import FamilyDetector, FamilyOutcome, MarkerDetector, RawDetection, default_decoder_factory
from .results import (
    BatchSummary,
    Corner,
    Detection,
    DetectionResult,
    FamilyTiming,
    Manifest,
    Timings,
    aggregate_result,
)
from .utils import BatchConfig, FailurePolicy, ResizePolicy
from .writer import write_detection_result, write_manifest

__version__ = "0.1.0"

__all__ = [
    # Pipeline
    "BatchProcessor",
    "run_batch",
    "discover_images",
    "BatchConfig",
    "ResizePolicy",
    "FailurePolicy",
    # Families & detection
    "FamilyDescriptor",
    "FamilyRegistry",
    "MarkerDetector",
    "default_decoder_factory",
    "FamilyDetector",
    "FamilyOutcome",
    "RawDetection",
    # Images
    "IntensityImage",
    "load_intensity_image",
    # Results
    "Corner",
    "Detection",
    "FamilyTiming",
    "Timings",
    "DetectionResult",
    "Manifest",
    "BatchSummary",
    "aggregate_result",
    "write_detection_result",
    "write_manifest",
    # Errors
    "TagBatchError",
    "ConfigError",
    "InputDirectoryError",
    "OutputDirectoryError",
    "DuplicateOutputError",
    "ImageLoadError",
    "ColorConversionError",
    "FamilyDetectionError",
    "UnknownFamilyError",
    "DetectionContractError",
    "OutputWriteError",
]
