"""
Shared helper functions and utilities.

This module contains logging setup and the batch configuration layer: a
defaults dictionary, optional JSON overrides and the typed ``BatchConfig``
built from them.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

from .exceptions import ConfigError, OutputDirectoryError

CORNER_REFINEMENTS = ('none', 'subpix', 'contour', 'apriltag')


class ResizePolicy(Enum):
    """When decoders are (re)built relative to image resolution."""
    PER_IMAGE = "per-image"
    FIXED_FIRST_IMAGE = "fixed-first-image"


class FailurePolicy(Enum):
    """What a per-family detection failure does to the run."""
    ABORT_RUN = "abort-run"
    SKIP_AND_ZERO_RESULT = "skip-and-zero-result"


def setup_logging(level=logging.INFO):
    """Set up logging configuration.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def get_config(config_path=None):
    """Load configuration from file or return defaults.

    Args:
        config_path: Path to a JSON configuration file (optional)

    Returns:
        dict: Configuration dictionary

    Raises:
        ConfigError: If ``config_path`` is given but cannot be read or parsed.
    """
    default_config = {
        # Families to attempt; None means the full registry
        'families': None,

        # Case-insensitive, without the leading dot
        'extensions': ['jpg', 'jpeg', 'png'],
        'sort_inputs': False,

        'resize_policy': ResizePolicy.PER_IMAGE.value,
        'failure_policy': FailurePolicy.SKIP_AND_ZERO_RESULT.value,

        'record_timings': True,
        'corner_refinement': 'none',  # 'none', 'subpix', 'contour', 'apriltag'
        'workers': 1,
    }

    if config_path is None:
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            loaded_config = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to load config from {config_path}: {e}") from e

    if not isinstance(loaded_config, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")

    unknown = sorted(set(loaded_config) - set(default_config))
    if unknown:
        raise ConfigError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")

    default_config.update(loaded_config)
    logging.getLogger(__name__).info("Configuration loaded from %s", config_path)
    return default_config


def validate_config(config):
    """Validate configuration parameters.

    Args:
        config: Configuration dictionary

    Raises:
        ConfigError: On the first invalid value found.
    """
    extensions = config.get('extensions')
    if not isinstance(extensions, list) or not extensions or not all(
        isinstance(ext, str) and ext.strip('.') for ext in extensions
    ):
        raise ConfigError(f"extensions must be a non-empty list of file extensions, got {extensions!r}")

    for key in ('sort_inputs', 'record_timings'):
        if not isinstance(config.get(key), bool):
            raise ConfigError(f"{key} must be true or false, got {config.get(key)!r}")

    for key, enum_type in (('resize_policy', ResizePolicy), ('failure_policy', FailurePolicy)):
        allowed = [member.value for member in enum_type]
        if config.get(key) not in allowed:
            raise ConfigError(f"{key} must be one of {allowed}, got {config.get(key)!r}")

    workers = config.get('workers')
    if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
        raise ConfigError(f"workers must be a positive integer, got {workers!r}")

    if workers > 1 and config['resize_policy'] == ResizePolicy.FIXED_FIRST_IMAGE.value:
        raise ConfigError("fixed-first-image resize policy shares decoders and requires workers=1")

    if config.get('corner_refinement') not in CORNER_REFINEMENTS:
        raise ConfigError(
            f"corner_refinement must be one of {list(CORNER_REFINEMENTS)}, "
            f"got {config.get('corner_refinement')!r}"
        )

    families = config.get('families')
    if families is not None and not (
        isinstance(families, list) and all(isinstance(name, str) for name in families)
    ):
        raise ConfigError("families must be a list of family names")


def normalize_extensions(extensions) -> FrozenSet[str]:
    """Lower-case extensions and strip leading dots."""
    return frozenset(ext.strip().lstrip('.').lower() for ext in extensions)


@dataclass
class BatchConfig:
    """Configuration for one batch run."""

    input_dir: Path
    output_dir: Path
    families: Optional[List[str]] = None
    extensions: FrozenSet[str] = field(default_factory=lambda: frozenset({'jpg', 'jpeg', 'png'}))
    sort_inputs: bool = False
    resize_policy: ResizePolicy = ResizePolicy.PER_IMAGE
    failure_policy: FailurePolicy = FailurePolicy.SKIP_AND_ZERO_RESULT
    record_timings: bool = True
    corner_refinement: str = 'none'
    workers: int = 1

    @classmethod
    def from_dict(cls, input_dir, output_dir, config: Dict[str, Any]) -> BatchConfig:
        """Build a validated configuration from a ``get_config`` dictionary."""
        validate_config(config)
        return cls(
            input_dir=Path(input_dir),
            output_dir=Path(output_dir),
            families=list(config['families']) if config.get('families') else None,
            extensions=normalize_extensions(config['extensions']),
            sort_inputs=config['sort_inputs'],
            resize_policy=ResizePolicy(config['resize_policy']),
            failure_policy=FailurePolicy(config['failure_policy']),
            record_timings=config['record_timings'],
            corner_refinement=config.get('corner_refinement', 'none'),
            workers=config['workers'],
        )


def create_directory(path):
    """Create directory (and parents) if it doesn't exist.

    Args:
        path: Directory path to create

    Raises:
        OutputDirectoryError: If the directory cannot be created.
    """
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(f"Failed to create output directory {path}: {e}") from e
    if not os.access(path, os.W_OK):
        raise OutputDirectoryError(f"Output directory is not writable: {path}")
