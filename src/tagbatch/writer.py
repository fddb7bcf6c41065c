"""
Result and manifest persistence.

Every file is written to a temporary sibling and moved into place with
``os.replace`` so readers see either the previous file or the complete new
one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

from .exceptions import OutputWriteError
from .results import DetectionResult, Manifest

LOGGER = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
RESULT_SUFFIX = ".json"
# Permission bits before the umask, as open() uses for new files
FILE_MODE = 0o666


def current_umask() -> int:
    """Return the process umask, leaving it unchanged."""
    mask = os.umask(0)
    os.umask(mask)
    return mask


def serialize_payload(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2) + "\n"


def result_filename(image_name: str) -> str:
    """Name of the result file for a source image (extension replaced)."""
    return Path(image_name).stem + RESULT_SUFFIX


def atomic_write_text(text: str, filepath: Union[str, Path]) -> Path:
    """Write ``text`` to ``filepath`` as a whole-file replacement.

    Raises:
        OutputWriteError: If the temporary file cannot be written or moved.
    """
    filepath = Path(filepath)
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.chmod(tmp_path, FILE_MODE & ~current_umask())
        os.replace(tmp_path, filepath)
    except OSError as e:
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise OutputWriteError(f"Failed to write {filepath}: {e}") from e
    return filepath


def write_detection_result(result: DetectionResult, output_dir: Union[str, Path]) -> Path:
    """Write one image's result as ``<stem>.json`` inside ``output_dir``."""
    output_path = Path(output_dir) / result_filename(result.image)
    atomic_write_text(serialize_payload(result.to_dict()), output_path)
    LOGGER.debug("Wrote %s", output_path)
    return output_path


def write_manifest(manifest: Manifest, output_dir: Union[str, Path]) -> Path:
    """Write the run manifest under its fixed name inside ``output_dir``."""
    manifest_path = Path(output_dir) / MANIFEST_FILENAME
    atomic_write_text(serialize_payload(manifest.to_dict()), manifest_path)
    return manifest_path
