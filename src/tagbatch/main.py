"""
Main entry point for the tagbatch command-line tool.

Usage:
    tagbatch --input images/ --output results/
    tagbatch --input images/ --output results/ --families tag36h11,tag25h9
    tagbatch --input images/ --output results/ --config batch.json --verbose
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .batch import run_batch
from .exceptions import TagBatchError
from .utils import (
    CORNER_REFINEMENTS,
    BatchConfig,
    FailurePolicy,
    ResizePolicy,
    get_config,
    setup_logging,
)

LOGGER = logging.getLogger(__name__)


def _comma_list(value: str) -> List[str]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    if not items:
        raise argparse.ArgumentTypeError("expected a comma-separated list")
    return items


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the command-line parser.

    ``--help`` is handled by ``main`` so usage goes to the error stream.
    """
    parser = argparse.ArgumentParser(
        prog="tagbatch",
        description="Detect AprilTag markers in every image of a directory and write JSON results.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog="""
Output:
  <output>/<image-stem>.json   detections (and timings) per image
  <output>/manifest.json       families attempted, in registry order
        """,
    )

    parser.add_argument("--input", required=True, metavar="<input-directory>",
                        help="Directory containing the images to scan")
    parser.add_argument("--output", required=True, metavar="<output-directory>",
                        help="Directory for results (created if missing)")
    parser.add_argument("--config", metavar="<file>",
                        help="JSON file overriding the default batch configuration")
    parser.add_argument("--families", type=_comma_list, metavar="a,b",
                        help="Only attempt these families (default: all)")
    parser.add_argument("--extensions", type=_comma_list, metavar="jpg,png",
                        help="Accepted file extensions (default: jpg,jpeg,png)")
    parser.add_argument("--resize-policy", choices=[p.value for p in ResizePolicy],
                        help="Build decoders per image, or once from the first image")
    parser.add_argument("--failure-policy", choices=[p.value for p in FailurePolicy],
                        help="Abort the run on a family failure, or record zero detections")
    parser.add_argument("--corner-refinement", choices=list(CORNER_REFINEMENTS),
                        help="OpenCV corner refinement method")
    parser.add_argument("--no-timings", action="store_true",
                        help="Omit per-phase timings from the results")
    parser.add_argument("--sort", action="store_true",
                        help="Process images in file-name order")
    parser.add_argument("--workers", type=int, metavar="N",
                        help="Process N images concurrently (default: 1)")
    parser.add_argument("--verbose", "-V", action="store_true",
                        help="Enable debug logging")

    return parser


def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Overlay explicitly given command-line options on a config dict."""
    overrides = {
        "families": args.families,
        "extensions": args.extensions,
        "resize_policy": args.resize_policy,
        "failure_policy": args.failure_policy,
        "corner_refinement": args.corner_refinement,
        "workers": args.workers,
    }
    config.update({key: value for key, value in overrides.items() if value is not None})
    if args.no_timings:
        config["record_timings"] = False
    if args.sort:
        config["sort_inputs"] = True
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_arg_parser()

    if len(argv) < 2 or any(arg in ("-h", "--help") for arg in argv):
        parser.print_help(sys.stderr)
        return 1

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level)

    try:
        config = apply_overrides(get_config(args.config), args)
        batch_config = BatchConfig.from_dict(args.input, args.output, config)
        run_batch(batch_config)
    except TagBatchError as e:
        LOGGER.debug("Batch run failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
