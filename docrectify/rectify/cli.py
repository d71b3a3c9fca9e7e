"""
Command line entry point: rectify a single image file.

Usage:
    docrectify-rectify page.jpg page_rectified.png --models-dir models -v
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import cv2
import yaml
from pydantic import ValidationError

from docrectify.rectify.config_loader import (
    RectifierConfig,
    get_default_config,
    load_config,
)
from docrectify.rectify.errors import RectifyError
from docrectify.rectify.processor import Rectifier
from docrectify.rectify.types import RectificationMethod

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Detect a document page and warp it to a flat rectangle"
    )
    parser.add_argument("input", type=Path, help="Input image")
    parser.add_argument("output", type=Path, help="Output image path")
    parser.add_argument("--config", type=Path, help="YAML rectifier configuration")
    parser.add_argument("--model", type=Path, help="ONNX model path")
    parser.add_argument(
        "--method",
        choices=[m.value for m in RectificationMethod],
        help="Model output interpretation",
    )
    parser.add_argument("--models-dir", type=str, help="Base directory for models")
    parser.add_argument("--output-height", type=int, help="Target output height")
    parser.add_argument("--debug-dir", type=Path, help="Write debug PNGs here")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def build_config(args: argparse.Namespace) -> RectifierConfig:
    """Merge the configuration file (or bundled defaults) with CLI overrides."""
    base = load_config(args.config) if args.config else get_default_config()
    values = base.model_dump()
    values["enabled"] = True

    if args.method:
        values["method"] = args.method
        if args.model is None:
            # Re-resolve the default model for the new method
            values["model_path"] = None
    if args.model is not None:
        values["model_path"] = args.model
    if args.output_height is not None:
        values["output_height"] = args.output_height
    if args.debug_dir is not None:
        values["debug_dir"] = args.debug_dir

    config = RectifierConfig(**values)
    if args.models_dir:
        config = config.update_model_path(args.models_dir)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = build_config(args)
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    image = cv2.imread(str(args.input), cv2.IMREAD_UNCHANGED)
    if image is None:
        logger.error(f"Could not read image: {args.input}")
        return 1

    try:
        with Rectifier(config) as rectifier:
            result = rectifier.process(image)
    except RectifyError as e:
        logger.error(f"Failed to initialise rectifier: {e}")
        return 1

    logger.info(result.get_error_message())
    args.output.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(args.output), result.image):
        logger.error(f"Could not write image: {args.output}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
