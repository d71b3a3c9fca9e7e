"""
Model input preparation for the Rectify module.

Resizes images to the model's canonical input size and converts them into
normalised NCHW float tensors.
"""

import logging
from typing import Tuple

import cv2
import numpy as np

from docrectify.rectify.errors import NormalizationError

logger = logging.getLogger(__name__)

# Model input sides must be multiples of this
SIZE_MULTIPLE = 32


def _channel_count(image: np.ndarray) -> int:
    return 1 if image.ndim == 2 else int(image.shape[2])


def resize_for_model(
    image: np.ndarray, max_side: int = 1024, min_side: int = 32
) -> np.ndarray:
    """
    Resize an image for model input, preserving aspect ratio.

    Images are only ever scaled down to fit within max_side x max_side;
    both sides are then floored to a multiple of 32 (but at least min_side).
    Resampling uses Lanczos interpolation.

    Args:
        image: Image of shape (H, W) or (H, W, C).
        max_side: Maximum width and height.
        min_side: Minimum width and height; smaller inputs are rejected.

    Returns:
        Resized image.

    Raises:
        NormalizationError: If the image is empty or below the minimum size.
    """
    if image is None or image.size == 0 or image.ndim not in (2, 3):
        raise NormalizationError("Invalid input image: image is None or empty")

    height, width = image.shape[:2]
    if width < min_side or height < min_side:
        raise NormalizationError(
            f"Image dimensions {width}x{height} below minimum {min_side}x{min_side}"
        )

    scale = min(max_side / width, max_side / height, 1.0)
    new_width = max((int(width * scale) // SIZE_MULTIPLE) * SIZE_MULTIPLE, min_side)
    new_height = max((int(height * scale) // SIZE_MULTIPLE) * SIZE_MULTIPLE, min_side)

    try:
        resized = cv2.resize(
            image, (new_width, new_height), interpolation=cv2.INTER_LANCZOS4
        )
    except cv2.error as e:
        raise NormalizationError(f"Resize failed: {e}") from e

    logger.debug(f"Resized {width}x{height} -> {new_width}x{new_height} for model input")
    return resized


def normalize_image(image: np.ndarray) -> Tuple[np.ndarray, int, int]:
    """
    Convert a BGR(A)/grayscale uint8 image into a (1, 3, H, W) float32 tensor.

    Channels are reordered to RGB, alpha is dropped and values are scaled
    from [0, 255] to [0, 1].

    Returns:
        Tuple of (tensor, width, height).

    Raises:
        NormalizationError: If the image is empty, not uint8, or has an
            unsupported channel count.
    """
    if image is None or image.size == 0 or image.ndim not in (2, 3):
        raise NormalizationError("Invalid input image: image is None or empty")
    if image.dtype != np.uint8:
        raise NormalizationError(f"Expected uint8 image, got {image.dtype}")

    conversions = {
        1: cv2.COLOR_GRAY2RGB,
        3: cv2.COLOR_BGR2RGB,
        4: cv2.COLOR_BGRA2RGB,
    }
    channels = _channel_count(image)
    if channels not in conversions:
        raise NormalizationError(f"Unsupported channel count: {channels}")

    src = image[:, :, 0] if image.ndim == 3 and channels == 1 else image
    rgb = cv2.cvtColor(src, conversions[channels])

    height, width = rgb.shape[:2]
    tensor = (rgb.astype(np.float32) / 255.0).transpose(2, 0, 1)[np.newaxis]
    return np.ascontiguousarray(tensor), width, height
