"""
Perspective resampling.

Warps a source quadrilateral onto an upright rectangle by inverse mapping:
every destination pixel is projected back into the source image through a
homography and sampled bilinearly, so the output has no holes.
"""

import logging
from typing import Optional

import numpy as np

from docrectify.geometry.homography import apply_homography_grid, compute_homography
from docrectify.geometry.types import PointsLike, as_points_array

logger = logging.getLogger(__name__)


def _black_pixel(channels: int, dtype: np.dtype) -> np.ndarray:
    """Opaque black: zero colour channels, full alpha for 4-channel images."""
    pixel = np.zeros(channels, dtype=dtype)
    if channels == 4:
        if np.issubdtype(dtype, np.integer):
            pixel[3] = np.iinfo(dtype).max
        else:
            pixel[3] = 1.0
    return pixel


def _to_dtype(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    """Round-half-up and clip interpolated values back into the image dtype."""
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.floor(values + 0.5), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def _sample_bilinear(
    image: np.ndarray, xs: np.ndarray, ys: np.ndarray
) -> np.ndarray:
    """
    Bilinearly sample a (H, W, C) image at float coordinate arrays.

    Coordinates outside [0, W-1] x [0, H-1] produce opaque black.
    Returns an array of shape xs.shape + (C,) in the image dtype.
    """
    h, w, channels = image.shape
    valid = (xs >= 0) & (ys >= 0) & (xs <= w - 1) & (ys <= h - 1)

    sx = np.where(valid, xs, 0.0)
    sy = np.where(valid, ys, 0.0)
    x0 = np.floor(sx).astype(np.intp)
    y0 = np.floor(sy).astype(np.intp)
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)
    fx = (sx - x0)[..., np.newaxis]
    fy = (sy - y0)[..., np.newaxis]

    src = image.astype(np.float64)
    c00 = src[y0, x0]
    c10 = src[y0, x1]
    c01 = src[y1, x0]
    c11 = src[y1, x1]
    top = c00 + (c10 - c00) * fx
    bottom = c01 + (c11 - c01) * fx
    values = _to_dtype(top + (bottom - top) * fy, image.dtype)

    values[~valid] = _black_pixel(channels, image.dtype)
    return values


def bilinear_sample(image: np.ndarray, x: float, y: float) -> np.ndarray:
    """
    Sample one pixel at a non-integer coordinate.

    The four surrounding pixels are interpolated by the fractional offsets
    in x and y. Coordinates outside the image yield opaque black.

    Args:
        image: Image of shape (H, W) or (H, W, C).
        x: Horizontal sample coordinate.
        y: Vertical sample coordinate.

    Returns:
        Array of C channel values (a scalar array for grayscale input).
    """
    gray = image.ndim == 2
    src = image[:, :, np.newaxis] if gray else image
    value = _sample_bilinear(src, np.array([float(x)]), np.array([float(y)]))[0]
    return value[0] if gray else value


def warp_perspective(
    image: np.ndarray, src_quad: PointsLike, dst_width: int, dst_height: int
) -> Optional[np.ndarray]:
    """
    Warp the quadrilateral src_quad of image into a dst_width x dst_height rectangle.

    The homography is built from the destination corners
    (0,0), (W-1,0), (W-1,H-1), (0,H-1) to src_quad[0..3], so the quad
    corners must be given in that same order (TL, TR, BR, BL).

    Args:
        image: Source image, (H, W) or (H, W, C).
        src_quad: 4 source corners, shape (4, 2).
        dst_width: Output width in pixels.
        dst_height: Output height in pixels.

    Returns:
        Warped image with the same dtype and channel count as the source,
        or None when the input is invalid or the homography is singular.
    """
    if image is None or image.size == 0 or image.ndim not in (2, 3):
        logger.debug("warp_perspective: invalid source image")
        return None
    if dst_width <= 0 or dst_height <= 0:
        logger.debug(f"warp_perspective: invalid target size {dst_width}x{dst_height}")
        return None
    try:
        quad = as_points_array(src_quad)
    except ValueError:
        return None
    if quad.shape != (4, 2):
        logger.debug(f"warp_perspective: expected 4 corners, got {quad.shape}")
        return None

    dst_corners = np.array(
        [
            [0, 0],
            [dst_width - 1, 0],
            [dst_width - 1, dst_height - 1],
            [0, dst_height - 1],
        ],
        dtype=np.float64,
    )
    h, ok = compute_homography(dst_corners, quad)
    if not ok:
        logger.debug("warp_perspective: singular homography, skipping warp")
        return None

    xs, ys = np.meshgrid(
        np.arange(dst_width, dtype=np.float64), np.arange(dst_height, dtype=np.float64)
    )
    sx, sy = apply_homography_grid(h, xs, ys)

    gray = image.ndim == 2
    src = image[:, :, np.newaxis] if gray else image
    out = _sample_bilinear(src, sx, sy)
    return out[:, :, 0] if gray else out
