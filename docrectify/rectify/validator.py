"""
Plausibility gates for detected document quadrilaterals.

Shared by both rectification methods. Each gate returns a RejectionReason
(RejectionReason.NONE when the candidate passes) so the processor has
exactly one pass-through exit per failure.
"""

import logging
from itertools import combinations
from typing import Tuple, Union

import numpy as np

from docrectify.rectify.config_loader import RectifierConfig
from docrectify.rectify.types import RejectionReason

logger = logging.getLogger(__name__)


def _as_quad(quad: Union[np.ndarray, list]) -> np.ndarray:
    quad = np.asarray(quad, dtype=np.float64)
    if quad.shape != (4, 2):
        raise ValueError(f"Expected 4 corners with shape (4, 2), got {quad.shape}")
    return quad


def calculate_edge_lengths(
    quad: Union[np.ndarray, list],
) -> Tuple[float, float, float, float]:
    """
    Calculate the length of all 4 edges of a quadrilateral.

    Args:
        quad: 4 corner points in order [TL, TR, BR, BL], shape (4, 2).

    Returns:
        Tuple of (top_edge, right_edge, bottom_edge, left_edge) lengths.

    Example:
        >>> top, right, bottom, left = calculate_edge_lengths(
        ...     [[0, 0], [300, 0], [300, 100], [0, 100]]
        ... )
        >>> print(f"Width: {top:.0f}, Height: {right:.0f}")
        Width: 300, Height: 100
    """
    tl, tr, br, bl = _as_quad(quad)

    top_edge = float(np.linalg.norm(tr - tl))
    right_edge = float(np.linalg.norm(br - tr))
    bottom_edge = float(np.linalg.norm(bl - br))
    left_edge = float(np.linalg.norm(tl - bl))

    return top_edge, right_edge, bottom_edge, left_edge


def calculate_average_dimensions(quad: Union[np.ndarray, list]) -> Tuple[float, float]:
    """
    Average the opposing edge pairs of a quadrilateral.

    Returns:
        Tuple of (average_width, average_height), where width averages the
        top and bottom edges and height the left and right edges.
    """
    top, right, bottom, left = calculate_edge_lengths(quad)
    return (top + bottom) * 0.5, (left + right) * 0.5


def min_corner_distance(quad: Union[np.ndarray, list]) -> float:
    """Smallest distance between any two of the 4 corners."""
    corners = _as_quad(quad)
    return min(float(np.linalg.norm(a - b)) for a, b in combinations(corners, 2))


def validate_mask_coverage(
    foreground_count: int, width: int, height: int, config: RectifierConfig
) -> Tuple[RejectionReason, float]:
    """
    Check that a thresholded mask has enough foreground to fit a rectangle.

    Args:
        foreground_count: Number of pixels at or above the mask threshold.
        width: Mask width.
        height: Mask height.
        config: Rectifier configuration with coverage gates.

    Returns:
        Tuple of (reason, coverage); reason is NONE when the mask passes.
    """
    total = width * height
    coverage = foreground_count / total if total > 0 else 0.0

    if coverage < config.min_mask_coverage:
        logger.warning(
            f"Mask coverage {coverage:.3f} below minimum {config.min_mask_coverage:.3f}"
        )
        return RejectionReason.LOW_MASK_COVERAGE, coverage
    if foreground_count < config.min_foreground_points:
        logger.warning(
            f"Only {foreground_count} foreground points "
            f"(minimum {config.min_foreground_points})"
        )
        return RejectionReason.TOO_FEW_POINTS, coverage

    logger.debug(f"Mask coverage {coverage:.3f} ({foreground_count} points)")
    return RejectionReason.NONE, coverage


def validate_quadrilateral(
    quad: Union[np.ndarray, list], width: int, height: int, config: RectifierConfig
) -> RejectionReason:
    """
    Run the plausibility gates on a candidate quadrilateral in model-input space.

    Gates, in order:
    1. No two corners closer than ``min_corner_distance_ratio`` of the width
    2. Both average edge lengths greater than 1
    3. Area ratio (avg width * avg height / image area) >= ``min_rect_area_ratio``
    4. Aspect ratio (avg width / avg height) within
       [``min_rect_aspect``, ``max_rect_aspect``]

    Args:
        quad: 4 corners ordered [TL, TR, BR, BL].
        width: Model input width.
        height: Model input height.
        config: Rectifier configuration with the gate thresholds.

    Returns:
        RejectionReason.NONE if all gates pass, else the first failing gate.
    """
    min_distance = config.min_corner_distance_ratio * width
    closest = min_corner_distance(quad)
    if closest < min_distance:
        logger.warning(
            f"Degenerate quadrilateral: corners {closest:.1f}px apart "
            f"(minimum {min_distance:.1f}px)"
        )
        return RejectionReason.DEGENERATE_SHAPE

    avg_width, avg_height = calculate_average_dimensions(quad)
    if avg_width <= 1 or avg_height <= 1:
        logger.warning(
            f"Degenerate quadrilateral: average size {avg_width:.1f}x{avg_height:.1f}"
        )
        return RejectionReason.DEGENERATE_SHAPE

    area_ratio = (avg_width * avg_height) / float(width * height)
    if area_ratio < config.min_rect_area_ratio:
        logger.warning(
            f"Quadrilateral area ratio {area_ratio:.3f} below minimum "
            f"{config.min_rect_area_ratio:.3f}"
        )
        return RejectionReason.SMALL_AREA

    aspect_ratio = avg_width / avg_height
    if not config.min_rect_aspect <= aspect_ratio <= config.max_rect_aspect:
        logger.warning(
            f"Aspect ratio {aspect_ratio:.2f} out of bounds "
            f"[{config.min_rect_aspect}, {config.max_rect_aspect}]"
        )
        return RejectionReason.INVALID_ASPECT_RATIO

    logger.info(
        f"Quadrilateral accepted: {avg_width:.1f}x{avg_height:.1f}, "
        f"area ratio {area_ratio:.3f}, aspect {aspect_ratio:.2f}"
    )
    return RejectionReason.NONE
