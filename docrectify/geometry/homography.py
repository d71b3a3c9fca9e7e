"""
Planar homography estimation.

Estimates the 3x3 projective transform mapping 4 source points onto 4
destination points by solving the classic 8-unknown linear system with
Gaussian elimination and partial pivoting. Failure (collinear or duplicate
correspondences) is reported through an ``ok`` flag rather than an
exception, because it is an expected outcome for degenerate detections.
"""

import logging
from typing import Tuple

import numpy as np

from docrectify.geometry.types import PointsLike, as_points_array

logger = logging.getLogger(__name__)

# Pivot magnitudes below this are treated as zero (singular system)
PIVOT_EPSILON = 1e-12

# Returned by apply_homography when the projective denominator vanishes
OFF_CANVAS = -1e9


def solve_linear_system(a: np.ndarray, b: np.ndarray) -> Tuple[np.ndarray, bool]:
    """
    Solve the n x n system ``a @ x = b`` by Gauss-Jordan elimination.

    For each column the row with the largest absolute value among the
    remaining rows is swapped into pivot position, normalised, and the
    column is eliminated from every other row, so the solution can be read
    directly off the right-hand side.

    Args:
        a: Coefficient matrix, shape (n, n). Not modified.
        b: Right-hand side, shape (n,). Not modified.

    Returns:
        Tuple of (solution, ok). ``ok`` is False, and the solution all
        zeros, when a pivot column is numerically zero.

    Example:
        >>> x, ok = solve_linear_system(np.eye(8), np.arange(8.0))
        >>> ok, float(x[3])
        (True, 3.0)
    """
    matrix = np.array(a, dtype=np.float64)
    vector = np.array(b, dtype=np.float64)
    n = len(vector)
    if matrix.shape != (n, n):
        raise ValueError(f"Expected square matrix of size {n}, got {matrix.shape}")

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(matrix[col:, col])))
        if abs(matrix[pivot_row, col]) < PIVOT_EPSILON:
            logger.debug(f"Singular system: no pivot in column {col}")
            return np.zeros(n, dtype=np.float64), False

        if pivot_row != col:
            matrix[[col, pivot_row]] = matrix[[pivot_row, col]]
            vector[[col, pivot_row]] = vector[[pivot_row, col]]

        div = matrix[col, col]
        matrix[col] /= div
        vector[col] /= div

        factors = matrix[:, col].copy()
        factors[col] = 0.0
        matrix -= np.outer(factors, matrix[col])
        vector -= factors * vector[col]

    return vector, True


def compute_homography(
    src: PointsLike, dst: PointsLike
) -> Tuple[np.ndarray, bool]:
    """
    Estimate the homography H mapping src[i] onto dst[i] for 4 correspondences.

    With h8 fixed to 1, each correspondence contributes two rows:

        x' * (h6 X + h7 Y + 1) = h0 X + h1 Y + h2
        y' * (h6 X + h7 Y + 1) = h3 X + h4 Y + h5

    Args:
        src: 4 source points, shape (4, 2).
        dst: 4 destination points, shape (4, 2).

    Returns:
        Tuple of (h, ok) where h is the row-major 3x3 matrix flattened to 9
        values with h[8] == 1. ``ok`` is False for singular configurations.

    Raises:
        ValueError: If either point set is not shaped (4, 2).
    """
    p = as_points_array(src)
    q = as_points_array(dst)
    if p.shape != (4, 2) or q.shape != (4, 2):
        raise ValueError(
            f"Expected 4 correspondences with shape (4, 2), got {p.shape} and {q.shape}"
        )

    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i in range(4):
        X, Y = p[i]
        x, y = q[i]
        r = 2 * i
        a[r] = [X, Y, 1, 0, 0, 0, -X * x, -Y * x]
        b[r] = x
        a[r + 1] = [0, 0, 0, X, Y, 1, -X * y, -Y * y]
        b[r + 1] = y

    h, ok = solve_linear_system(a, b)
    if not ok:
        return np.zeros(9, dtype=np.float64), False
    return np.append(h, 1.0), True


def apply_homography(h: np.ndarray, x: float, y: float) -> Tuple[float, float]:
    """
    Map (x, y) through homography h (9 values, row-major).

    Returns (OFF_CANVAS, OFF_CANVAS) when the denominator is exactly zero.
    """
    denom = h[6] * x + h[7] * y + h[8]
    if denom == 0:
        return OFF_CANVAS, OFF_CANVAS
    sx = (h[0] * x + h[1] * y + h[2]) / denom
    sy = (h[3] * x + h[4] * y + h[5]) / denom
    return float(sx), float(sy)


def apply_homography_grid(
    h: np.ndarray, xs: np.ndarray, ys: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorised apply_homography over coordinate arrays of equal shape."""
    denom = h[6] * xs + h[7] * ys + h[8]
    zero = denom == 0
    safe = np.where(zero, 1.0, denom)
    sx = (h[0] * xs + h[1] * ys + h[2]) / safe
    sy = (h[3] * xs + h[4] * ys + h[5]) / safe
    sx = np.where(zero, OFF_CANVAS, sx)
    sy = np.where(zero, OFF_CANVAS, sy)
    return sx, sy
