"""
Polygon algorithms for document outline extraction.

Provides the point-set geometry used to turn a foreground mask into a
document quadrilateral:

- Douglas-Peucker simplification
- Centroid-relative polygon unclip (expansion)
- Convex hull (Andrew's monotone chain)
- Minimum-area enclosing rectangle (rotating calipers over hull edges)
- Quadrilateral corner ordering and shoelace area

All functions are pure: inputs are never modified and results are new
float64 arrays of shape (N, 2).
"""

import logging

import numpy as np

from docrectify.geometry.types import PointsLike, as_points_array

logger = logging.getLogger(__name__)


def perpendicular_distance(p: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    """
    Distance from point p to the line through segment ab.

    A zero-length segment falls back to the Euclidean distance to a.
    """
    vx, vy = b[0] - a[0], b[1] - a[1]
    if vx == 0 and vy == 0:
        return float(np.hypot(p[0] - a[0], p[1] - a[1]))
    # Parallelogram area divided by base length
    num = abs((p[0] - a[0]) * vy - (p[1] - a[1]) * vx)
    return float(num / np.hypot(vx, vy))


def _segment_distances(pts: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Vectorised perpendicular_distance for every row of pts."""
    vx, vy = b[0] - a[0], b[1] - a[1]
    dx = pts[:, 0] - a[0]
    dy = pts[:, 1] - a[1]
    if vx == 0 and vy == 0:
        return np.hypot(dx, dy)
    return np.abs(dx * vy - dy * vx) / np.hypot(vx, vy)


def simplify_polygon(points: PointsLike, epsilon: float) -> np.ndarray:
    """
    Reduce the number of points in a polyline with the Douglas-Peucker algorithm.

    Args:
        points: Ordered points, shape (N, 2).
        epsilon: Distance tolerance. Points closer than epsilon to the chord
            of their enclosing segment are dropped.

    Returns:
        Simplified points. Inputs with 3 or fewer points, or a non-positive
        epsilon, are returned as an unmodified copy. The first and last
        points are always kept.

    Example:
        >>> pts = [[0, 0], [1, 0.01], [2, -0.01], [3, 5], [4, 6], [5, 7]]
        >>> simplify_polygon(pts, 0.5).shape
        (4, 2)
    """
    pts = as_points_array(points)
    n = len(pts)
    if n <= 3 or epsilon <= 0:
        return pts.copy()

    keep = np.zeros(n, dtype=bool)
    keep[0] = True
    keep[-1] = True

    # Explicit stack instead of recursion: long contours would otherwise hit
    # the interpreter recursion limit.
    stack = [(0, n - 1)]
    while stack:
        start, end = stack.pop()
        if end <= start + 1:
            continue
        dists = _segment_distances(pts[start + 1 : end], pts[start], pts[end])
        offset = int(np.argmax(dists))
        if dists[offset] > epsilon:
            index = start + 1 + offset
            keep[index] = True
            stack.append((start, index))
            stack.append((index, end))

    result = pts[keep]
    logger.debug(f"Simplified polygon from {n} to {len(result)} points")
    return result


def unclip_polygon(points: PointsLike, scale: float) -> np.ndarray:
    """
    Scale polygon points about their centroid.

    The centroid is the arithmetic mean of the points. A scale above 1
    expands the polygon, below 1 shrinks it; point count and order are kept.

    Args:
        points: Polygon points, shape (N, 2).
        scale: Scale factor. 1.0 or non-positive values return a copy.

    Returns:
        Scaled copy of the polygon.
    """
    pts = as_points_array(points)
    if len(pts) == 0 or scale == 1.0 or scale <= 0:
        return pts.copy()

    centroid = pts.mean(axis=0)
    return centroid + (pts - centroid) * scale


def _cross(o: tuple, a: tuple, b: tuple) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: PointsLike) -> np.ndarray:
    """
    Compute the convex hull with Andrew's monotone chain algorithm.

    Args:
        points: Arbitrary point set; may be unordered and contain duplicates.

    Returns:
        Hull vertices in strict counter-clockwise order (in x-right/y-up
        axes), without collinear vertices and without repeating the first
        point at the end. Inputs with fewer than 2 distinct points are
        returned unchanged.
    """
    pts = as_points_array(points)
    if len(pts) <= 1:
        return pts.copy()

    # Sort lexicographically by x, then y
    order = np.lexsort((pts[:, 1], pts[:, 0]))
    pts = pts[order]

    # Drop exact duplicates (adjacent after sorting)
    distinct = np.ones(len(pts), dtype=bool)
    distinct[1:] = np.any(pts[1:] != pts[:-1], axis=1)
    pts = pts[distinct]
    if len(pts) <= 1:
        return pts.copy()

    sorted_pts = [tuple(p) for p in pts.tolist()]

    lower: list = []
    for p in sorted_pts:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: list = []
    for p in reversed(sorted_pts):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    # Last point of each chain is the first point of the other
    hull = lower[:-1] + upper[:-1]
    return np.array(hull, dtype=np.float64)


def _rectangle_for_single_point(p: np.ndarray) -> np.ndarray:
    x, y = p
    return np.array([[x, y], [x + 1, y], [x + 1, y + 1], [x, y + 1]], dtype=np.float64)


def _rectangle_for_two_points(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    # Thin rectangle along the segment
    return np.array(
        [[a[0], a[1]], [b[0], b[1]], [b[0], b[1] + 1], [a[0], a[1] + 1]],
        dtype=np.float64,
    )


def minimum_area_rectangle(points: PointsLike) -> np.ndarray:
    """
    Find the minimum-area rectangle enclosing a point set.

    Uses rotating calipers: the optimal rectangle has one side collinear
    with a convex hull edge, so every hull edge orientation is tried and
    the smallest (first on ties) is kept.

    Args:
        points: Arbitrary point set.

    Returns:
        Array of shape (4, 2) with the rectangle corners c0..c3, where c0->c1
        runs along the winning hull edge and c1->c2 along its normal. Empty
        input yields an empty (0, 2) array. A single distinct point yields a
        1x1 square anchored at it; two distinct points a thin rectangle
        along their segment.
    """
    pts = as_points_array(points)
    if len(pts) == 0:
        return np.empty((0, 2), dtype=np.float64)

    hull = convex_hull(pts)
    if len(hull) == 1:
        return _rectangle_for_single_point(hull[0])
    if len(hull) == 2:
        return _rectangle_for_two_points(hull[0], hull[1])

    edges = np.roll(hull, -1, axis=0) - hull
    lengths = np.hypot(edges[:, 0], edges[:, 1])
    valid = lengths > 0
    u = edges[valid] / lengths[valid, np.newaxis]
    v = np.stack([-u[:, 1], u[:, 0]], axis=1)

    # Projections of every hull point onto every edge basis: shape (H, E)
    s = hull @ u.T
    t = hull @ v.T
    min_s, max_s = s.min(axis=0), s.max(axis=0)
    min_t, max_t = t.min(axis=0), t.max(axis=0)
    areas = (max_s - min_s) * (max_t - min_t)
    best = int(np.argmin(areas))

    bu, bv = u[best], v[best]
    c0 = bu * min_s[best] + bv * min_t[best]
    c1 = bu * max_s[best] + bv * min_t[best]
    c2 = bu * max_s[best] + bv * max_t[best]
    c3 = bu * min_s[best] + bv * max_t[best]

    logger.debug(
        f"Minimum-area rectangle over {len(hull)} hull points: area={areas[best]:.1f}"
    )
    return np.array([c0, c1, c2, c3], dtype=np.float64)


def polygon_area(points: PointsLike) -> float:
    """
    Signed shoelace area of a closed polygon.

    Positive for counter-clockwise vertices in x-right/y-up axes (which is
    clockwise on screen, where y grows downward).
    """
    pts = as_points_array(points)
    if len(pts) < 3:
        return 0.0
    x, y = pts[:, 0], pts[:, 1]
    return float(0.5 * (np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)))


def order_quadrilateral(quad: PointsLike) -> np.ndarray:
    """
    Order 4 corners cyclically, starting at top-left and running clockwise on screen.

    Corners are sorted by angle around their centroid, then rotated so the
    corner with the smallest x + y comes first. The result is
    [Top-Left, Top-Right, Bottom-Right, Bottom-Left] for any convex
    quadrilateral, whatever the input order.

    Raises:
        ValueError: If the input does not contain exactly 4 points.
    """
    pts = as_points_array(quad)
    if pts.shape != (4, 2):
        raise ValueError(f"Expected exactly 4 points with shape (4, 2), got {pts.shape}")

    centroid = pts.mean(axis=0)
    angles = np.arctan2(pts[:, 1] - centroid[1], pts[:, 0] - centroid[0])
    pts = pts[np.argsort(angles, kind="stable")]
    start = int(np.argmin(pts.sum(axis=1)))
    return np.roll(pts, -start, axis=0)
