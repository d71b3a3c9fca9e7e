"""
Geometry primitives for document rectification.

Pure, side-effect-free functions safe to call concurrently:

1. Value types (Point, Box) and point-array helpers
2. Polygon algorithms (simplify, unclip, convex hull, minimum-area rectangle)
3. Homography estimation (8x8 Gaussian elimination)
4. Perspective resampling (inverse warp with bilinear sampling)
"""

from docrectify.geometry.homography import (
    apply_homography,
    compute_homography,
    solve_linear_system,
)
from docrectify.geometry.polygon import (
    convex_hull,
    minimum_area_rectangle,
    order_quadrilateral,
    perpendicular_distance,
    polygon_area,
    simplify_polygon,
    unclip_polygon,
)
from docrectify.geometry.types import (
    Box,
    Point,
    as_points_array,
    bounding_box,
    offset_point,
    offset_points,
    scale_point,
    scale_points,
    to_point_list,
)
from docrectify.geometry.warping import bilinear_sample, warp_perspective

__all__ = [
    "Box",
    "Point",
    "as_points_array",
    "bounding_box",
    "offset_point",
    "offset_points",
    "scale_point",
    "scale_points",
    "to_point_list",
    "convex_hull",
    "minimum_area_rectangle",
    "order_quadrilateral",
    "perpendicular_distance",
    "polygon_area",
    "simplify_polygon",
    "unclip_polygon",
    "apply_homography",
    "compute_homography",
    "solve_linear_system",
    "bilinear_sample",
    "warp_perspective",
]
