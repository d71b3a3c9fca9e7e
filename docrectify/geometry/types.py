"""
Core geometric value types for the rectification engine.

Provides immutable Pydantic-based types for points and axis-aligned boxes,
plus helpers to convert between these types and numpy point arrays, which
is the representation every polygon algorithm works on.
"""

from typing import Any, Sequence, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Point(BaseModel):
    """
    Immutable 2D coordinate in float space.

    Attributes:
        x: Horizontal coordinate.
        y: Vertical coordinate (grows downward in image space).

    Example:
        >>> p = Point(x=10.5, y=20.0)
        >>> p.to_numpy()
        array([10.5, 20. ])
    """

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="X-coordinate (horizontal)")
    y: float = Field(..., description="Y-coordinate (vertical)")

    @classmethod
    def from_numpy(cls, arr: np.ndarray) -> "Point":
        """
        Create Point from a numpy array of shape (2,).

        Raises:
            ValueError: If array shape is not (2,).
        """
        arr = np.asarray(arr)
        if arr.shape != (2,):
            raise ValueError(f"Expected array of shape (2,), got {arr.shape}")
        return cls(x=float(arr[0]), y=float(arr[1]))

    def to_numpy(self) -> np.ndarray:
        """Return the point as a float64 array [x, y]."""
        return np.array([self.x, self.y], dtype=np.float64)

    def to_tuple(self) -> Tuple[float, float]:
        """Return the point as an (x, y) tuple."""
        return (self.x, self.y)


class Box(BaseModel):
    """
    Axis-aligned bounding box in float coordinates.

    Min/max values are swapped on construction if given out of order, so
    ``min_x <= max_x`` and ``min_y <= max_y`` always hold.

    Example:
        >>> box = Box(min_x=10, min_y=40, max_x=0, max_y=20)
        >>> (box.min_x, box.max_x, box.min_y, box.max_y)
        (0.0, 10.0, 20.0, 40.0)
    """

    model_config = ConfigDict(frozen=True)

    min_x: float = 0.0
    min_y: float = 0.0
    max_x: float = 0.0
    max_y: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _order_bounds(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            x1, x2 = data.get("min_x", 0.0), data.get("max_x", 0.0)
            y1, y2 = data.get("min_y", 0.0), data.get("max_y", 0.0)
            data["min_x"], data["max_x"] = min(x1, x2), max(x1, x2)
            data["min_y"], data["max_y"] = min(y1, y2), max(y1, y2)
        return data

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "Box":
        """Construct a Box from two opposite corners in any order."""
        return cls(min_x=x1, min_y=y1, max_x=x2, max_y=y2)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def area(self) -> float:
        return self.width * self.height


PointsLike = Union[np.ndarray, Sequence[Point], Sequence[Sequence[float]]]


def as_points_array(points: PointsLike) -> np.ndarray:
    """
    Convert any supported point collection into a float64 array of shape (N, 2).

    Args:
        points: numpy array (N, 2), sequence of Point, or sequence of (x, y).

    Returns:
        New float64 array; the input is never aliased.

    Raises:
        ValueError: If the input cannot be interpreted as 2D points.
    """
    if isinstance(points, np.ndarray):
        arr = np.array(points, dtype=np.float64)
    else:
        seq = list(points)
        if not seq:
            return np.empty((0, 2), dtype=np.float64)
        if isinstance(seq[0], Point):
            arr = np.array([p.to_tuple() for p in seq], dtype=np.float64)
        else:
            arr = np.array(seq, dtype=np.float64)

    if arr.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Expected points with shape (N, 2), got {arr.shape}")
    return arr


def to_point_list(points: PointsLike) -> list[Point]:
    """Convert a point collection into a list of Point objects."""
    return [Point(x=float(x), y=float(y)) for x, y in as_points_array(points)]


def scale_point(p: Point, sx: float, sy: float) -> Point:
    """Scale a point by (sx, sy)."""
    return Point(x=p.x * sx, y=p.y * sy)


def offset_point(p: Point, dx: float, dy: float) -> Point:
    """Translate a point by (dx, dy)."""
    return Point(x=p.x + dx, y=p.y + dy)


def scale_points(points: PointsLike, sx: float, sy: float) -> np.ndarray:
    """Return a scaled copy of points as an (N, 2) array."""
    return as_points_array(points) * np.array([sx, sy], dtype=np.float64)


def offset_points(points: PointsLike, dx: float, dy: float) -> np.ndarray:
    """Return a translated copy of points as an (N, 2) array."""
    return as_points_array(points) + np.array([dx, dy], dtype=np.float64)


def bounding_box(points: PointsLike) -> Box:
    """
    Compute the axis-aligned bounding box of a point set.

    An empty point set yields the zero box.
    """
    arr = as_points_array(points)
    if len(arr) == 0:
        return Box()
    min_x, min_y = arr.min(axis=0)
    max_x, max_y = arr.max(axis=0)
    return Box(
        min_x=float(min_x), min_y=float(min_y), max_x=float(max_x), max_y=float(max_y)
    )
