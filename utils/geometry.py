"""
Geometry Utility
Point, segment and line helpers for image-space marker and path analysis.
"""

import numpy as np
from typing import Sequence, Tuple

Point = Tuple[float, float]


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two 2D points."""
    return float(np.hypot(b[0] - a[0], b[1] - a[1]))


def path_length(points: Sequence[Sequence[float]]) -> float:
    """Sum of distances between consecutive points."""
    if len(points) < 2:
        return 0.0
    pts = np.asarray(points, dtype=float)
    steps = np.diff(pts, axis=0)
    return float(np.sum(np.hypot(steps[:, 0], steps[:, 1])))


def perpendicular_distance(
    point: Sequence[float],
    line_start: Sequence[float],
    line_end: Sequence[float]
) -> float:
    """
    Distance from `point` to the infinite line through line_start/line_end.

    Falls back to the point-to-point distance when the line is degenerate.
    """
    p = np.asarray(point, dtype=float)
    a = np.asarray(line_start, dtype=float)
    b = np.asarray(line_end, dtype=float)

    direction = b - a
    length = np.hypot(direction[0], direction[1])
    if length < 1e-9:
        return distance(p, a)

    # |cross(direction, p - a)| / |direction|
    offset = p - a
    cross = direction[0] * offset[1] - direction[1] * offset[0]
    return float(abs(cross) / length)


def polygon_area(points: Sequence[Sequence[float]]) -> float:
    """Unsigned shoelace area of a polygon given in order."""
    if len(points) < 3:
        return 0.0
    pts = np.asarray(points, dtype=float)
    x, y = pts[:, 0], pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def edge_ratio(a: float, b: float) -> float:
    """Ratio shorter/longer of two lengths in [0, 1] (1 = equal)."""
    longer = max(a, b)
    if longer <= 0:
        return 0.0
    return min(a, b) / longer
