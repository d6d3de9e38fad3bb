"""
Geometric helpers used by the codecs: polygon area and derived bounding boxes.

All functions work in pixel coordinates and return plain Python floats so the
results serialize directly to JSON.
"""

from typing import Sequence

import numpy as np

from ..models import BoundingBox, Keypoint, Point


def _as_array(points: Sequence[Point]) -> np.ndarray:
    if len(points) == 0:
        raise ValueError("At least one point is required")
    return np.array([[p.x, p.y] for p in points], dtype=np.float64)


def polygon_area(polygon: Sequence[Point]) -> float:
    """
    Area of a simple polygon using the shoelace formula.

    Args:
        polygon: Ordered vertices; the ring is closed implicitly

    Returns:
        Absolute area in square pixels (0 for fewer than 3 vertices)
    """
    coords = _as_array(polygon)
    if len(coords) < 3:
        return 0.0

    x = coords[:, 0]
    y = coords[:, 1]
    # Pair each vertex i with its predecessor j = i - 1
    x_prev = np.roll(x, 1)
    y_prev = np.roll(y, 1)
    return float(abs(np.sum(x_prev * y - x * y_prev)) / 2.0)


def bbox_from_points(points: Sequence[Point]) -> BoundingBox:
    """Tight axis-aligned box around the given points."""
    coords = _as_array(points)
    min_x, min_y = coords.min(axis=0)
    max_x, max_y = coords.max(axis=0)
    return BoundingBox(
        x=float(min_x),
        y=float(min_y),
        width=float(max_x - min_x),
        height=float(max_y - min_y),
    )


def bbox_from_polygon(polygon: Sequence[Point]) -> BoundingBox:
    """Bounding box from the vertex extrema of a polygon."""
    return bbox_from_points(polygon)


def bbox_from_keypoints(keypoints: Sequence[Keypoint]) -> BoundingBox:
    """
    Bounding box over the visible keypoints.

    Falls back to all keypoints when none is flagged visible.
    """
    visible = [kp for kp in keypoints if kp.visible]
    return bbox_from_points(visible if visible else keypoints)
