"""Pixel coordinates and corner ordering."""

from typing import List, NamedTuple, Sequence, Tuple

import numpy as np


class Point(NamedTuple):
    """Pixel coordinate"""
    x: float
    y: float


def order_points(points: Sequence[Point]) -> List[Point]:
    """
    Order four points as top-left, top-right, bottom-right, bottom-left.

    Image y grows downwards. Top-left has the smallest x+y and bottom-right
    the largest; top-right has the largest x-y and bottom-left the smallest.
    Raises ValueError when the heuristic assigns one point to two corners.
    """
    if len(points) != 4:
        raise ValueError(f"Expected 4 points, got {len(points)}")

    pts = np.array([(p.x, p.y) for p in points], dtype=np.float64)
    s = pts.sum(axis=1)
    diff = pts[:, 0] - pts[:, 1]

    indices = [
        int(np.argmin(s)),     # top-left
        int(np.argmax(diff)),  # top-right
        int(np.argmax(s)),     # bottom-right
        int(np.argmin(diff)),  # bottom-left
    ]
    if len(set(indices)) != 4:
        raise ValueError(f"Points cannot be ordered into distinct corners: {list(points)}")

    return [Point(*points[i]) for i in indices]


def as_array(points: Sequence[Point]) -> np.ndarray:
    """Points as a float32 (N, 2) array for OpenCV"""
    return np.array([(p.x, p.y) for p in points], dtype=np.float32)


def rect_corners(x: float, y: float, w: float, h: float) -> List[Tuple[float, float]]:
    return [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]
