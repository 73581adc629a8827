"""
Perspective alignment of a camera frame onto the sheet's layout space.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np
import cv2

from livescan.config import ScannerConfig, DEFAULT_CONFIG
from livescan.geometry import Point, as_array
from livescan.layout import Layout

logger = logging.getLogger(__name__)

# Smallest quadrilateral, in square pixels, accepted as a sheet
MIN_QUAD_AREA = 100.0


@dataclass
class Alignment:
    """Homography from frame pixels to the content rectangle between the anchors"""
    transform: np.ndarray
    content_offset: Point
    size: Tuple[int, int]  # aligned (width, height)
    scale: float
    detected: List[Point]

    def warp(self, frame: np.ndarray) -> np.ndarray:
        """Frame resampled into aligned space"""
        border = (255,) * (1 if frame.ndim == 2 else frame.shape[2])
        return cv2.warpPerspective(
            frame, self.transform, self.size,
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=border,
        )

    def to_frame(self, points: Sequence[Tuple[float, float]]) -> np.ndarray:
        """Map layout coordinates back into frame pixels, (N, 2) float32"""
        pts = np.array(points, dtype=np.float32).reshape(-1, 2)
        aligned = (pts - np.array(self.content_offset, dtype=np.float32)) * self.scale
        inverse = np.linalg.inv(self.transform)
        projected = cv2.perspectiveTransform(aligned.reshape(-1, 1, 2), inverse)
        return projected.reshape(-1, 2)


def solve_homography(src: Sequence[Point], dst: Sequence[Point]) -> Optional[np.ndarray]:
    """
    3x3 homography taking four src points onto four dst points.

    Solves the 8-unknown linear system of the direct linear transform.
    Returns None for degenerate input (collinear, self-intersecting or
    vanishing quadrilaterals).
    """
    src_pts = as_array(src)
    dst_pts = as_array(dst)

    for quad in (src_pts, dst_pts):
        if abs(cv2.contourArea(quad)) < MIN_QUAD_AREA or not cv2.isContourConvex(quad):
            return None

    transform = cv2.getPerspectiveTransform(src_pts, dst_pts)
    if not np.all(np.isfinite(transform)) or abs(np.linalg.det(transform)) < 1e-12:
        return None
    return transform


class PerspectiveAligner:
    """Solve the frame-to-layout homography from the detected anchors"""

    def __init__(self, config: ScannerConfig = DEFAULT_CONFIG):
        self.config = config

    def align(self, detected: Sequence[Point], layout: Layout) -> Optional[Alignment]:
        """
        Detected anchors (top-left, top-right, bottom-right, bottom-left) are
        mapped onto the corners of the content rectangle, whose origin is the
        layout's top-left anchor.
        """
        scale = self.config.alignment_scale
        width = layout.content_width * scale
        height = layout.content_height * scale

        destination = [
            Point(0, 0),
            Point(width, 0),
            Point(width, height),
            Point(0, height),
        ]

        transform = solve_homography(detected, destination)
        if transform is None:
            logger.debug(f"Degenerate anchor quadrilateral {list(detected)}")
            return None

        return Alignment(
            transform=transform,
            content_offset=layout.content_offset,
            size=(max(1, int(round(width))), max(1, int(round(height)))),
            scale=scale,
            detected=list(detected),
        )
