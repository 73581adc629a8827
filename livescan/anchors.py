"""
Fiducial anchor detection.

The sheet carries four printed dark discs on white paper, one per corner of
the answer area. Each frame is blurred, binarized with a local-mean threshold
and closed; circular blobs become candidates, and the largest group of four
candidates with similar area whose centers are dark and whose surroundings
are light is taken as the anchor set.
"""

from dataclasses import dataclass
from typing import List, Optional
import math
import logging

import numpy as np
import cv2

from livescan.config import ScannerConfig, DEFAULT_CONFIG
from livescan.geometry import Point, order_points
from livescan.preprocess import to_gray, gaussian_blur, binarize, close

logger = logging.getLogger(__name__)


@dataclass
class Anchor:
    """Candidate marker found during one detection pass"""
    center: Point
    area: float
    circularity: float = 0.0


class AnchorDetector:
    """Locate the four corner markers in a camera frame"""

    def __init__(self, config: ScannerConfig = DEFAULT_CONFIG):
        self.config = config

    def find_anchors(self, frame: np.ndarray) -> Optional[List[Point]]:
        """
        Anchor centers ordered top-left, top-right, bottom-right, bottom-left,
        or None when no valid group of four is visible.
        """
        gray = to_gray(frame)
        candidates = self.find_candidates(gray)

        if len(candidates) < 4:
            logger.debug(f"Only {len(candidates)} circular candidates, need 4")
            return None

        centers = self.select_anchors(candidates, gray)
        if centers is None:
            return None

        try:
            return order_points(centers)
        except ValueError as e:
            logger.debug(f"Anchor group rejected: {e}")
            return None

    def find_candidates(self, gray: np.ndarray) -> List[Anchor]:
        """Circular foreground blobs in the binarized frame"""
        cfg = self.config
        mask = close(binarize(gaussian_blur(gray), cfg.block_size, cfg.threshold_offset))

        # Two-level hierarchy: every blob's outer boundary is top level, even
        # inside a hole of another blob (a sheet lying on a darker desk)
        contours, hierarchy = cv2.findContours(mask, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_NONE)
        if hierarchy is None:
            return []

        low, high = cfg.circularity_range
        candidates = []
        for contour, (_, _, _, parent) in zip(contours, hierarchy[0]):
            if parent != -1:
                continue
            if len(contour) < cfg.min_contour_points:
                continue

            blob, (x, y) = self.fill_contour(contour)
            moments = cv2.moments(blob, binaryImage=True)
            area = moments['m00']
            if area < cfg.min_anchor_area:
                continue

            # Area and length of the closed boundary polygon through consecutive
            # contour points; a square scores pi/4 on the same scale
            perimeter = cv2.arcLength(contour, True)
            if perimeter == 0:
                continue

            circularity = 4 * math.pi * cv2.contourArea(contour) / (perimeter * perimeter)
            if low <= circularity <= high:
                center = Point(x + moments['m10'] / area, y + moments['m01'] / area)
                candidates.append(Anchor(center=center, area=area, circularity=circularity))

        logger.debug(f"{len(contours)} contours, {len(candidates)} circular candidates")
        return candidates

    @staticmethod
    def fill_contour(contour: np.ndarray):
        """Filled blob enclosed by contour, cropped to its bounding box"""
        x, y, w, h = cv2.boundingRect(contour)
        blob = np.zeros((h, w), dtype=np.uint8)
        cv2.drawContours(blob, [contour], -1, 255, thickness=cv2.FILLED, offset=(-x, -y))
        return blob, (x, y)

    def select_anchors(self, candidates: List[Anchor], gray: np.ndarray) -> Optional[List[Point]]:
        """
        First group of 4 similar-sized candidates that pass the physical check.

        Groups are tried largest first by default: filled round bubbles are
        dark discs on white paper too, and four of them would otherwise win
        over the anchors.
        """
        cfg = self.config
        ordered = sorted(candidates, key=lambda a: a.area, reverse=cfg.largest_anchors_first)

        for i in range(len(ordered) - 3):
            group = ordered[i:i + 4]
            max_area = group[0].area
            min_area = group[-1].area

            if max_area >= cfg.max_area_ratio * min_area:
                continue

            probe = math.sqrt(min_area / math.pi) * cfg.ring_probe_factor
            if all(self.is_marker(a.center, probe, gray) for a in group):
                return [a.center for a in group]

            logger.debug(f"Group of areas {[round(a.area) for a in group]} failed the marker check")

        return None

    def is_marker(self, center: Point, probe: float, gray: np.ndarray) -> bool:
        """Dark at the center, light at the diagonal offset (probe, probe)"""
        height, width = gray.shape[:2]
        cx, cy = int(round(center.x)), int(round(center.y))
        r = int(round(probe))

        if not (0 <= cx < width and 0 <= cy < height):
            return False
        if cx + r >= width or cy + r >= height:
            return False

        center_value = gray[cy, cx]
        ring_value = gray[cy + r, cx + r]
        return center_value < self.config.dark_center_max and ring_value > self.config.light_ring_min
