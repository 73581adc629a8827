"""
Tests for the perspective alignment
"""

import numpy as np
import cv2
import pytest

from conftest import render_sheet, place_sheet, project, ANCHOR_CENTERS, SKEWED, STRAIGHT

from livescan.aligner import PerspectiveAligner, solve_homography
from livescan.config import ScannerConfig
from livescan.geometry import Point


def points(coords):
    return [Point(float(x), float(y)) for x, y in coords]


class TestHomography:
    """Four-point solve"""

    def test_matches_known_warp(self):
        src = points([(10, 20), (300, 40), (320, 260), (5, 240)])
        dst = points([(0, 0), (200, 0), (200, 150), (0, 150)])

        transform = solve_homography(src, dst)

        assert transform is not None
        expected = cv2.getPerspectiveTransform(
            np.array(src, dtype=np.float32), np.array(dst, dtype=np.float32))
        np.testing.assert_allclose(transform, expected, atol=1e-6)

        mapped = cv2.perspectiveTransform(np.array(src, dtype=np.float32).reshape(-1, 1, 2), transform)
        np.testing.assert_allclose(mapped.reshape(-1, 2), np.array(dst), atol=1e-3)

    def test_projective_not_affine(self):
        src = points(SKEWED)
        dst = points([(0, 0), (400, 0), (400, 340), (0, 340)])
        transform = solve_homography(src, dst)
        assert transform is not None
        assert abs(transform[2, 0]) > 1e-6 or abs(transform[2, 1]) > 1e-6

    @pytest.mark.parametrize("src", [
        [(0, 0), (100, 0), (200, 0), (300, 0)],       # collinear
        [(0, 0), (100, 100), (100, 0), (0, 100)],     # self-intersecting
        [(0, 0), (5, 0), (5, 5), (0, 5)],             # too small
        [(10, 10), (10, 10), (10, 10), (10, 10)],     # collapsed
    ])
    def test_degenerate(self, src):
        dst = points([(0, 0), (100, 0), (100, 100), (0, 100)])
        assert solve_homography(points(src), dst) is None


class TestPerspectiveAligner:
    """Detected anchors onto the layout's content rectangle"""

    def test_aligned_size(self, layout):
        alignment = PerspectiveAligner().align(points(STRAIGHT), layout)
        assert alignment.size == (320, 260)
        assert alignment.content_offset == Point(40, 40)

    def test_scale(self, layout):
        aligner = PerspectiveAligner(ScannerConfig(alignment_scale=2.0))
        alignment = aligner.align(points(STRAIGHT), layout)
        assert alignment.size == (640, 520)
        assert alignment.scale == 2.0

    def test_degenerate_anchors(self, layout):
        assert PerspectiveAligner().align(points([(0, 0)] * 4), layout) is None

    def test_warp_undoes_skew(self, layout):
        """A filled bubble lands where the layout puts it"""
        frame = place_sheet(render_sheet({"Q1": "A"}), SKEWED)
        detected = points(project(SKEWED, ANCHOR_CENTERS))

        alignment = PerspectiveAligner().align(detected, layout)
        aligned = cv2.cvtColor(alignment.warp(frame), cv2.COLOR_BGR2GRAY)

        # Q1 option A at (120, 100) in layout units, 12x12
        x, y = 120 - 40, 100 - 40
        assert aligned[y + 2:y + 10, x + 2:x + 10].mean() < 60
        # Q1 option B is blank
        x = 150 - 40
        assert aligned[y + 2:y + 10, x + 2:x + 10].mean() > 200

    def test_to_frame_inverts_warp(self, layout):
        detected = points(project(SKEWED, ANCHOR_CENTERS))
        alignment = PerspectiveAligner().align(detected, layout)

        layout_points = [(40, 40), (360, 300), (126, 106)]
        in_frame = alignment.to_frame(layout_points)
        expected = project(SKEWED, layout_points)

        np.testing.assert_allclose(in_frame, expected, atol=0.5)
