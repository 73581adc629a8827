"""
Synthetic answer sheets shared by the tests.

The sheet is 400x340 pixels with anchor discs centred at (40, 40),
(360, 40), (360, 300) and (40, 300); layout units are sheet pixels.
Three questions of four 12x12 bubbles each.
"""

import sys
from pathlib import Path
from typing import Dict, Sequence, Tuple

import numpy as np
import cv2
import pytest

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

from livescan.layout import Layout

SHEET_SIZE = (400, 340)  # width, height
ANCHOR_CENTERS = [(40, 40), (360, 40), (360, 300), (40, 300)]
ANCHOR_RADIUS = 10

OPTION_X = {"A": 120, "B": 150, "C": 180, "D": 210}
QUESTION_Y = {"Q1": 100, "Q2": 150, "Q3": 200}
BUBBLE_SIZE = 12

# Where the sheet corners land in a 640x480 camera frame
STRAIGHT = [(120, 70), (520, 70), (520, 410), (120, 410)]
SKEWED = [(150, 60), (540, 95), (515, 430), (110, 400)]
FRAME_SIZE = (640, 480)


def layout_dict() -> Dict:
    return {
        "pageDimensions": {"width": SHEET_SIZE[0], "height": SHEET_SIZE[1]},
        "bubbleDimensions": {"width": BUBBLE_SIZE, "height": BUBBLE_SIZE},
        "anchors": [{"x": x, "y": y} for x, y in ANCHOR_CENTERS],
        "fieldBlocks": {
            question_id: {
                "bubbleCoordinates": [
                    {"x": x, "y": y, "width": BUBBLE_SIZE, "height": BUBBLE_SIZE, "value": value}
                    for value, x in OPTION_X.items()
                ]
            }
            for question_id, y in QUESTION_Y.items()
        },
    }


def render_sheet(answers: Dict[str, str], outlines: bool = False) -> np.ndarray:
    """Grayscale sheet with the given options filled in solid black"""
    sheet = np.full((SHEET_SIZE[1], SHEET_SIZE[0]), 255, dtype=np.uint8)

    for x, y in ANCHOR_CENTERS:
        cv2.circle(sheet, (x, y), ANCHOR_RADIUS, 0, -1)

    for question_id, y in QUESTION_Y.items():
        marked = answers.get(question_id, "")
        for value, x in OPTION_X.items():
            corner = (x + BUBBLE_SIZE - 1, y + BUBBLE_SIZE - 1)
            if value in marked:
                cv2.rectangle(sheet, (x, y), corner, 0, -1)
            elif outlines:
                cv2.rectangle(sheet, (x, y), corner, 0, 1)

    return sheet


def place_sheet(sheet: np.ndarray, corners: Sequence[Tuple[float, float]] = STRAIGHT,
                background: int = 255) -> np.ndarray:
    """BGR camera frame showing the sheet with its corners at the given pixels"""
    h, w = sheet.shape[:2]
    src = np.array([(0, 0), (w, 0), (w, h), (0, h)], dtype=np.float32)
    dst = np.array(corners, dtype=np.float32)
    matrix = cv2.getPerspectiveTransform(src, dst)
    frame = cv2.warpPerspective(sheet, matrix, FRAME_SIZE, flags=cv2.INTER_LINEAR,
                                borderMode=cv2.BORDER_CONSTANT, borderValue=background)
    return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)


def project(corners: Sequence[Tuple[float, float]], points: Sequence[Tuple[float, float]]) -> np.ndarray:
    """Where sheet points land in the frame for a given placement"""
    w, h = SHEET_SIZE
    src = np.array([(0, 0), (w, 0), (w, h), (0, h)], dtype=np.float32)
    matrix = cv2.getPerspectiveTransform(src, np.array(corners, dtype=np.float32))
    pts = np.array(points, dtype=np.float32).reshape(-1, 1, 2)
    return cv2.perspectiveTransform(pts, matrix).reshape(-1, 2)


class FakeSource:
    """Frame source replaying a fixed list, the way CameraSource plays a video file"""

    def __init__(self, frames):
        self.frames = list(frames)
        self.reads = 0
        self.opened = 0
        self.released = 0
        self.is_open = False

    def open(self):
        self.opened += 1
        self.is_open = True

    def read(self):
        if self.reads >= len(self.frames):
            return None
        frame = self.frames[self.reads]
        self.reads += 1
        if isinstance(frame, Exception):
            raise frame
        return frame

    def release(self):
        if self.is_open:
            self.released += 1
        self.is_open = False


@pytest.fixture
def layout() -> Layout:
    return Layout.from_dict(layout_dict())


@pytest.fixture
def answer_key() -> Dict[str, str]:
    return {"Q1": "A", "Q2": "B", "Q3": "C"}
