"""
Snapshots taken when grading completes: the raw frame and the same frame
annotated with the graded bubbles, running totals and the anchors.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import cv2

from livescan.aligner import Alignment
from livescan.geometry import Point, rect_corners
from livescan.layout import Layout
from livescan.stabilizer import QuestionStatus, Stats, Status

# BGR
GREEN = (0, 255, 0)
RED = (0, 0, 255)
ORANGE = (0, 165, 255)
WHITE = (255, 255, 255)
BLACK = (0, 0, 0)

BUBBLE_ALPHA = 0.6
PANEL_ALPHA = 0.7
ANCHOR_RADIUS = 7


@dataclass(frozen=True)
class Snapshots:
    """PNG-encoded audit images"""
    original: bytes
    feedback: bytes

    def save(self, directory: Union[str, Path], stem: str = "scan") -> Tuple[Path, Path]:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        original_path = directory / f"{stem}_original.png"
        feedback_path = directory / f"{stem}_feedback.png"
        original_path.write_bytes(self.original)
        feedback_path.write_bytes(self.feedback)
        return original_path, feedback_path


def to_bgr(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    return img.copy()


def encode_png(img: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", img)
    if not ok:
        raise RuntimeError("Could not encode snapshot as PNG")
    return buffer.tobytes()


def bubble_color(value: str, state: QuestionStatus, correct_answer: Optional[str]):
    if value == correct_answer:
        return GREEN
    if state.stable_reading and value in state.stable_reading:
        if state.status is Status.INCORRECT:
            return RED
        if state.status is Status.NULLIFIED:
            return ORANGE
    return None


def render_feedback(frame: np.ndarray, layout: Layout,
                    statuses: Mapping[str, QuestionStatus],
                    answer_key: Mapping[str, Optional[str]],
                    stats: Stats,
                    anchors: Sequence[Point] = (),
                    alignment: Optional[Alignment] = None) -> np.ndarray:
    """Annotated copy of frame; bubbles are projected from layout space into the frame"""
    img = to_bgr(frame)
    overlay = img.copy()

    for question_id, state in statuses.items():
        if state.pending:
            continue

        block = layout.field_blocks.get(question_id)
        if block is None:
            continue

        for bubble in block.bubbles:
            color = bubble_color(bubble.value, state, answer_key.get(question_id))
            if color is None:
                continue

            corners = rect_corners(bubble.x, bubble.y, bubble.width, bubble.height)
            if alignment is not None:
                polygon = alignment.to_frame(corners)
            else:
                polygon = np.array(corners, dtype=np.float32)
            cv2.fillPoly(overlay, [np.round(polygon).astype(np.int32)], color)

    img = cv2.addWeighted(overlay, BUBBLE_ALPHA, img, 1 - BUBBLE_ALPHA, 0)

    for point in anchors:
        cv2.circle(img, (int(round(point.x)), int(round(point.y))), ANCHOR_RADIUS, RED, -1)

    draw_stats_panel(img, stats)
    return img


def draw_stats_panel(img: np.ndarray, stats: Stats):
    panel = img.copy()
    cv2.rectangle(panel, (10, 10), (210, 110), BLACK, -1)
    cv2.addWeighted(panel, PANEL_ALPHA, img, 1 - PANEL_ALPHA, 0, dst=img)

    lines = [
        f"Correct: {stats.correct}",
        f"Incorrect: {stats.incorrect}",
        f"Nullified: {stats.nullified}",
    ]
    for i, text in enumerate(lines):
        cv2.putText(img, text, (20, 35 + i * 20), cv2.FONT_HERSHEY_SIMPLEX, 0.5, WHITE, 1, cv2.LINE_AA)


def take_snapshots(frame: np.ndarray, layout: Layout,
                   statuses: Mapping[str, QuestionStatus],
                   answer_key: Mapping[str, Optional[str]],
                   stats: Stats,
                   anchors: Sequence[Point] = (),
                   alignment: Optional[Alignment] = None) -> Snapshots:
    feedback = render_feedback(frame, layout, statuses, answer_key, stats, anchors, alignment)
    return Snapshots(original=encode_png(to_bgr(frame)), feedback=encode_png(feedback))
