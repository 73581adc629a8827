"""
Bubble fill measurement on an aligned frame.
"""

from typing import Dict, Iterable, Optional
import logging

import numpy as np

from livescan.config import ScannerConfig, DEFAULT_CONFIG
from livescan.geometry import Point
from livescan.layout import Layout, BubbleCoordinate
from livescan.preprocess import to_gray, binarize

logger = logging.getLogger(__name__)

# question id -> option value -> fraction of dark pixels
FillingData = Dict[str, Dict[str, float]]


class BubbleReader:
    """Fill ratio of every bubble in the layout. Holds no per-frame state."""

    def __init__(self, config: ScannerConfig = DEFAULT_CONFIG):
        self.config = config

    def read(self, aligned: np.ndarray, layout: Layout, content_offset: Point,
             scale: Optional[float] = None,
             questions: Optional[Iterable[str]] = None) -> FillingData:
        """
        Binarize the aligned frame and measure each bubble rectangle.

        Bubble rectangles are translated by -content_offset (and multiplied by
        the alignment scale) into aligned pixels.
        """
        if scale is None:
            scale = self.config.alignment_scale

        binary = binarize(to_gray(aligned), self.config.block_size, self.config.threshold_offset)

        question_ids = layout.question_ids if questions is None else list(questions)
        filling: FillingData = {}

        for question_id in question_ids:
            block = layout.field_blocks.get(question_id)
            filling[question_id] = {}
            if block is None:
                continue

            for bubble in block.bubbles:
                filling[question_id][bubble.value] = self.fill_ratio(binary, bubble, content_offset, scale)

        logger.debug(f"Fill ratios: {filling}")
        return filling

    @staticmethod
    def fill_ratio(binary: np.ndarray, bubble: BubbleCoordinate,
                   content_offset: Point, scale: float = 1.0) -> float:
        """Fraction of foreground pixels inside the bubble, 0.0 when it falls outside the frame"""
        height, width = binary.shape[:2]

        x = int(round((bubble.x - content_offset.x) * scale))
        y = int(round((bubble.y - content_offset.y) * scale))
        w = int(round(bubble.width * scale))
        h = int(round(bubble.height * scale))

        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(width, x + w), min(height, y + h)
        if x1 <= x0 or y1 <= y0:
            return 0.0

        roi = binary[y0:y1, x0:x1]
        return float(np.count_nonzero(roi > 128)) / roi.size
