"""
Printed answer-sheet layout and answer key.

The layout comes from whatever rendered the sheet. It is read-only here:
canonical anchor centers plus, per question, the rectangle and option value
of every bubble, all in the same page units.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import json
import logging

from livescan.errors import LayoutError
from livescan.geometry import Point, order_points

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BubbleCoordinate:
    """One answer bubble, in layout units"""
    x: float
    y: float
    width: float
    height: float
    value: str


@dataclass(frozen=True)
class FieldBlock:
    """Bubbles belonging to one question, in print order"""
    question_id: str
    bubbles: Tuple[BubbleCoordinate, ...] = ()

    @property
    def values(self) -> List[str]:
        return [b.value for b in self.bubbles]


@dataclass(frozen=True)
class Layout:
    """Sheet geometry shared by the aligner, the reader and the overlay"""
    anchors: Tuple[Point, Point, Point, Point]  # top-left, top-right, bottom-right, bottom-left
    field_blocks: Dict[str, FieldBlock]
    page_dimensions: Dict[str, Any] = field(default_factory=dict)
    bubble_dimensions: Dict[str, Any] = field(default_factory=dict)

    @property
    def content_offset(self) -> Point:
        return self.anchors[0]

    @property
    def content_width(self) -> float:
        tl, tr, _, _ = self.anchors
        return tr.x - tl.x

    @property
    def content_height(self) -> float:
        tl, _, _, bl = self.anchors
        return bl.y - tl.y

    @property
    def question_ids(self) -> List[str]:
        return list(self.field_blocks)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Layout":
        """Build a layout from the JSON descriptor"""
        if not isinstance(data, Mapping):
            raise LayoutError(f"Layout must be a JSON object, got {type(data).__name__}")

        anchors = parse_anchors(data.get("anchors"))

        raw_blocks = data.get("fieldBlocks") or {}
        if not isinstance(raw_blocks, Mapping):
            raise LayoutError("fieldBlocks must be an object keyed by question id")

        field_blocks = {}
        for question_id, block in raw_blocks.items():
            question_id = str(question_id)
            field_blocks[question_id] = FieldBlock(question_id, parse_bubbles(question_id, block))

        layout = cls(
            anchors=anchors,
            field_blocks=field_blocks,
            page_dimensions=dict(data.get("pageDimensions") or {}),
            bubble_dimensions=dict(data.get("bubbleDimensions") or {}),
        )

        if layout.content_width <= 0 or layout.content_height <= 0:
            raise LayoutError(
                f"Anchors span an empty content area "
                f"({layout.content_width}x{layout.content_height})"
            )
        return layout


def parse_anchors(raw: Any) -> Tuple[Point, Point, Point, Point]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        count = len(raw) if isinstance(raw, (list, tuple)) else 0
        raise LayoutError(f"Layout needs exactly 4 anchors, got {count}")

    try:
        points = [Point(float(a["x"]), float(a["y"])) for a in raw]
    except (KeyError, TypeError, ValueError) as e:
        raise LayoutError(f"Invalid anchor coordinates: {e}") from e

    try:
        return tuple(order_points(points))
    except ValueError as e:
        raise LayoutError(str(e)) from e


def parse_bubbles(question_id: str, block: Any) -> Tuple[BubbleCoordinate, ...]:
    """
    Parse one question's bubbles.

    A malformed block does not invalidate the layout: the question keeps an
    empty bubble list, reads as unanswered and grading goes on for the rest.
    """
    coords = block.get("bubbleCoordinates") if isinstance(block, Mapping) else None
    if not isinstance(coords, (list, tuple)):
        logger.warning(f"Question {question_id}: missing bubbleCoordinates, reading it as blank")
        return ()

    bubbles = []
    for raw in coords:
        try:
            bubble = BubbleCoordinate(
                x=float(raw["x"]),
                y=float(raw["y"]),
                width=float(raw["width"] if "width" in raw else raw["w"]),
                height=float(raw["height"] if "height" in raw else raw["h"]),
                value=normalize_value(raw["value"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Question {question_id}: invalid bubble {raw!r} ({e}), reading it as blank")
            return ()

        if bubble.width <= 0 or bubble.height <= 0:
            logger.warning(f"Question {question_id}: bubble {bubble.value} has no area, reading it as blank")
            return ()
        bubbles.append(bubble)

    return tuple(bubbles)


def load_layout(path: Union[str, Path]) -> Layout:
    with open(path, 'r') as f:
        return Layout.from_dict(json.load(f))


def normalize_value(value: Any) -> str:
    """Option letters compare case-insensitively: bubble values and answers share this form"""
    return "" if value is None else str(value).strip().upper()


def normalize_answer_key(raw: Mapping[str, Any]) -> Dict[str, Optional[str]]:
    """Normalize answers like bubble values; blank or null marks a non-gradable item"""
    key = {}
    for question_id, answer in raw.items():
        key[str(question_id)] = normalize_value(answer) or None
    return key


def load_answer_key(path: Union[str, Path]) -> Dict[str, Optional[str]]:
    with open(path, 'r') as f:
        data = json.load(f)
    if not isinstance(data, Mapping):
        raise LayoutError("Answer key must be a JSON object mapping question id to answer")
    return normalize_answer_key(data)


def gradable_questions(layout: Layout, answer_key: Mapping[str, Optional[str]]) -> Tuple[str, ...]:
    """
    Question ids that are both printed on the sheet and have an answer.

    Ordered as the layout prints them. Computed once per session.
    """
    missing = [q for q, a in answer_key.items() if a and q not in layout.field_blocks]
    if missing:
        logger.warning(f"Answer key questions not on the sheet layout: {', '.join(missing)}")

    return tuple(q for q in layout.field_blocks if answer_key.get(q))
