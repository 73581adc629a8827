"""
Tests for layout and answer key loading
"""

import json
import logging
import pytest

from conftest import layout_dict

from livescan.errors import LayoutError
from livescan.geometry import Point
from livescan.layout import (
    Layout,
    load_layout,
    load_answer_key,
    normalize_answer_key,
    gradable_questions,
)


class TestLayoutParsing:
    """Layout descriptor to Layout"""

    def test_content_area_between_anchors(self, layout):
        assert layout.content_offset == Point(40, 40)
        assert layout.content_width == 320
        assert layout.content_height == 260
        assert layout.question_ids == ["Q1", "Q2", "Q3"]

    def test_anchors_are_ordered(self):
        data = layout_dict()
        data["anchors"] = list(reversed(data["anchors"]))
        layout = Layout.from_dict(data)
        assert layout.anchors == (Point(40, 40), Point(360, 40), Point(360, 300), Point(40, 300))

    def test_bubbles_in_print_order(self, layout):
        block = layout.field_blocks["Q2"]
        assert block.values == ["A", "B", "C", "D"]
        assert block.bubbles[1].x == 150
        assert block.bubbles[1].y == 150
        assert block.bubbles[1].width == 12

    def test_values_normalized_like_answers(self):
        data = layout_dict()
        for bubble in data["fieldBlocks"]["Q1"]["bubbleCoordinates"]:
            bubble["value"] = f" {bubble['value'].lower()} "

        block = Layout.from_dict(data).field_blocks["Q1"]
        assert block.values == ["A", "B", "C", "D"]
        assert block.values[0] == normalize_answer_key({"Q1": "a"})["Q1"]

    def test_short_size_keys(self):
        data = layout_dict()
        data["fieldBlocks"] = {"Q1": {"bubbleCoordinates": [{"x": 1, "y": 2, "w": 3, "h": 4, "value": "A"}]}}
        bubble = Layout.from_dict(data).field_blocks["Q1"].bubbles[0]
        assert (bubble.width, bubble.height) == (3, 4)

    @pytest.mark.parametrize("anchors", [
        [],
        [{"x": 0, "y": 0}, {"x": 10, "y": 0}, {"x": 10, "y": 10}],
        [{"x": 0, "y": 0}] * 5,
    ])
    def test_wrong_anchor_count(self, anchors):
        data = layout_dict()
        data["anchors"] = anchors
        with pytest.raises(LayoutError):
            Layout.from_dict(data)

    def test_invalid_anchor_coordinates(self):
        data = layout_dict()
        data["anchors"][0] = {"x": "left"}
        with pytest.raises(LayoutError):
            Layout.from_dict(data)

    def test_collapsed_anchors(self):
        data = layout_dict()
        data["anchors"] = [{"x": 5, "y": 5}] * 4
        with pytest.raises(LayoutError):
            Layout.from_dict(data)

    def test_not_an_object(self):
        with pytest.raises(LayoutError):
            Layout.from_dict([1, 2, 3])

    def test_malformed_block_reads_as_blank(self, caplog):
        data = layout_dict()
        data["fieldBlocks"]["Q2"] = {"bubbleCoordinates": [{"x": 1, "value": "A"}]}
        data["fieldBlocks"]["Q3"] = {}

        with caplog.at_level(logging.WARNING):
            layout = Layout.from_dict(data)

        assert layout.field_blocks["Q2"].bubbles == ()
        assert layout.field_blocks["Q3"].bubbles == ()
        assert len(layout.field_blocks["Q1"].bubbles) == 4
        assert "Q2" in caplog.text

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "layout.json"
        path.write_text(json.dumps(layout_dict()))
        assert load_layout(path).content_width == 320


class TestAnswerKey:
    """Answer key normalization and the set of graded questions"""

    def test_normalize(self):
        key = normalize_answer_key({"Q1": " a ", "Q2": "", "Q3": None, 4: "c"})
        assert key == {"Q1": "A", "Q2": None, "Q3": None, "4": "C"}

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "answers.json"
        path.write_text(json.dumps({"Q1": "b"}))
        assert load_answer_key(path) == {"Q1": "B"}

    def test_load_rejects_lists(self, tmp_path):
        path = tmp_path / "answers.json"
        path.write_text(json.dumps(["A", "B"]))
        with pytest.raises(LayoutError):
            load_answer_key(path)

    def test_gradable_questions(self, layout):
        key = normalize_answer_key({"Q3": "C", "Q1": "A", "Q2": None, "Q9": "D"})
        assert gradable_questions(layout, key) == ("Q1", "Q3")

    def test_missing_questions_are_logged(self, layout, caplog):
        with caplog.at_level(logging.WARNING):
            gradable_questions(layout, {"Q1": "A", "Q9": "D"})
        assert "Q9" in caplog.text
