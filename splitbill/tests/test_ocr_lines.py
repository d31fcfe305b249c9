from __future__ import annotations

from typing import Any

from splitbill.receipt.ocr_lines import detections_to_lines, detections_to_text, group_rows, parse_detections


def _det(text: str, x: float, y: float, confidence: float = 0.95, height: float = 20) -> list[Any]:
    box = [[x, y], [x + 80, y], [x + 80, y + height], [x, y + height]]
    return [box, [text, confidence]]


def test_detections_grouped_into_rows_left_to_right() -> None:
    raw = {
        "detections": [
            _det("10.00", 300, 141),
            _det("COKE", 10, 100),
            _det("TEA", 10, 140),
            _det("59.70", 300, 102),
        ]
    }
    assert detections_to_lines(raw) == ["COKE 59.70", "TEA 10.00"]
    assert detections_to_text(raw) == "COKE 59.70\nTEA 10.00"


def test_low_confidence_and_malformed_detections_are_dropped() -> None:
    raw = {
        "detections": [
            _det("COKE", 10, 100),
            _det("smudge", 200, 100, confidence=0.3),
            _det("   ", 250, 100),
            ["bad"],
            [None, ["X", 0.9]],
            [[[0, 0]], ["Y", "high"]],
        ]
    }
    assert [d.text for d in parse_detections(raw)] == ["COKE"]
    assert [d.text for d in parse_detections(raw, min_confidence=0.2)] == ["COKE", "smudge"]


def test_rows_need_enough_vertical_overlap() -> None:
    detections = parse_detections({"detections": [_det("A", 10, 100), _det("B", 100, 115)]})
    rows = group_rows(detections)
    assert [[d.text for d in row] for row in rows] == [["A"], ["B"]]


def test_plain_text_field_used_without_detections() -> None:
    assert detections_to_text({"detections": [], "text": "Tea 10.00"}) == "Tea 10.00"
    assert detections_to_text({}) == ""
