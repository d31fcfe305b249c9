"""Turn OCR-service detections into receipt text lines.

The OCR service returns PaddleOCR-style detections::

    {"image_width": 1100, "image_height": 2100,
     "detections": [[[[x1, y1], [x2, y2], [x3, y3], [x4, y4]], ["COKE", 0.98]], ...]}

Detections whose vertical extents overlap enough are treated as one printed row and
joined left to right.
"""

from dataclasses import dataclass
from typing import Any

MIN_CONFIDENCE = 0.6
ROW_OVERLAP_RATIO = 0.5


@dataclass
class Detection:
    text: str
    confidence: float
    min_x: float
    y_min: float
    y_max: float

    @property
    def center_y(self) -> float:
        return (self.y_min + self.y_max) / 2

    @property
    def height(self) -> float:
        return self.y_max - self.y_min


def parse_detections(raw_result: dict[str, Any], min_confidence: float = MIN_CONFIDENCE) -> list[Detection]:
    """Read and filter detections; malformed entries and blank text are skipped."""
    detections: list[Detection] = []
    for entry in raw_result.get("detections") or []:
        try:
            bbox, (text, confidence) = entry
            xs = [float(point[0]) for point in bbox]
            ys = [float(point[1]) for point in bbox]
            score = float(confidence)
        except (TypeError, ValueError):
            continue
        text = str(text).strip()
        if not text or not xs or score < min_confidence:
            continue
        detections.append(Detection(text, score, min(xs), min(ys), max(ys)))
    return detections


def _overlap_ratio(det: Detection, row: list[Detection]) -> float:
    row_min = min(d.y_min for d in row)
    row_max = max(d.y_max for d in row)
    overlap = min(det.y_max, row_max) - max(det.y_min, row_min)
    if overlap <= 0:
        return 0.0
    return overlap / max(min(det.height, row_max - row_min), 1e-6)


def group_rows(detections: list[Detection]) -> list[list[Detection]]:
    """Group detections into printed rows, top to bottom, each sorted left to right."""
    rows: list[list[Detection]] = []
    for det in sorted(detections, key=lambda d: (d.center_y, d.min_x)):
        best: list[Detection] | None = None
        best_ratio = ROW_OVERLAP_RATIO
        # Only recent rows can overlap a detection sorted by center
        for row in rows[-3:]:
            ratio = _overlap_ratio(det, row)
            if ratio >= best_ratio:
                best, best_ratio = row, ratio
        if best is None:
            rows.append([det])
        else:
            best.append(det)

    for row in rows:
        row.sort(key=lambda d: d.min_x)
    rows.sort(key=lambda row: sum(d.center_y for d in row) / len(row))
    return rows


def detections_to_lines(raw_result: dict[str, Any]) -> list[str]:
    """Convert an OCR-service response into text lines."""
    return [" ".join(d.text for d in row) for row in group_rows(parse_detections(raw_result))]


def detections_to_text(raw_result: dict[str, Any]) -> str:
    """Convert an OCR-service response into newline-separated text.

    A plain ``text`` field in the response is used when there are no detections.
    """
    lines = detections_to_lines(raw_result)
    if not lines and isinstance(raw_result.get("text"), str):
        return raw_result["text"]
    return "\n".join(lines)
