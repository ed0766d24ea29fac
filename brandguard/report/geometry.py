from __future__ import annotations

from dataclasses import dataclass

from brandguard.types import Coordinates


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in layout space (points, top-left origin)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


def map_box(box: Coordinates, target: Rect) -> Rect:
    """Project a normalized box into ``target``.

    Values are not clamped: out-of-range boxes are reproduced as given and a
    zero width or height yields a degenerate rectangle.
    """
    return Rect(
        x=target.x + box.x * target.width,
        y=target.y + box.y * target.height,
        width=box.w * target.width,
        height=box.h * target.height,
    )


def fit_within(frame: Rect, content_width: float, content_height: float) -> Rect:
    """Largest rectangle with the content's aspect ratio inside ``frame``, top-left aligned."""
    if content_width <= 0 or content_height <= 0:
        return frame
    scale = min(frame.width / content_width, frame.height / content_height)
    return Rect(x=frame.x, y=frame.y, width=content_width * scale, height=content_height * scale)
