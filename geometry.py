import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from pose_types import Landmark2D

# Floor for bounding-box dimensions; a single-point box would otherwise divide by zero.
MIN_BOX_EXTENT = 1e-3


def _to_xy(lm: Landmark2D) -> Tuple[float, float]:
    return lm.x, lm.y


def distance_2d(a: Landmark2D, b: Landmark2D) -> float:
    ax, ay = _to_xy(a)
    bx, by = _to_xy(b)
    return math.hypot(ax - bx, ay - by)


def midpoint(a: Landmark2D, b: Landmark2D) -> Tuple[float, float]:
    return (a.x + b.x) / 2.0, (a.y + b.y) / 2.0


def bounding_box(points: Iterable[Tuple[float, float]]) -> Optional[Tuple[float, float, float, float]]:
    """Return (min_x, min_y, max_x, max_y), or None for an empty point set."""
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for x, y in points:
        min_x = min(min_x, x)
        min_y = min(min_y, y)
        max_x = max(max_x, x)
        max_y = max(max_y, y)
    if min_x == math.inf:
        return None
    return min_x, min_y, max_x, max_y


@dataclass(frozen=True)
class FitTransform:
    scale: float
    offset_x: float
    offset_y: float

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale + self.offset_x, y * self.scale + self.offset_y


def fit_transform(box: Tuple[float, float, float, float], size: int, padding: int) -> FitTransform:
    # Uniform scale so the box fills the padded square; then center it.
    min_x, min_y, max_x, max_y = box
    box_w = max(max_x - min_x, MIN_BOX_EXTENT)
    box_h = max(max_y - min_y, MIN_BOX_EXTENT)
    usable = max(size - 2 * padding, 1)
    scale = min(usable / box_w, usable / box_h)
    offset_x = (size - (max_x - min_x) * scale) / 2.0 - min_x * scale
    offset_y = (size - (max_y - min_y) * scale) / 2.0 - min_y * scale
    return FitTransform(scale=scale, offset_x=offset_x, offset_y=offset_y)
