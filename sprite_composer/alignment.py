"""Placement of trait images on the 1024x1024 logical canvas.

Positions are planned in logical units and handed to the renderer as
percentages. Snap rules are advisory per-category heuristics: heads hang
from the neck line, bodies start at the body-top line, everything is
centred horizontally, and wide backgrounds pin to the origin.

Nominal rects are estimates. Once an asset's real pixel size is known,
:func:`rescale_and_snap` normalises its width and re-snaps using the new
height. Results are not clamped to the canvas.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sprite_composer.config import (
    BACKGROUND_MIN_WIDTH,
    BODY_TOP_Y,
    CANVAS_SIZE,
    DEFAULT_POSITIONS,
    NECK_LINE_Y,
    Rect,
    TraitCategory,
)

logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class RelativeRect:
    """A rect as percentages of the canvas edge."""
    left_pct: float
    top_pct: float
    width_pct: float
    height_pct: float

    def to_dict(self) -> dict:
        return {
            "leftPct": self.left_pct,
            "topPct": self.top_pct,
            "widthPct": self.width_pct,
            "heightPct": self.height_pct,
        }


def to_relative_rect(rect: Rect, canvas_size: int = CANVAS_SIZE) -> RelativeRect:
    if canvas_size <= 0:
        raise ValueError(f"canvas_size must be positive, got {canvas_size}")
    scale = 100.0 / canvas_size
    return RelativeRect(
        left_pct=rect.x * scale,
        top_pct=rect.y * scale,
        width_pct=rect.width * scale,
        height_pct=rect.height * scale,
    )


@dataclass(frozen=True)
class SnapRule:
    """Declarative placement heuristic for one trait category."""
    category: TraitCategory
    bottom_line: Optional[float] = None    # y + height lands here
    top_line: Optional[float] = None       # y lands here
    center_x: bool = True
    min_width: Optional[float] = None      # acceptable width band
    max_width: Optional[float] = None
    target_width: Optional[float] = None
    origin_min_width: Optional[float] = None   # at least this wide: pin to (0, 0)

    def needs_rescale(self, width: float) -> bool:
        if self.target_width is None or width <= 0:
            return False
        too_narrow = self.min_width is not None and width < self.min_width
        too_wide = self.max_width is not None and width > self.max_width
        return too_narrow or too_wide

    def snap(self, width: float, height: float, nominal_y: float = 0,
             canvas_size: int = CANVAS_SIZE) -> Rect:
        if self.origin_min_width is not None and width > self.origin_min_width:
            return Rect(0, 0, width, height)

        x = _round_half_up(canvas_size / 2 - width / 2) if self.center_x else 0
        if self.bottom_line is not None:
            y = self.bottom_line - height
        elif self.top_line is not None:
            y = self.top_line
        else:
            y = nominal_y
        return Rect(x, y, width, height)


SNAP_RULES: Dict[TraitCategory, SnapRule] = {
    TraitCategory.HEAD: SnapRule(
        TraitCategory.HEAD, bottom_line=NECK_LINE_Y,
        min_width=250, max_width=380, target_width=320,
    ),
    TraitCategory.BODY: SnapRule(
        TraitCategory.BODY, top_line=BODY_TOP_Y,
        min_width=420, max_width=580, target_width=500,
    ),
    TraitCategory.BACKGROUND: SnapRule(
        TraitCategory.BACKGROUND, origin_min_width=BACKGROUND_MIN_WIDTH,
    ),
    TraitCategory.OTHER: SnapRule(TraitCategory.OTHER),
}


def nominal_rect(category: TraitCategory) -> Rect:
    """Planning estimate for a category before real pixels exist."""
    return DEFAULT_POSITIONS[TraitCategory.parse(category)]


def snap_rect(category: TraitCategory, width: float, height: float,
              nominal_y: Optional[float] = None,
              canvas_size: int = CANVAS_SIZE) -> Rect:
    """Apply the category's snap rule to a rect of the given size."""
    category = TraitCategory.parse(category)
    if nominal_y is None:
        nominal_y = nominal_rect(category).y
    return SNAP_RULES[category].snap(width, height, nominal_y, canvas_size)


@dataclass(frozen=True)
class Placement:
    """Result of the rescale-and-snap pass."""
    category: TraitCategory
    rect: Rect
    scale: float = 1.0
    source_width: int = 0
    source_height: int = 0

    @property
    def rescaled(self) -> bool:
        return self.scale != 1.0

    def to_dict(self, canvas_size: int = CANVAS_SIZE) -> dict:
        return {
            "category": self.category.value,
            "position": self.rect.to_dict(),
            "relative": to_relative_rect(self.rect, canvas_size).to_dict(),
            "scale": self.scale,
            "sourceWidth": self.source_width,
            "sourceHeight": self.source_height,
        }


def rescale_and_snap(category: TraitCategory, width: int, height: int,
                     nominal_y: Optional[float] = None,
                     canvas_size: int = CANVAS_SIZE) -> Placement:
    """Normalise an asset's measured size and snap it with the new height."""
    category = TraitCategory.parse(category)
    rule = SNAP_RULES[category]
    scale = 1.0
    final_w, final_h = width, height
    if rule.needs_rescale(width):
        scale = rule.target_width / width
        final_w = _round_half_up(width * scale)
        final_h = _round_half_up(height * scale)
        logger.info("Normalizing %s size: %dx%d -> %dx%d (scale %.2f)",
                    category.value, width, height, final_w, final_h, scale)

    rect = rule.snap(final_w, final_h,
                     nominal_rect(category).y if nominal_y is None else nominal_y,
                     canvas_size)
    return Placement(category, rect, scale, width, height)


def _bbox_origin(item):
    region = getattr(item, "source_region", item)
    return region.left, region.top


def bucket_by_sheet_position(items: Iterable, sheet_width: int,
                             sheet_height: int) -> Dict[TraitCategory, List]:
    """Group regions (or extracted assets) by where they sit on the sheet.

    Heads sit in the top half toward the left, bodies in the bottom half
    at the far left, and the background on the right-hand side.
    """
    buckets: Dict[TraitCategory, List] = {c: [] for c in TraitCategory}
    for item in items:
        left, top = _bbox_origin(item)
        if top < sheet_height / 2 and left < sheet_width * 0.6:
            buckets[TraitCategory.HEAD].append(item)
        elif top > sheet_height / 2 and left < sheet_width * 0.4:
            buckets[TraitCategory.BODY].append(item)
        elif left > sheet_width * 0.6:
            buckets[TraitCategory.BACKGROUND].append(item)
        else:
            buckets[TraitCategory.OTHER].append(item)
    logger.info("Sheet buckets: %d heads, %d bodies, %d backgrounds, %d other",
                len(buckets[TraitCategory.HEAD]), len(buckets[TraitCategory.BODY]),
                len(buckets[TraitCategory.BACKGROUND]), len(buckets[TraitCategory.OTHER]))
    return buckets
