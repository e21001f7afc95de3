"""Chroma-key segmentation of composite sprite sheets.

Pixels are classified against one or more reference background colours
using the sum of absolute channel differences (a cheap stand-in for a
proper colour distance).  Foreground islands are labelled with OpenCV
connected components (4-connectivity); an island is reported only if it
covers a point of the coarse scan grid, in raster order of that first hit.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Union

import cv2
import numpy as np

from sprite_composer.config import NOISE_FLOOR, SCAN_STRIDE, SEGMENT_THRESHOLD

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceColor:
    """A background colour to key out."""
    r: int
    g: int
    b: int

    def distance(self, r: int, g: int, b: int) -> int:
        return abs(int(r) - self.r) + abs(int(g) - self.g) + abs(int(b) - self.b)

    @classmethod
    def coerce(cls, value: Union["ReferenceColor", Sequence[int]]) -> "ReferenceColor":
        if isinstance(value, cls):
            return value
        r, g, b = value[:3]
        return cls(int(r), int(g), int(b))


ColorLike = Union[ReferenceColor, Sequence[int]]


@dataclass(frozen=True)
class Region:
    """A connected foreground island found by :func:`segment`."""
    left: int
    top: int
    width: int
    height: int
    pixel_count: int

    @property
    def right(self) -> int:
        """Exclusive right edge."""
        return self.left + self.width

    @property
    def bottom(self) -> int:
        """Exclusive bottom edge."""
        return self.top + self.height

    @property
    def bounding_box(self) -> dict:
        return {"left": self.left, "top": self.top,
                "width": self.width, "height": self.height}

    def to_dict(self) -> dict:
        return {"boundingBox": self.bounding_box, "pixelCount": self.pixel_count}


def _reference_array(reference_colors: Iterable[ColorLike]) -> np.ndarray:
    refs = [ReferenceColor.coerce(c) for c in reference_colors]
    return np.array([(c.r, c.g, c.b) for c in refs], dtype=np.int16).reshape(-1, 3)


def _check_pixels(pixels: np.ndarray) -> None:
    if pixels.ndim != 3 or pixels.shape[2] < 3:
        raise ValueError(f"expected an (H, W, 3|4) pixel buffer, got shape {pixels.shape}")


def is_background(pixel: Sequence[int], reference_colors: Iterable[ColorLike],
                  threshold: int = SEGMENT_THRESHOLD) -> bool:
    """True if ``pixel`` is within ``threshold`` of any reference colour."""
    r, g, b = pixel[:3]
    return any(ReferenceColor.coerce(c).distance(r, g, b) < threshold
               for c in reference_colors)


def background_mask(pixels: np.ndarray, reference_colors: Iterable[ColorLike],
                    threshold: int = SEGMENT_THRESHOLD) -> np.ndarray:
    """Boolean (H, W) mask, True where the pixel is chroma background.

    Alpha is ignored; classification only looks at RGB.
    """
    _check_pixels(pixels)
    refs = _reference_array(reference_colors)
    rgb = pixels[:, :, :3].astype(np.int16)
    mask = np.zeros(pixels.shape[:2], dtype=bool)
    for ref in refs:
        diff = np.abs(rgb - ref).sum(axis=2)
        mask |= diff < threshold
    return mask


def _seed_order(labels: np.ndarray, stride: int) -> List[int]:
    """Component labels in raster order of their first hit on the scan grid."""
    grid = labels[::stride, ::stride].ravel()
    found, first = np.unique(grid, return_index=True)
    hits = [(int(pos), int(label)) for label, pos in zip(found, first) if label != 0]
    return [label for _, label in sorted(hits)]


def segment(
    pixels: np.ndarray,
    reference_colors: Iterable[ColorLike],
    threshold: int = SEGMENT_THRESHOLD,
    noise_floor: int = NOISE_FLOOR,
    stride: int = SCAN_STRIDE,
) -> List[Region]:
    """Find foreground islands in a chroma-keyed sheet.

    Args:
        pixels: (H, W, 3|4) uint8 buffer.
        reference_colors: Background colours to key out.
        threshold: Sum-of-absolute-differences cut-off; below it is background.
        noise_floor: Regions with fewer pixels are dropped silently.
        stride: Seed search step. Islands that never cover a grid point
            (x and y both multiples of ``stride``) are not discovered.

    Returns:
        Regions in raster order of their first seed hit. An all-background
        buffer yields an empty list.
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")
    reference_colors = list(reference_colors)
    foreground = (~background_mask(pixels, reference_colors, threshold)).astype(np.uint8)

    _, labels, stats, _ = cv2.connectedComponentsWithStats(foreground, connectivity=4)

    regions: List[Region] = []
    dropped = 0
    for label in _seed_order(labels, stride):
        left, top, width, height, count = (int(v) for v in stats[label, :5])
        if count < noise_floor:
            dropped += 1
            logger.debug("Dropped %d-pixel region at (%d, %d)", count, left, top)
            continue
        region = Region(left=left, top=top, width=width, height=height,
                        pixel_count=count)
        logger.debug("Region %d: %dx%d at (%d, %d), %d px", len(regions),
                     width, height, left, top, count)
        regions.append(region)

    logger.info("Found %d regions (%d below noise floor)", len(regions), dropped)
    return regions
