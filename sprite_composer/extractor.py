"""Cut segmented regions out of a sheet as clean, trimmed RGBA assets.

Each region is cropped with padding, re-keyed with a stricter threshold to
punch out anti-aliased green fringing, then trimmed to its visible pixels.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from sprite_composer.chroma import ColorLike, Region, background_mask
from sprite_composer.config import CLEANING_THRESHOLD, CROP_PADDING, REFERENCE_GREENS

logger = logging.getLogger(__name__)

ImageSource = Union[np.ndarray, bytes, str, Path]


class ImageDecodeError(Exception):
    """Raised when a sheet or an asset's pixels cannot be read."""


@dataclass
class ExtractedAsset:
    """A single trimmed asset cut from a sheet."""
    source_region: Region
    pixels: np.ndarray          # RGBA, trimmed to non-transparent content
    left: int = 0               # trimmed origin in sheet coordinates
    top: int = 0
    index: int = 0

    @property
    def final_width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def final_height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.final_width == 0 or self.final_height == 0

    def to_dict(self) -> dict:
        d = self.source_region.to_dict()
        d.update({
            "index": self.index,
            "left": self.left,
            "top": self.top,
            "finalWidth": self.final_width,
            "finalHeight": self.final_height,
        })
        return d


def _to_rgba(img: np.ndarray) -> np.ndarray:
    if img.ndim != 3 or img.shape[2] not in (3, 4):
        raise ImageDecodeError(f"unsupported pixel buffer shape {img.shape}")
    if img.dtype != np.uint8:
        raise ImageDecodeError(f"unsupported pixel buffer dtype {img.dtype}")
    if img.shape[2] == 4:
        return img
    alpha = np.full(img.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([img, alpha], axis=2)


def load_sheet(source: ImageSource) -> np.ndarray:
    """Decode an image (path, encoded bytes, or array) into an RGBA array."""
    if isinstance(source, np.ndarray):
        return _to_rgba(source)
    try:
        if isinstance(source, (bytes, bytearray)):
            pil_img = Image.open(io.BytesIO(source))
        else:
            pil_img = Image.open(source)
        pil_img.load()
    except (OSError, UnidentifiedImageError, ValueError) as exc:
        raise ImageDecodeError(f"cannot decode image: {exc}") from exc

    if pil_img.mode != "RGBA":
        pil_img = pil_img.convert("RGBA")
    return np.array(pil_img)


def crop_box(region: Region, width: int, height: int, padding: int):
    """Padded crop bounds (x0, y0, x1, y1), clamped to the buffer."""
    if padding < 0:
        raise ValueError(f"padding must be >= 0, got {padding}")
    x0 = max(0, region.left - padding)
    y0 = max(0, region.top - padding)
    x1 = min(width, region.left + region.width + padding)
    y1 = min(height, region.top + region.height + padding)
    return x0, y0, x1, y1


def _trim_bounds(alpha: np.ndarray):
    rows = np.flatnonzero(alpha.any(axis=1))
    cols = np.flatnonzero(alpha.any(axis=0))
    if rows.size == 0:
        return None
    return int(cols[0]), int(rows[0]), int(cols[-1]) + 1, int(rows[-1]) + 1


def extract(
    buffer: ImageSource,
    region: Region,
    padding: int = CROP_PADDING,
    strict_threshold: int = CLEANING_THRESHOLD,
    reference_colors: Optional[Iterable[ColorLike]] = None,
    index: int = 0,
) -> ExtractedAsset:
    """Crop, alpha-key and trim one region.

    Raises:
        ImageDecodeError: the buffer cannot be decoded or the padded crop
            falls entirely outside it.
    """
    img = load_sheet(buffer)
    if reference_colors is None:
        reference_colors = REFERENCE_GREENS
    h, w = img.shape[:2]

    x0, y0, x1, y1 = crop_box(region, w, h, padding)
    if x1 <= x0 or y1 <= y0:
        raise ImageDecodeError(
            f"region at ({region.left}, {region.top}) lies outside the {w}x{h} buffer"
        )

    cell = img[y0:y1, x0:x1].copy()
    keyed = background_mask(cell, reference_colors, strict_threshold)
    cell[keyed, 3] = 0

    bounds = _trim_bounds(cell[:, :, 3] > 0)
    if bounds is None:
        logger.warning("Region %d is fully transparent after keying", index)
        return ExtractedAsset(
            source_region=region,
            pixels=np.zeros((0, 0, 4), dtype=np.uint8),
            left=x0, top=y0, index=index,
        )

    tx0, ty0, tx1, ty1 = bounds
    return ExtractedAsset(
        source_region=region,
        pixels=cell[ty0:ty1, tx0:tx1].copy(),
        left=x0 + tx0,
        top=y0 + ty0,
        index=index,
    )


def extract_all(
    buffer: ImageSource,
    regions: List[Region],
    padding: int = CROP_PADDING,
    strict_threshold: int = CLEANING_THRESHOLD,
    reference_colors: Optional[Iterable[ColorLike]] = None,
) -> List[ExtractedAsset]:
    """Extract every region; a failing region is logged and skipped."""
    img = load_sheet(buffer)
    if reference_colors is not None:
        reference_colors = list(reference_colors)

    assets = []
    for i, region in enumerate(regions):
        try:
            asset = extract(img, region, padding=padding,
                            strict_threshold=strict_threshold,
                            reference_colors=reference_colors, index=i)
        except ImageDecodeError as exc:
            logger.warning("Skipping region %d: %s", i, exc)
            continue
        if asset.is_empty:
            continue
        logger.debug("Asset %d: %dx%d", i, asset.final_width, asset.final_height)
        assets.append(asset)

    logger.info("Extracted %d of %d regions", len(assets), len(regions))
    return assets


def save_assets(assets: List[ExtractedAsset], output_dir: Path,
                prefix: str = "asset") -> List[Path]:
    """Save assets as individual RGBA PNGs.

    Returns list of saved file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    saved = []
    for asset in assets:
        fpath = output_dir / f"{prefix}_{asset.index:04d}.png"
        Image.fromarray(asset.pixels).save(fpath)
        saved.append(fpath)
    return saved
