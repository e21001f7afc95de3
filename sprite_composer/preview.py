"""Quick-look previews of a combination for visual QC.

Stacks each pick's image at its logical rect on a blank canvas, in
z-order, optionally with the neck/body alignment guides drawn on top.
The production renderer lives elsewhere; this is only an inspection aid.
"""

import base64
import binascii
import io
import logging
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from sprite_composer.combinations import Combination
from sprite_composer.config import BODY_TOP_Y, CANVAS_SIZE, NECK_LINE_Y

logger = logging.getLogger(__name__)

NECK_COLOR = (255, 0, 0)
BODY_TOP_COLOR = (0, 0, 255)
CENTER_COLOR = (128, 128, 128)
BACKGROUND_FILL = (240, 240, 240, 255)


def load_trait_image(reference: str) -> Optional[Image.Image]:
    """Open a trait image from a file path or a ``data:image/...;base64,`` URL."""
    if not reference:
        return None
    try:
        if reference.startswith("data:"):
            _, _, payload = reference.partition(",")
            img = Image.open(io.BytesIO(base64.b64decode(payload)))
        else:
            img = Image.open(reference)
        img.load()
    except (OSError, UnidentifiedImageError, ValueError, binascii.Error) as exc:
        logger.warning("Cannot load trait image %.60s: %s", reference, exc)
        return None
    return img.convert("RGBA")


def _draw_guides(canvas: np.ndarray, canvas_size: int) -> None:
    scale = canvas.shape[0] / canvas_size
    w = canvas.shape[1]
    h = canvas.shape[0]
    neck = int(round(NECK_LINE_Y * scale))
    body_top = int(round(BODY_TOP_Y * scale))
    cv2.line(canvas, (0, neck), (w - 1, neck), NECK_COLOR, 2)
    cv2.line(canvas, (0, body_top), (w - 1, body_top), BODY_TOP_COLOR, 2)
    cv2.line(canvas, (w // 2, 0), (w // 2, h - 1), CENTER_COLOR, 1)


def render_combination(
    combination: Combination,
    canvas_size: int = CANVAS_SIZE,
    output_size: int = CANVAS_SIZE,
    guides: bool = False,
    fill: Tuple[int, int, int, int] = BACKGROUND_FILL,
) -> np.ndarray:
    """Composite a combination's picks into an RGB array.

    Args:
        combination: Picks to stack; drawn by ascending z-index.
        canvas_size: Logical canvas edge the positions are expressed in.
        output_size: Edge of the rendered square, in pixels.
        guides: Draw neck, body-top and centre reference lines.
        fill: Canvas background colour (RGBA).

    Returns:
        (output_size, output_size, 3) uint8 array.
    """
    scale = output_size / canvas_size
    canvas = Image.new("RGBA", (output_size, output_size), fill)

    for entry in sorted(combination.entries, key=lambda e: e.z_index):
        img = load_trait_image(entry.image_reference)
        if img is None:
            continue
        rect = entry.position
        w = max(1, int(round(rect.width * scale)))
        h = max(1, int(round(rect.height * scale)))
        resized = cv2.resize(np.array(img), (w, h), interpolation=cv2.INTER_AREA)
        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        layer.paste(Image.fromarray(resized),
                    (int(round(rect.x * scale)), int(round(rect.y * scale))))
        canvas = Image.alpha_composite(canvas, layer)

    rgb = np.array(canvas.convert("RGB"))
    if guides:
        _draw_guides(rgb, canvas_size)
    return rgb


def save_preview(combination: Combination, output_path: Path,
                 guides: bool = False, output_size: int = CANVAS_SIZE) -> Path:
    """Render and save a preview PNG.

    Returns the output path.
    """
    rgb = render_combination(combination, output_size=output_size, guides=guides)
    Image.fromarray(rgb).save(output_path)
    logger.info("Preview saved: %s", output_path)
    return output_path
