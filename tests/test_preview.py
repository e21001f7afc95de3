"""Tests for the QC preview compositor."""

from __future__ import annotations

import base64
import io
import logging

import numpy as np
from PIL import Image

from sprite_composer.combinations import Combination, CombinationEntry
from sprite_composer.config import Rect
from sprite_composer.preview import (
    BACKGROUND_FILL,
    load_trait_image,
    render_combination,
)


def _data_url(color=(255, 0, 0, 255), size=(4, 4)) -> str:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def _combo(*references) -> Combination:
    return Combination(tuple(
        CombinationEntry(f"L{i}", f"t{i}", ref, 50, Rect(), i)
        for i, ref in enumerate(references)
    ))


class TestLoadTraitImage:
    def test_data_url(self):
        img = load_trait_image(_data_url(size=(6, 3)))
        assert img.mode == "RGBA"
        assert img.size == (6, 3)

    def test_missing_path_warns(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            img = load_trait_image(str(tmp_path / "nope.png"))
        assert img is None
        assert "Cannot load trait image" in caplog.text

    def test_bad_base64_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert load_trait_image("data:image/png;base64,@@not-base64@@") is None
        assert "Cannot load trait image" in caplog.text


class TestRender:
    def test_data_url_fills_canvas(self):
        rgb = render_combination(_combo(_data_url()), output_size=64)
        assert rgb.shape == (64, 64, 3)
        assert np.all(rgb == (255, 0, 0))

    def test_unloadable_image_is_skipped(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            rgb = render_combination(_combo(str(tmp_path / "gone.png")), output_size=16)
        assert np.all(rgb == BACKGROUND_FILL[:3])
        assert "Cannot load trait image" in caplog.text
