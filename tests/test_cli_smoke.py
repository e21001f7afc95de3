"""
Smoke tests for the sprite-composer CLI.

Runs extract -> combine -> preview on a tiny synthetic sheet so wiring and
filesystem layout regressions are caught early.
"""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
from PIL import Image

from sprite_composer.cli import main as cli_main


def _save_sheet(path: Path) -> None:
    """Green 300x200 sheet with two 80x80 red blocks."""
    pixels = np.zeros((200, 300, 4), dtype=np.uint8)
    pixels[:, :, :3] = (0, 255, 0)
    pixels[:, :, 3] = 255
    pixels[20:100, 20:100, :3] = (200, 40, 40)
    pixels[110:190, 180:260, :3] = (40, 40, 200)
    Image.fromarray(pixels).save(path)


def _extract(tmp_path: Path) -> Path:
    sheet = tmp_path / "sheet.png"
    _save_sheet(sheet)
    out = tmp_path / "assets"
    assert cli_main(["extract", str(sheet), "-o", str(out), "--bucket"]) == 0
    return out / "sheet"


def _write_project(tmp_path: Path, asset_dir: Path) -> Path:
    project = tmp_path / "project.json"
    project.write_text(json.dumps({
        "layers": [
            {"name": "Head", "parentLayer": "Body", "traits": [
                {"name": "Red", "rarity": 20, "imageUrl": str(asset_dir / "asset_0000.png"),
                 "position": {"x": 352, "y": 100, "width": 320, "height": 320}},
                {"name": "Blue", "rarity": 40, "imageUrl": str(asset_dir / "asset_0001.png"),
                 "position": {"x": 352, "y": 100, "width": 320, "height": 320}},
            ]},
            {"name": "Body", "parentLayer": "", "traits": [
                {"name": "Plain", "imageUrl": str(asset_dir / "asset_0001.png"),
                 "position": {"x": 262, "y": 400, "width": 500, "height": 500}},
                {"name": "Striped", "rarity": 60, "imageUrl": str(asset_dir / "asset_0000.png"),
                 "position": {"x": 262, "y": 400, "width": 500, "height": 500}},
            ]},
        ],
    }))
    return project


def test_extract_writes_assets_and_manifest(tmp_path):
    sheet_dir = _extract(tmp_path)

    assert (sheet_dir / "asset_0000.png").exists()
    assert (sheet_dir / "asset_0001.png").exists()

    manifest = json.loads((sheet_dir / "assets.json").read_text())
    assets = manifest["assets"]
    assert len(assets) == 2
    assert all(a["finalWidth"] == 80 and a["finalHeight"] == 80 for a in assets)
    assert assets[0]["category"] == "Head"
    assert assets[1]["category"] == "Other"
    assert assets[0]["position"]["y"] + assets[0]["position"]["height"] == 420

    with Image.open(sheet_dir / "asset_0000.png") as img:
        assert img.size == (80, 80)


def test_extract_without_images_fails(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    assert cli_main(["extract", str(empty), "-o", str(tmp_path / "out")]) == 1


def test_combine_and_preview(tmp_path):
    sheet_dir = _extract(tmp_path)
    project = _write_project(tmp_path, sheet_dir)
    out = tmp_path / "collection.jsonl"

    assert cli_main(["combine", str(project), "-o", str(out), "--cap", "3",
                     "--name", "Robot"]) == 0
    records = [json.loads(line) for line in out.read_text().splitlines()]
    assert len(records) == 3
    assert records[0]["name"] == "Robot #1"
    # Body is the root, so it comes first in every combination
    assert [a["trait_type"] for a in records[0]["attributes"]] == ["Body", "Head"]
    assert records[0]["rarityScore"] == 60.0

    preview = tmp_path / "preview.png"
    assert cli_main(["preview", str(out), "-o", str(preview), "--size", "256",
                     "--guides"]) == 0
    with Image.open(preview) as img:
        assert img.size == (256, 256)

    assert cli_main(["preview", str(out), "-o", str(preview), "--index", "9"]) == 1


def test_combine_rejects_duplicate_layer_names(tmp_path, caplog):
    project = tmp_path / "project.json"
    project.write_text(json.dumps([
        {"name": "Body", "traits": [{"name": "a"}]},
        {"name": "Body", "traits": [{"name": "b"}]},
    ]))
    out = tmp_path / "collection.jsonl"
    assert cli_main(["combine", str(project), "-o", str(out)]) == 1
    assert "duplicate layer name" in caplog.text
    assert not out.exists()


def test_combine_rejects_unknown_sampling_from_config(tmp_path, caplog):
    sheet_dir = _extract(tmp_path)
    project = _write_project(tmp_path, sheet_dir)
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"sampling": "weighted"}))
    out = tmp_path / "collection.jsonl"
    assert cli_main(["--config", str(config), "combine", str(project),
                     "-o", str(out)]) == 1
    assert "unknown sampling strategy" in caplog.text


def test_config_file_caps_combinations(tmp_path):
    sheet_dir = _extract(tmp_path)
    project = _write_project(tmp_path, sheet_dir)
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"max_combinations": 2}))
    out = tmp_path / "collection.jsonl"

    assert cli_main(["--config", str(config), "combine", str(project),
                     "-o", str(out)]) == 0
    assert len(out.read_text().splitlines()) == 2
