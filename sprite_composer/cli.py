"""Command-line entry points for sheet extraction and collection composition.

Usage:
    python -m sprite_composer.cli extract  <sheet>...  -o <dir>   [--bucket] [--threshold 60]
    python -m sprite_composer.cli combine  <project.json> -o <out.jsonl> [--cap 10000] [--strategy prefix]
    python -m sprite_composer.cli preview  <out.jsonl> -o <preview.png> [--index 0] [--guides]

Subcommands:
  extract  - Segment chroma-keyed sprite sheets into trimmed RGBA assets
  combine  - Expand a project's layers into capped trait combinations
  preview  - Composite one combination into a QC image
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from sprite_composer.config import ComposerConfig, TraitCategory

logger = logging.getLogger("sprite_composer")


def _setup_logging(debug: bool = False):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _gather_images(inputs: List[str], recursive: bool = False) -> List[Path]:
    """Collect image paths from file/directory arguments."""
    extensions = {".png", ".jpg", ".jpeg", ".bmp", ".webp"}
    paths = []
    for inp in inputs:
        p = Path(inp)
        if p.is_file() and p.suffix.lower() in extensions:
            paths.append(p)
        elif p.is_dir():
            pattern = p.rglob if recursive else p.glob
            for ext in sorted(extensions):
                paths.extend(sorted(pattern(f"*{ext}")))
    return paths


def _load_config(args) -> ComposerConfig:
    """Defaults, then the --config file, then explicit flags."""
    config = ComposerConfig.from_file(Path(args.config)) if args.config else ComposerConfig()
    overrides = {
        "threshold": getattr(args, "threshold", None),
        "strict_threshold": getattr(args, "strict_threshold", None),
        "noise_floor": getattr(args, "noise_floor", None),
        "padding": getattr(args, "padding", None),
        "stride": getattr(args, "stride", None),
        "max_combinations": getattr(args, "cap", None),
        "sampling": getattr(args, "strategy", None),
        "seed": getattr(args, "seed", None),
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    return config


# ---- Subcommand: extract ----

def cmd_extract(args):
    from sprite_composer.alignment import bucket_by_sheet_position, rescale_and_snap
    from sprite_composer.chroma import segment
    from sprite_composer.extractor import (
        ImageDecodeError, extract_all, load_sheet, save_assets,
    )

    config = _load_config(args)
    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    image_paths = _gather_images(args.inputs, recursive=args.recursive)
    if not image_paths:
        logger.error("No images found in %s", args.inputs)
        return 1

    total_assets = 0
    for img_path in image_paths:
        logger.info("Segmenting %s", img_path.name)
        try:
            sheet = load_sheet(img_path)
        except ImageDecodeError as exc:
            logger.error("  %s", exc)
            continue

        regions = segment(
            sheet,
            config.reference_colors,
            threshold=config.threshold,
            noise_floor=config.noise_floor,
            stride=config.stride,
        )
        if not regions:
            logger.warning("  no regions found in %s", img_path.name)
            continue

        assets = extract_all(
            sheet, regions,
            padding=config.padding,
            strict_threshold=config.strict_threshold,
            reference_colors=config.reference_colors,
        )
        sheet_dir = output_dir / img_path.stem
        saved = save_assets(assets, sheet_dir)

        categories = {}
        if args.bucket:
            h, w = sheet.shape[:2]
            for category, items in bucket_by_sheet_position(assets, w, h).items():
                for asset in items:
                    categories[asset.index] = category

        records = []
        for asset, path in zip(assets, saved):
            record = asset.to_dict()
            record["path"] = path.name
            if args.bucket:
                category = categories.get(asset.index, TraitCategory.OTHER)
                placement = rescale_and_snap(category, asset.final_width,
                                             asset.final_height,
                                             canvas_size=config.canvas_size)
                record.update(placement.to_dict(config.canvas_size))
            records.append(record)

        manifest = sheet_dir / "assets.json"
        with open(manifest, "w", encoding="utf-8") as f:
            json.dump({"source": str(img_path), "assets": records}, f, indent=2)

        total_assets += len(assets)
        logger.info("  → %d regions, %d assets saved to %s",
                    len(regions), len(saved), sheet_dir)

    logger.info("Total: %d assets from %d sheets", total_assets, len(image_paths))
    return 0 if total_assets else 1


# ---- Subcommand: combine ----

def cmd_combine(args):
    from sprite_composer.combinations import enumerate_combinations, to_collection_records
    from sprite_composer.config import load_project_layers
    from sprite_composer.layers import build_forest

    config = _load_config(args)
    layers = load_project_layers(Path(args.project))
    if not layers:
        logger.error("No layers found in %s", args.project)
        return 1

    try:
        forest = build_forest(layers)
    except ValueError as exc:
        logger.error("Invalid layers in %s: %s", args.project, exc)
        return 1
    ordered = forest.ordered_sequence
    if not ordered:
        logger.error("No layers with traits in %s", args.project)
        return 1
    logger.info("Layer order: %s", " < ".join(layer.name for layer in ordered))

    try:
        combos = enumerate_combinations(
            ordered,
            cap=config.max_combinations,
            strategy=config.sampling,
            seed=config.seed,
        )
    except ValueError as exc:
        logger.error("Cannot enumerate combinations: %s", exc)
        return 1
    records = to_collection_records(combos, args.name, args.description)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record) + "\n")

    logger.info("Wrote %d records to %s", len(records), output)
    return 0


# ---- Subcommand: preview ----

def cmd_preview(args):
    from sprite_composer.combinations import Combination
    from sprite_composer.preview import save_preview

    with open(args.combinations, encoding="utf-8") as f:
        lines = [line for line in f if line.strip()]
    if not 0 <= args.index < len(lines):
        logger.error("Index %d out of range (%d combinations)", args.index, len(lines))
        return 1

    combination = Combination.from_dict(json.loads(lines[args.index]))
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    save_preview(combination, output, guides=args.guides, output_size=args.size)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sprite-composer",
        description="Sprite-sheet segmentation and trait-combination tooling",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", default=None,
                        help="JSON file overriding ComposerConfig defaults")
    sub = parser.add_subparsers(dest="command", required=True)

    # -- extract --
    p_extract = sub.add_parser("extract", help="Segment sheets into trimmed assets")
    p_extract.add_argument("inputs", nargs="+", help="Sheet images or directories")
    p_extract.add_argument("-o", "--output", required=True, help="Output directory")
    p_extract.add_argument("--threshold", type=int, default=None,
                           help="Segmentation chroma threshold (default: 60)")
    p_extract.add_argument("--strict-threshold", type=int, default=None,
                           help="Fringe-cleaning chroma threshold (default: 80)")
    p_extract.add_argument("--noise-floor", type=int, default=None,
                           help="Minimum region size in pixels (default: 5000)")
    p_extract.add_argument("--padding", type=int, default=None,
                           help="Crop padding in pixels (default: 10)")
    p_extract.add_argument("--stride", type=int, default=None,
                           help="Seed scan stride in pixels (default: 10)")
    p_extract.add_argument("--bucket", action="store_true",
                           help="Categorise assets by sheet position and snap them")
    p_extract.add_argument("--recursive", "-r", action="store_true")
    p_extract.set_defaults(func=cmd_extract)

    # -- combine --
    p_combine = sub.add_parser("combine", help="Expand layers into trait combinations")
    p_combine.add_argument("project", help="Project JSON with a layer list")
    p_combine.add_argument("-o", "--output", required=True, help="Output JSONL path")
    p_combine.add_argument("--cap", type=int, default=None,
                           help="Maximum combinations (default: 10000)")
    p_combine.add_argument("--strategy", default=None, choices=["prefix", "reservoir"],
                           help="How to pick combinations when capped (default: prefix)")
    p_combine.add_argument("--seed", type=int, default=None,
                           help="Seed for reservoir sampling")
    p_combine.add_argument("--name", default="NFT", help="Collection item name prefix")
    p_combine.add_argument("--description", default="", help="Collection description")
    p_combine.set_defaults(func=cmd_combine)

    # -- preview --
    p_preview = sub.add_parser("preview", help="Render one combination to PNG")
    p_preview.add_argument("combinations", help="JSONL written by 'combine'")
    p_preview.add_argument("-o", "--output", required=True, help="Output PNG path")
    p_preview.add_argument("--index", type=int, default=0, help="Record index (default: 0)")
    p_preview.add_argument("--size", type=int, default=1024, help="Output edge in pixels")
    p_preview.add_argument("--guides", action="store_true",
                           help="Draw neck and centre alignment guides")
    p_preview.set_defaults(func=cmd_preview)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.debug)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
