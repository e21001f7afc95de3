"""Composer configuration: chroma presets, canvas constants, layer/trait records."""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Chroma-key presets
# ---------------------------------------------------------------------------
# Greens the sheet generator tends to paint backgrounds with.
REFERENCE_GREENS: List[Tuple[int, int, int]] = [
    (148, 196, 111),   # yellowish green
    (0, 255, 0),       # pure green
    (120, 227, 43),    # lime green
]

SEGMENT_THRESHOLD = 60     # sum of |dR|+|dG|+|dB| below this is background
CLEANING_THRESHOLD = 80    # stricter pass that eats anti-aliased fringing
SCAN_STRIDE = 10           # seed search step in pixels
NOISE_FLOOR = 5000         # regions with fewer pixels are dropped
CROP_PADDING = 10


# ---------------------------------------------------------------------------
# Logical canvas and composition limits
# ---------------------------------------------------------------------------
CANVAS_SIZE = 1024
MAX_COMBINATIONS = 10000

NECK_LINE_Y = 420          # head bottom edge lands here
BODY_TOP_Y = 400           # body top edge lands here (20px neck overlap)
BACKGROUND_MIN_WIDTH = 900


class TraitCategory(str, Enum):
    BACKGROUND = "Background"
    BODY = "Body"
    HEAD = "Head"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TraitCategory":
        if isinstance(value, cls):
            return value
        if value:
            for member in cls:
                if member.value.lower() == str(value).strip().lower():
                    return member
        return cls.OTHER


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in logical canvas units."""
    x: float = 0
    y: float = 0
    width: float = CANVAS_SIZE
    height: float = CANVAS_SIZE

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> "Rect":
        if not d:
            return cls()
        return cls(
            x=d.get("x", 0),
            y=d.get("y", 0),
            width=d.get("width", CANVAS_SIZE),
            height=d.get("height", CANVAS_SIZE),
        )


FULL_CANVAS = Rect(0, 0, CANVAS_SIZE, CANVAS_SIZE)

DEFAULT_POSITIONS: Dict[TraitCategory, Rect] = {
    TraitCategory.BACKGROUND: FULL_CANVAS,
    TraitCategory.BODY: Rect(256, 400, 512, 624),
    TraitCategory.HEAD: Rect(312, 100, 400, 320),
    TraitCategory.OTHER: FULL_CANVAS,
}


@dataclass(frozen=True)
class AnchorPoints:
    """Edges of a trait that connect to neighbouring traits."""
    top: bool = False
    bottom: bool = False
    left: bool = False
    right: bool = False

    def to_dict(self) -> dict:
        return {"top": self.top, "bottom": self.bottom,
                "left": self.left, "right": self.right}

    @classmethod
    def parse(cls, value: Any) -> "AnchorPoints":
        """Accept a dict, a free-form string, or a list like ``["All"]``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(
                top=bool(value.get("top", False)),
                bottom=bool(value.get("bottom", False)),
                left=bool(value.get("left", False)),
                right=bool(value.get("right", False)),
            )
        if isinstance(value, (list, tuple)):
            value = " ".join(str(v) for v in value)
        if isinstance(value, str):
            text = value.lower()
            every = "all" in text
            return cls(
                top=every or "top" in text,
                bottom=every or "bottom" in text,
                left=every or "left" in text,
                right=every or "right" in text,
            )
        return cls()


@dataclass
class Trait:
    """One selectable variant within a layer."""
    name: str
    rarity: Any = None                      # 0-100, validated at scoring time
    image_reference: str = ""               # file path or data URL
    category: TraitCategory = TraitCategory.OTHER
    anchor_points: AnchorPoints = field(default_factory=AnchorPoints)
    position: Optional[Rect] = None         # explicit override of the layer rect
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "rarity": self.rarity,
            "imageUrl": self.image_reference,
            "category": self.category.value,
            "anchorPoints": self.anchor_points.to_dict(),
            "position": self.position.to_dict() if self.position else None,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, d: dict, index: int = 0) -> "Trait":
        category = TraitCategory.parse(d.get("category") or d.get("Category"))
        anchors = d.get("anchorPoints", d.get("anchor_points", d.get("Anchor Points")))
        raw_position = d.get("position") or d.get("Position")
        return cls(
            name=d.get("name") or d.get("Name") or f"Trait {index + 1}",
            rarity=d.get("rarity", d.get("Rarity")),
            image_reference=(d.get("imageUrl") or d.get("imageReference")
                             or d.get("image_reference") or ""),
            category=category,
            anchor_points=AnchorPoints.parse(anchors),
            position=Rect.from_dict(raw_position) if raw_position else None,
            description=d.get("description") or d.get("Description") or "",
        )


@dataclass
class Layer:
    """A named compositing layer. ``parent_layer_name`` is a weak reference."""
    name: str
    parent_layer_name: str = ""
    position: Rect = FULL_CANVAS
    traits: List[Trait] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "parentLayer": self.parent_layer_name,
            "position": self.position.to_dict(),
            "traits": [t.to_dict() for t in self.traits],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Layer":
        parent = d.get("parentLayer", d.get("parentLayerName", d.get("parent_layer_name")))
        return cls(
            name=d["name"],
            parent_layer_name=parent or "",
            position=Rect.from_dict(d.get("position")),
            traits=[Trait.from_dict(t, i) for i, t in enumerate(d.get("traits") or [])],
        )


def load_project_layers(path: Path) -> List[Layer]:
    """Read layers from a project document (a list, or ``{"layers": [...]}``)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("layers", [])
    return [Layer.from_dict(d) for d in data]


@dataclass
class ComposerConfig:
    """Top-level tuning knobs for segmentation, extraction and composition."""
    # Segmentation
    reference_colors: List[Tuple[int, int, int]] = field(
        default_factory=lambda: list(REFERENCE_GREENS)
    )
    threshold: int = SEGMENT_THRESHOLD
    strict_threshold: int = CLEANING_THRESHOLD
    stride: int = SCAN_STRIDE
    noise_floor: int = NOISE_FLOOR
    padding: int = CROP_PADDING

    # Composition
    canvas_size: int = CANVAS_SIZE
    max_combinations: int = MAX_COMBINATIONS
    sampling: str = "prefix"
    seed: Optional[int] = None

    def to_dict(self) -> dict:
        d = {}
        for k, v in self.__dict__.items():
            if isinstance(v, Enum):
                d[k] = v.value
            elif k == "reference_colors":
                d[k] = [list(c) for c in v]
            else:
                d[k] = v
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ComposerConfig":
        d = dict(d)
        if "reference_colors" in d:
            d["reference_colors"] = [tuple(int(c) for c in rgb) for rgb in d["reference_colors"]]
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_file(cls, path: Path) -> "ComposerConfig":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))
