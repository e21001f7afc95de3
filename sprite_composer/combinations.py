"""Cartesian expansion of per-layer trait choices into collection items.

Layers arrive already depth-ordered (see :mod:`sprite_composer.layers`);
that order fixes both the z-index of each pick and the enumeration order,
with the first layer varying slowest. Output is capped while generating,
so peak memory is bounded by the cap rather than the full product.
"""

import itertools
import logging
import math
import numbers
import random
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from sprite_composer.config import FULL_CANVAS, MAX_COMBINATIONS, Layer, Rect, Trait

logger = logging.getLogger(__name__)

DEFAULT_RARITY = 100.0
STRATEGIES = ("prefix", "reservoir")


def rarity_value(rarity: Any) -> float:
    """Numeric rarity, or 100 when missing or not a number."""
    if isinstance(rarity, bool) or not isinstance(rarity, numbers.Real):
        return DEFAULT_RARITY
    if math.isnan(rarity):
        return DEFAULT_RARITY
    return float(rarity)


@dataclass(frozen=True)
class CombinationEntry:
    """One layer's pick within a combination."""
    layer_name: str
    trait_name: str
    image_reference: str
    rarity: Any
    position: Rect
    z_index: int

    def to_dict(self) -> dict:
        return {
            "layer": self.layer_name,
            "trait": self.trait_name,
            "imageUrl": self.image_reference,
            "rarity": self.rarity,
            "position": self.position.to_dict(),
            "zIndex": self.z_index,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CombinationEntry":
        return cls(
            layer_name=d["layer"],
            trait_name=d["trait"],
            image_reference=d.get("imageUrl", ""),
            rarity=d.get("rarity"),
            position=Rect.from_dict(d.get("position")),
            z_index=d.get("zIndex", 0),
        )


@dataclass(frozen=True)
class Combination:
    """An ordered stack of picks, one per active layer, bottom first."""
    entries: Tuple[CombinationEntry, ...]

    @property
    def rarity_score(self) -> float:
        """Mean rarity of the picks (0.0 for an empty combination)."""
        if not self.entries:
            return 0.0
        return sum(rarity_value(e.rarity) for e in self.entries) / len(self.entries)

    def to_dict(self) -> dict:
        return {
            "traits": [e.to_dict() for e in self.entries],
            "rarityScore": self.rarity_score,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Combination":
        entries = d.get("traits", d.get("attributes", []))
        return cls(tuple(
            CombinationEntry.from_dict(_record_attribute_to_entry(e, i))
            for i, e in enumerate(entries)
        ))


def _record_attribute_to_entry(d: dict, index: int) -> dict:
    # Collection records spell the fields the way marketplaces expect.
    if "trait_type" not in d:
        return d
    return {
        "layer": d["trait_type"],
        "trait": d.get("value", ""),
        "imageUrl": d.get("image_url", ""),
        "rarity": d.get("rarity"),
        "position": d.get("position"),
        "zIndex": d.get("zIndex", index),
    }


def total_combinations(layers: Sequence[Layer]) -> int:
    """Size of the full product, without enumerating it."""
    return math.prod(len(layer.traits) for layer in layers)


def _entry(layer: Layer, trait: Trait, z_index: int) -> CombinationEntry:
    return CombinationEntry(
        layer_name=layer.name,
        trait_name=trait.name,
        image_reference=trait.image_reference,
        rarity=trait.rarity,
        position=trait.position or layer.position or FULL_CANVAS,
        z_index=z_index,
    )


def iter_combinations(layers: Sequence[Layer]) -> Iterator[Combination]:
    """Lazily yield every combination, first layer varying slowest."""
    columns = [
        [_entry(layer, trait, z) for trait in layer.traits]
        for z, layer in enumerate(layers)
    ]
    for picks in itertools.product(*columns):
        yield Combination(picks)


def _sample_indices(total: int, k: int, rng: random.Random) -> List[int]:
    """Sorted uniform sample of ``k`` distinct indices from ``range(total)``."""
    if k >= total:
        return list(range(total))
    if 2 * k < total:
        # sparse draw; also works when total exceeds sys.maxsize
        picked = set()
        while len(picked) < k:
            picked.add(rng.randrange(total))
        return sorted(picked)
    return sorted(rng.sample(range(total), k))


def _combination_at(columns: List[List[CombinationEntry]], index: int) -> Combination:
    """Decode an enumeration index; the last column is the fastest digit."""
    picks = []
    for column in reversed(columns):
        index, digit = divmod(index, len(column))
        picks.append(column[digit])
    return Combination(tuple(reversed(picks)))


def _reservoir(layers: Sequence[Layer], k: int,
               rng: random.Random) -> List[Combination]:
    columns = [
        [_entry(layer, trait, z) for trait in layer.traits]
        for z, layer in enumerate(layers)
    ]
    total = total_combinations(layers)
    return [_combination_at(columns, i) for i in _sample_indices(total, k, rng)]


def enumerate_combinations(
    layers: Sequence[Layer],
    cap: Optional[int] = MAX_COMBINATIONS,
    strategy: str = "prefix",
    seed: Optional[int] = None,
) -> List[Combination]:
    """Expand layers into combinations, keeping at most ``cap``.

    Args:
        layers: Depth-ordered layers; each should carry at least one trait.
            A layer with no traits zeroes the whole product.
        cap: Maximum number of combinations returned; None for no cap.
        strategy: "prefix" keeps the first ``cap`` in enumeration order and
            stops generating there. "reservoir" returns a uniform sample of
            ``cap`` (in enumeration order), decoded straight from sampled
            indices so the cost is bounded by ``cap`` as well.
        seed: RNG seed for the reservoir strategy.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown sampling strategy {strategy!r}; expected one of {STRATEGIES}")
    if cap is not None and cap < 0:
        raise ValueError(f"cap must be >= 0, got {cap}")

    empty = [layer.name for layer in layers if not layer.traits]
    if empty:
        logger.warning("Layers without traits make the collection empty: %s",
                       ", ".join(empty))

    total = total_combinations(layers)
    if cap is not None and total > cap:
        logger.warning("Capping %d possible combinations to %d (%s)", total, cap, strategy)

    combos = iter_combinations(layers)
    if cap is None:
        result = list(combos)
    elif strategy == "reservoir":
        result = _reservoir(layers, cap, random.Random(seed))
    else:
        result = list(itertools.islice(combos, cap))

    logger.info("Generated %d combinations (%d possible)", len(result), total)
    return result


def to_collection_records(
    combinations: Sequence[Combination],
    collection_name: str = "NFT",
    description: str = "",
) -> List[dict]:
    """Flatten combinations into numbered collection item records."""
    records = []
    for index, combo in enumerate(combinations):
        records.append({
            "name": f"{collection_name} #{index + 1}",
            "description": description,
            "attributes": [
                {
                    "trait_type": e.layer_name,
                    "value": e.trait_name,
                    "image_url": e.image_reference,
                    "rarity": e.rarity,
                    "position": e.position.to_dict(),
                    "zIndex": e.z_index,
                }
                for e in combo.entries
            ],
            "rarityScore": combo.rarity_score,
        })
    return records
