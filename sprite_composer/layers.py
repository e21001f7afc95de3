"""Parent/child layer forest and depth ordering for z-stacking.

Layers refer to their parent by name. The forest is built once: names are
mapped to integer ids, parents resolved to ids, cycles detected, and
depths precomputed. A parent name that does not resolve makes the layer a
root (logged, not raised). Cycles are tolerated: depth along a cycle
counts edges until the walk revisits a layer.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from sprite_composer.config import Layer

logger = logging.getLogger(__name__)

ROOT = -1


@dataclass
class LayerForest:
    """Resolved layer structure with precomputed depths."""
    layers: List[Layer]
    parent_ids: List[int]
    depths: List[int]
    cycles: List[List[str]] = field(default_factory=list)
    dangling: List[str] = field(default_factory=list)
    _ids: Dict[str, int] = field(default_factory=dict, repr=False)
    _children: List[List[int]] = field(default_factory=list, repr=False)

    @property
    def roots(self) -> List[Layer]:
        return [layer for layer, parent in zip(self.layers, self.parent_ids)
                if parent == ROOT]

    def parent_of(self, name: str) -> Optional[Layer]:
        parent = self.parent_ids[self._ids[name]]
        return None if parent == ROOT else self.layers[parent]

    def children_of(self, name: str) -> List[Layer]:
        return [self.layers[c] for c in self._children[self._ids[name]]]

    def depth_of(self, name: str) -> int:
        """Depth below the nearest root; 0 for roots and unknown names."""
        idx = self._ids.get(name)
        if idx is None:
            return 0
        return self.depths[idx]

    @property
    def ordered_sequence(self) -> List[Layer]:
        """Layers with at least one trait, by ascending depth.

        The sort is stable, so equal-depth layers keep their input order.
        """
        active = [i for i, layer in enumerate(self.layers) if layer.traits]
        return [self.layers[i] for i in sorted(active, key=lambda i: self.depths[i])]


def _find_cycles(parent_ids: Sequence[int]) -> List[List[int]]:
    """Cycles in a parent-pointer graph (each node has at most one parent)."""
    WHITE, GREY, BLACK = 0, 1, 2
    color = [WHITE] * len(parent_ids)
    cycles = []
    for start in range(len(parent_ids)):
        if color[start] != WHITE:
            continue
        path = []
        node = start
        while node != ROOT and color[node] == WHITE:
            color[node] = GREY
            path.append(node)
            node = parent_ids[node]
        if node != ROOT and color[node] == GREY:
            cycles.append(path[path.index(node):])
        for n in path:
            color[n] = BLACK
    return cycles


def _depth(idx: int, parent_ids: Sequence[int], known: Dict[int, int]) -> int:
    seen = set()
    steps = 0
    node = idx
    while True:
        if node in known:
            return steps + known[node]
        if node in seen:
            # walked back onto this path: stop counting
            return steps
        seen.add(node)
        parent = parent_ids[node]
        if parent == ROOT:
            return steps
        steps += 1
        node = parent


def build_forest(layers: Sequence[Layer]) -> LayerForest:
    """Resolve parent references and precompute depths.

    Raises:
        ValueError: two layers share a name.
    """
    layers = list(layers)
    ids: Dict[str, int] = {}
    for i, layer in enumerate(layers):
        if layer.name in ids:
            raise ValueError(f"duplicate layer name {layer.name!r}")
        ids[layer.name] = i

    parent_ids = []
    dangling = []
    for layer in layers:
        parent_name = layer.parent_layer_name
        if not parent_name:
            parent_ids.append(ROOT)
        elif parent_name in ids:
            parent_ids.append(ids[parent_name])
        else:
            logger.warning("Layer %r has unknown parent %r; treating it as a root",
                           layer.name, parent_name)
            dangling.append(layer.name)
            parent_ids.append(ROOT)

    children: List[List[int]] = [[] for _ in layers]
    for i, parent in enumerate(parent_ids):
        if parent != ROOT:
            children[parent].append(i)

    cycles = _find_cycles(parent_ids)
    on_cycle = set()
    for cycle in cycles:
        names = [layers[i].name for i in cycle]
        logger.warning("Layer cycle detected: %s", " -> ".join(names + names[:1]))
        on_cycle.update(cycle)

    # Depths reached through a cycle depend on where the walk starts, so
    # only acyclic chains are memoised.
    tainted = set(on_cycle)
    for i in range(len(layers)):
        node = i
        path = []
        while node != ROOT and node not in tainted and node not in path:
            path.append(node)
            node = parent_ids[node]
        if node != ROOT and (node in tainted or node in path):
            tainted.update(path)

    known: Dict[int, int] = {}
    depths = []
    for i in range(len(layers)):
        d = _depth(i, parent_ids, known)
        if i not in tainted:
            known[i] = d
        depths.append(d)

    return LayerForest(
        layers=layers,
        parent_ids=parent_ids,
        depths=depths,
        cycles=[[layers[i].name for i in c] for c in cycles],
        dangling=dangling,
        _ids=ids,
        _children=children,
    )
