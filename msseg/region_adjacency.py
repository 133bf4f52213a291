"""Region adjacency graph over a label map."""
from dataclasses import dataclass, field
from typing import List, Optional, Set
import numpy as np


@dataclass
class RegionAdjacency:
    """Neighbour sets per label plus the unique undirected edge list."""
    region_count: int
    edges: np.ndarray  # (E, 2) with edges[:, 0] < edges[:, 1]
    neighbor_sets: List[Set[int]] = field(default_factory=list)

    def neighbors(self, label: int) -> Set[int]:
        return self.neighbor_sets[label]

    def __len__(self) -> int:
        return len(self.edges)


def build_region_adjacency(
    labels: np.ndarray,
    region_count: Optional[int] = None
) -> RegionAdjacency:
    """
    Build adjacency for a label map.

    Each pixel is compared with its right and lower neighbour (4-connectivity);
    every differing pair is an edge. Duplicates and self loops are dropped.

    Args:
        labels: (H, W) array of dense labels
        region_count: Number of labels; inferred from the map if None

    Returns:
        RegionAdjacency
    """
    labels = np.asarray(labels)
    if region_count is None:
        region_count = int(labels.max()) + 1 if labels.size else 0

    horizontal = (labels[:, :-1], labels[:, 1:])
    vertical = (labels[:-1, :], labels[1:, :])

    pairs = []
    for a, b in (horizontal, vertical):
        differ = a != b
        if np.any(differ):
            pairs.append(np.stack([a[differ], b[differ]], axis=1))

    if pairs:
        pairs = np.concatenate(pairs).astype(np.int64)
        pairs.sort(axis=1)
        edges = np.unique(pairs, axis=0)
    else:
        edges = np.zeros((0, 2), dtype=np.int64)

    neighbor_sets: List[Set[int]] = [set() for _ in range(region_count)]
    for a, b in edges.tolist():
        neighbor_sets[a].add(b)
        neighbor_sets[b].add(a)

    return RegionAdjacency(
        region_count=region_count,
        edges=edges,
        neighbor_sets=neighbor_sets
    )
