"""Region fusion and small-region pruning over the adjacency graph."""
import logging
from typing import Dict, Set
import numpy as np

from msseg.types import Regions
from msseg.region_adjacency import build_region_adjacency

logger = logging.getLogger(__name__)


class _MergeForest:
    """Union-find over region labels carrying pooled modes and counts."""

    def __init__(self, regions: Regions):
        self.parent = np.arange(regions.region_count)
        self.modes = regions.modes.astype(np.float64).copy()
        self.counts = regions.mode_point_counts.astype(np.int64).copy()

    def find(self, label: int) -> int:
        root = label
        while self.parent[root] != root:
            root = self.parent[root]
        # Path compression
        while self.parent[label] != root:
            self.parent[label], label = root, self.parent[label]
        return int(root)

    def distance(self, a: int, b: int) -> float:
        return float(np.linalg.norm(self.modes[a] - self.modes[b]))

    def merge(self, keep: int, drop: int) -> None:
        """Pool ``drop`` into ``keep``: weighted-average mode, summed counts."""
        total = self.counts[keep] + self.counts[drop]
        self.modes[keep] = (
            self.counts[keep] * self.modes[keep] + self.counts[drop] * self.modes[drop]
        ) / total
        self.counts[keep] = total
        self.parent[drop] = keep

    def collapse(self, labels: np.ndarray) -> Regions:
        """Relabel pixels to their roots and renumber roots densely (ascending)."""
        roots = np.array([self.find(i) for i in range(len(self.parent))], dtype=np.int64)
        survivors = np.unique(roots)
        dense = np.zeros(len(self.parent), dtype=np.int64)
        dense[survivors] = np.arange(len(survivors))
        return Regions(
            labels=dense[roots][labels].astype(np.int32),
            modes=self.modes[survivors].copy(),
            mode_point_counts=self.counts[survivors].copy()
        )


def fuse_regions(regions: Regions, max_color_distance: float) -> Regions:
    """
    Merge adjacent regions whose modes are closer than a color threshold.

    Each pass rebuilds the adjacency graph and walks the candidate edges
    nearest first (ties by ascending label pair). The distance is re-checked on
    the pooled modes before every merge, so a region that already absorbed a
    neighbour in this pass may no longer qualify. The larger region survives
    (lower label on ties). Passes repeat until no adjacent pair is closer than
    the threshold.

    Args:
        regions: Regions from connected-component labeling
        max_color_distance: Range-space distance below which neighbours fuse

    Returns:
        Fused regions with dense labels
    """
    passes = 0
    while regions.region_count > 1:
        adjacency = build_region_adjacency(regions.labels, regions.region_count)
        edges = adjacency.edges
        if len(edges) == 0:
            break

        distances = np.linalg.norm(
            regions.modes[edges[:, 0]] - regions.modes[edges[:, 1]], axis=1
        )
        candidates = np.flatnonzero(distances < max_color_distance)
        if candidates.size == 0:
            break

        order = candidates[np.lexsort((
            edges[candidates, 1],
            edges[candidates, 0],
            distances[candidates]
        ))]

        forest = _MergeForest(regions)
        merged = 0
        for a, b in edges[order].tolist():
            ra, rb = forest.find(a), forest.find(b)
            if ra == rb or forest.distance(ra, rb) >= max_color_distance:
                continue
            if (forest.counts[ra], -ra) >= (forest.counts[rb], -rb):
                forest.merge(ra, rb)
            else:
                forest.merge(rb, ra)
            merged += 1

        if merged == 0:
            break

        passes += 1
        before = regions.region_count
        regions = forest.collapse(regions.labels)
        logger.debug(f"Fusion pass {passes}: {before} -> {regions.region_count} regions")

    logger.info(f"Region fusion: {regions.region_count} regions after {passes} passes")
    return regions


def prune_regions(regions: Regions, min_region_size: int) -> Regions:
    """
    Merge regions smaller than ``min_region_size`` into their closest neighbour.

    Small regions are visited in ascending (size, label) order. Each is pooled
    into the adjacent region whose mode is nearest in range space (lower label
    on ties). A small region without any neighbour is kept.

    Args:
        regions: Fused regions
        min_region_size: Minimum number of pixels a region must hold

    Returns:
        Pruned regions with dense labels
    """
    passes = 0
    while regions.region_count > 1:
        counts = regions.mode_point_counts
        small = np.flatnonzero(counts < min_region_size)
        if small.size == 0:
            break

        adjacency = build_region_adjacency(regions.labels, regions.region_count)
        forest = _MergeForest(regions)
        reach: Dict[int, Set[int]] = {
            int(s): set(adjacency.neighbors(int(s))) for s in small
        }

        merged = 0
        for s in sorted(small.tolist(), key=lambda s: (counts[s], s)):
            if forest.find(s) != s or forest.counts[s] >= min_region_size:
                continue

            candidates = {forest.find(n) for n in reach[s]} - {s}
            if not candidates:
                continue

            target = min(candidates, key=lambda r: (forest.distance(s, r), r))
            forest.merge(target, s)
            if target in reach:
                reach[target] |= reach[s]
            merged += 1

        if merged == 0:
            break

        passes += 1
        before = regions.region_count
        regions = forest.collapse(regions.labels)
        logger.debug(f"Pruning pass {passes}: {before} -> {regions.region_count} regions")

    logger.info(f"Region pruning: {regions.region_count} regions after {passes} passes")
    return regions
