"""Mean-shift mode seeking in the joint spatial/range feature space.

Every pixel starts a mean-shift trajectory at its own feature vector. The
kernel is a truncated uniform one: a lattice point is inside the window of the
current iterate y when its spatial distance to y is below sigma_s and its range
distance is below sigma_r. The iterate moves to the (optionally weighted) mean
of the window until the shift falls below threshold_converged or max_trial
iterations have been spent.

Speedup levels:
- NO_SPEEDUP: every pixel is iterated. All trajectories advance together as
  one vectorized batch.
- MEDIUM_SPEEDUP: pixels are visited in raster order. Lattice points the
  trajectory passes close to are attached to it and receive its mode; meeting
  a point whose mode is already known ends the trajectory with that mode.
- HIGH_SPEEDUP: as MEDIUM_SPEEDUP, and every point in the inner half of each
  window joins the basin of attraction of the trajectory.
"""
import logging
from typing import List, Optional, Tuple
import numpy as np

from msseg.types import FeatureSpace, ModeSeekResult, Speedup, ImageFormatError

logger = logging.getLogger(__name__)

# Fraction of the bandwidths below which a point is considered part of the
# trajectory (or the basin of attraction) of the current iterate.
SPEEDUP_FRACTION = 0.5

SPATIAL_DIMS = 2

_UNVISITED = 0
_ON_PATH = 1
_MODE_FOUND = 2


class ModeSeeker:
    """Find the converged mode of every pixel of a feature space."""

    def __init__(
        self,
        sigma_s: float,
        sigma_r: float,
        threshold_converged: float = 0.1,
        max_trial: int = 10,
        speedup: Speedup = Speedup.MEDIUM_SPEEDUP
    ):
        self.sigma_s = float(sigma_s)
        self.sigma_r = float(sigma_r)
        self.threshold_converged = float(threshold_converged)
        self.max_trial = int(max_trial)
        self.speedup = speedup

    def seek(
        self,
        features: FeatureSpace,
        weight_map: Optional[np.ndarray] = None
    ) -> ModeSeekResult:
        """
        Run mean shift from every pixel.

        Args:
            features: Feature space built from the image
            weight_map: Optional (H, W) non-negative multiplier of each lattice
                point's contribution to a window mean

        Returns:
            ModeSeekResult with one converged vector per pixel. The trials
            histogram counts pixels by iterations spent; index 0 holds pixels
            that inherited their mode without being iterated.
        """
        n = features.size
        if n == 0:
            return ModeSeekResult(
                converged=features.data.copy(),
                trials_to_converge=np.zeros(self.max_trial + 1, dtype=np.int64)
            )

        weights = self._prepare_weights(features, weight_map)

        if self.speedup is Speedup.NO_SPEEDUP:
            converged, iterations, empty = self._seek_all(features, weights)
        else:
            converged, iterations, empty = self._seek_with_inheritance(
                features,
                weights,
                basins=self.speedup is Speedup.HIGH_SPEEDUP
            )

        trials = np.bincount(iterations, minlength=self.max_trial + 1)
        iterated = int(np.count_nonzero(iterations))
        logger.info(
            f"Mode seeking ({self.speedup.value}): {n} pixels, {iterated} iterated, "
            f"{int(trials[-1])} hit max_trial={self.max_trial}"
        )
        if empty:
            logger.warning(f"Mode seeking: {empty} trajectories met an empty window")

        return ModeSeekResult(
            converged=converged,
            trials_to_converge=trials,
            empty_windows=empty
        )

    def _prepare_weights(
        self,
        features: FeatureSpace,
        weight_map: Optional[np.ndarray]
    ) -> np.ndarray:
        shape = (features.height, features.width)
        if weight_map is None:
            return np.ones(shape, dtype=np.float64)

        weights = np.asarray(weight_map, dtype=np.float64)
        if weights.shape != shape:
            raise ImageFormatError(
                f"Weight map shape {weights.shape} does not match image shape {shape}"
            )
        if not np.all(np.isfinite(weights)) or np.any(weights < 0):
            raise ImageFormatError("Weight map must hold finite, non-negative values")
        return weights

    # ------------------------------------------------------------------
    # NO_SPEEDUP: all trajectories in one batch
    # ------------------------------------------------------------------

    def _seek_all(
        self,
        features: FeatureSpace,
        weights: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, int]:
        data = features.data
        lattice = features.lattice()
        n = features.size

        y = data.copy()
        iterations = np.zeros(n, dtype=np.int64)
        empty = 0
        active = np.arange(n)

        for trial in range(1, self.max_trial + 1):
            if active.size == 0:
                break

            current = y[active]
            mean, support = self._batch_window_mean(current, lattice, weights)

            hollow = support <= 0
            if np.any(hollow):
                lost = active[hollow]
                y[lost] = data[lost]
                iterations[lost] = trial
                empty += len(lost)

            kept = ~hollow
            moved = active[kept]
            shift = np.linalg.norm(mean[kept] - current[kept], axis=1)
            y[moved] = mean[kept]

            done = shift < self.threshold_converged
            iterations[moved[done]] = trial
            active = moved[~done]

        iterations[active] = self.max_trial
        return y, iterations, empty

    def _batch_window_mean(
        self,
        points: np.ndarray,
        lattice: np.ndarray,
        weights: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Window means of many iterates at once, visiting one lattice offset at a time."""
        height, width, dims = lattice.shape
        hs2 = self.sigma_s ** 2
        hr2 = self.sigma_r ** 2
        reach = int(np.ceil(self.sigma_s + 0.5))

        base_r = np.rint(points[:, 0]).astype(np.int64)
        base_c = np.rint(points[:, 1]).astype(np.int64)

        sums = np.zeros_like(points)
        support = np.zeros(len(points), dtype=np.float64)

        for dr in range(-reach, reach + 1):
            rr = base_r + dr
            row_ok = (rr >= 0) & (rr < height)
            for dc in range(-reach, reach + 1):
                cc = base_c + dc
                idx = np.flatnonzero(row_ok & (cc >= 0) & (cc < width))
                if idx.size == 0:
                    continue

                neigh = lattice[rr[idx], cc[idx]]
                diff = neigh - points[idx]
                inside = (
                    (np.sum(diff[:, :SPATIAL_DIMS] ** 2, axis=1) < hs2)
                    & (np.sum(diff[:, SPATIAL_DIMS:] ** 2, axis=1) < hr2)
                )
                if not np.any(inside):
                    continue

                idx = idx[inside]
                w = weights[rr[idx], cc[idx]]
                sums[idx] += neigh[inside] * w[:, np.newaxis]
                support[idx] += w

        mean = points.copy()
        ok = support > 0
        mean[ok] = sums[ok] / support[ok, np.newaxis]
        return mean, support

    # ------------------------------------------------------------------
    # MEDIUM_SPEEDUP / HIGH_SPEEDUP: raster order with mode inheritance
    # ------------------------------------------------------------------

    def _seek_with_inheritance(
        self,
        features: FeatureSpace,
        weights: np.ndarray,
        basins: bool
    ) -> Tuple[np.ndarray, np.ndarray, int]:
        data = features.data
        lattice = features.lattice()
        width = features.width
        n = features.size

        converged = data.copy()
        iterations = np.zeros(n, dtype=np.int64)
        table = np.full(n, _UNVISITED, dtype=np.int8)
        near_r2 = (SPEEDUP_FRACTION * self.sigma_r) ** 2
        empty = 0

        for i in range(n):
            if table[i] == _MODE_FOUND:
                continue

            y = data[i].copy()
            path: List[int] = []
            trial = 0

            while trial < self.max_trial:
                trial += 1
                mean, basin = self._window_mean(y, lattice, weights, basins)
                if mean is None:
                    y = data[i].copy()
                    empty += 1
                    # Attached points get trajectories of their own
                    if path:
                        table[np.asarray(path, dtype=np.int64)] = _UNVISITED
                        path = []
                    break

                if basin is not None:
                    fresh = basin[(table[basin] == _UNVISITED) & (basin != i)]
                    table[fresh] = _ON_PATH
                    path.extend(fresh.tolist())

                shift = np.linalg.norm(mean - y)
                y = mean
                if shift < self.threshold_converged:
                    break

                # Lattice point nearest to the iterate
                candidate = int(np.rint(y[0])) * width + int(np.rint(y[1]))
                if candidate == i or table[candidate] == _ON_PATH:
                    continue
                if np.sum((data[candidate, SPATIAL_DIMS:] - y[SPATIAL_DIMS:]) ** 2) >= near_r2:
                    continue

                if table[candidate] == _UNVISITED:
                    table[candidate] = _ON_PATH
                    path.append(candidate)
                else:
                    # Candidate already owns a mode; adopt it
                    y = converged[candidate].copy()
                    break

            iterations[i] = trial
            converged[i] = y
            table[i] = _MODE_FOUND
            if path:
                members = np.asarray(path, dtype=np.int64)
                converged[members] = y
                table[members] = _MODE_FOUND

        return converged, iterations, empty

    def _window_mean(
        self,
        y: np.ndarray,
        lattice: np.ndarray,
        weights: np.ndarray,
        collect_basin: bool
    ) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        """Window mean of a single iterate, plus its basin members when asked."""
        height, width, _ = lattice.shape
        hs = self.sigma_s

        r0 = max(int(np.ceil(y[0] - hs)), 0)
        r1 = min(int(np.floor(y[0] + hs)), height - 1)
        c0 = max(int(np.ceil(y[1] - hs)), 0)
        c1 = min(int(np.floor(y[1] + hs)), width - 1)
        if r0 > r1 or c0 > c1:
            return None, None

        block = lattice[r0:r1 + 1, c0:c1 + 1]
        diff = block - y
        spatial = np.sum(diff[..., :SPATIAL_DIMS] ** 2, axis=-1)
        colour = np.sum(diff[..., SPATIAL_DIMS:] ** 2, axis=-1)
        inside = (spatial < hs ** 2) & (colour < self.sigma_r ** 2)

        w = weights[r0:r1 + 1, c0:c1 + 1] * inside
        total = w.sum()
        if total <= 0:
            return None, None

        mean = np.tensordot(w, block, axes=([0, 1], [0, 1])) / total

        basin = None
        if collect_basin:
            near = (
                inside
                & (spatial < (SPEEDUP_FRACTION * hs) ** 2)
                & (colour < (SPEEDUP_FRACTION * self.sigma_r) ** 2)
            )
            rows, cols = np.nonzero(near)
            basin = (rows + r0) * width + (cols + c0)

        return mean, basin
