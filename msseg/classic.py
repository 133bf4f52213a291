"""Classic mean-shift color segmentation by histogram sampling.

Colors are clustered in range space. A seed is drawn from the densest of
several random 3x3 neighbourhoods, shifted to the mean of the colors inside a
sphere, and accepted as a class when enough of the remaining pixels fall
inside it. After discovery, every pixel is mapped to its nearest class and,
unless plain quantization was requested, connected fragments smaller than the
minimum region size are handed to the class that surrounds them.

Labels produced here are color classes; a class may span several
disconnected areas of the image.
"""
import logging
from typing import List, Optional, Tuple
import numpy as np
from scipy import ndimage

from msseg.types import ClassicConfig, ClassicOption, Regions, Rect

logger = logging.getLogger(__name__)

MAX_AUTO_CLASSES = 50

# Selected 8-neighbours needed to pull a nearby unselected pixel into a class
NEIGHBOURS_REQUIRED = {
    ClassicOption.QUANTIZATION: 3,
    ClassicOption.OVERSEGMENTATION: 2,
    ClassicOption.UNDERSEGMENTATION: 1,
}

_EIGHT_NEIGHBOURS = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.int32)


class ClassicClusterer:
    """Histogram-sampling color clustering."""

    def __init__(
        self,
        config: ClassicConfig,
        max_trial: int = 10,
        min_region_size: int = 15,
        threshold_converged: float = 0.1
    ):
        self.config = config
        self.option = ClassicOption(config.option)
        self.max_trial = max_trial
        self.min_region_size = min_region_size
        self.threshold_converged = threshold_converged

    def cluster(self, range_image: np.ndarray) -> Regions:
        """
        Cluster an (H, W, 3) range image into color classes.

        Args:
            range_image: Luv (or caller-provided) channel values

        Returns:
            Regions whose labels are dense class indices and whose modes are
            the class mean colors
        """
        height, width, range_dims = range_image.shape
        n = height * width
        if n == 0:
            return Regions(
                labels=np.zeros((height, width), dtype=np.int32),
                modes=np.zeros((0, range_dims), dtype=np.float64),
                mode_point_counts=np.zeros(0, dtype=np.int64)
            )

        rng = np.random.default_rng(self.config.random_state)
        raw = np.asarray(range_image, dtype=np.float64)
        grid = np.rint(raw)
        colors = grid.reshape(-1, range_dims)

        # Color histogram: distinct colors and the color index of every pixel
        histogram, pixel_color = np.unique(colors, axis=0, return_inverse=True)
        pixel_color = np.asarray(pixel_color).ravel()

        scale = self._variance_scale(colors)
        threshold = self.config.class_threshold[self.option] * n / 1000.0
        if self.config.auto_segmentation:
            radius = self.config.auto_radius[self.option] * scale
        else:
            radius = self.config.rect_radius[self.option] * scale
        logger.info(
            f"Classic clustering ({self.option.name.lower()}): radius={radius:.2f}, "
            f"class threshold={threshold:.1f} pixels, {len(histogram)} distinct colors"
        )

        finder = _ClassFinder(
            grid=grid,
            histogram=histogram,
            pixel_color=pixel_color,
            radius=radius,
            threshold=threshold,
            required_neighbours=NEIGHBOURS_REQUIRED[self.option],
            trial_to_converge=self.config.trial_to_converge,
            samples=self.config.max_trial_random_color,
            threshold_converged=self.threshold_converged,
            rng=rng
        )
        if self.config.auto_segmentation:
            classes = self._auto_classes(finder)
        else:
            classes = self._rect_classes(finder, self.config.rects, radius)

        if not classes:
            logger.warning("Classic clustering found no class, using the image mean")
            classes = [colors.mean(axis=0)]

        centers = np.array(classes)
        labels = _nearest(colors, centers)
        centers, labels = self._eliminate_small_classes(colors, centers, labels, threshold)

        # Replace each class color by the mean of its members
        centers = _class_means(colors, labels, len(centers))
        labels = _nearest(colors, centers)

        labels = labels.reshape(height, width)
        if self.option != ClassicOption.QUANTIZATION and self.min_region_size > 1:
            labels = _eliminate_regions(labels, self.min_region_size)

        present, dense = np.unique(labels, return_inverse=True)
        labels = np.asarray(dense).reshape(height, width).astype(np.int32)
        # Class modes from the unrounded values
        modes = _class_means(raw.reshape(-1, range_dims), labels.ravel(), len(present))
        counts = np.bincount(labels.ravel(), minlength=len(present)).astype(np.int64)

        logger.info(f"Classic clustering: {len(present)} classes")
        return Regions(labels=labels, modes=modes, mode_point_counts=counts)

    def _variance_scale(self, colors: np.ndarray) -> float:
        variance = colors.var(axis=0).sum()
        return max(self.config.min_var, float(np.sqrt(variance / 100.0)))

    def _auto_classes(self, finder: "_ClassFinder") -> List[np.ndarray]:
        remaining = np.ones(finder.grid.shape[:2], dtype=bool)
        classes: List[np.ndarray] = []
        failures = 0

        while len(classes) < MAX_AUTO_CLASSES and failures < self.max_trial:
            left = int(remaining.sum())
            if left == 0 or left < finder.threshold:
                break

            found = finder.grow(remaining, remaining)
            if found is None:
                failures += 1
                continue

            center, selected = found
            classes.append(center)
            remaining &= ~selected
            failures = 0
            logger.debug(f"Class {len(classes)}: {int(selected.sum())} pixels, {left} were left")

        return classes

    def _rect_classes(
        self,
        finder: "_ClassFinder",
        rects: List[Rect],
        radius: float
    ) -> List[np.ndarray]:
        height, width = finder.grid.shape[:2]
        remaining = np.ones((height, width), dtype=bool)
        classes: List[np.ndarray] = []

        for rect in rects:
            top, left, bottom, right = rect
            area = np.zeros((height, width), dtype=bool)
            area[max(top, 0):min(bottom, height - 1) + 1, max(left, 0):min(right, width - 1) + 1] = True

            for _ in range(self.max_trial):
                sample = remaining & area
                if not sample.any():
                    break
                found = finder.grow(sample, remaining)
                if found is None:
                    continue

                center, selected = found
                # A rectangle whose color was already found adds nothing
                if any(np.linalg.norm(center - c) < radius for c in classes):
                    logger.debug(f"Rectangle {rect}: same cluster as an earlier rectangle")
                else:
                    classes.append(center)
                    remaining &= ~selected
                break

        return classes

    def _eliminate_small_classes(
        self,
        colors: np.ndarray,
        centers: np.ndarray,
        labels: np.ndarray,
        threshold: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        while len(centers) > 1:
            counts = np.bincount(labels, minlength=len(centers))
            smallest = int(np.argmin(counts))
            if counts[smallest] >= threshold:
                break
            centers = np.delete(centers, smallest, axis=0)
            labels = _nearest(colors, centers)
        return centers, labels


class _ClassFinder:
    """Seed sampling, mode shifting and pixel selection for one class search."""

    def __init__(
        self,
        grid: np.ndarray,
        histogram: np.ndarray,
        pixel_color: np.ndarray,
        radius: float,
        threshold: float,
        required_neighbours: int,
        trial_to_converge: int,
        samples: int,
        threshold_converged: float,
        rng: np.random.Generator
    ):
        self.grid = grid
        self.histogram = histogram
        self.pixel_color = pixel_color
        self.radius2 = radius ** 2
        self.threshold = threshold
        self.required_neighbours = required_neighbours
        self.trial_to_converge = trial_to_converge
        self.samples = samples
        self.threshold_converged = threshold_converged
        self.rng = rng

    def grow(
        self,
        sample_area: np.ndarray,
        remaining: np.ndarray
    ) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Try to find one class; None when too few pixels would join it."""
        weights = np.bincount(
            self.pixel_color[remaining.ravel()], minlength=len(self.histogram)
        ).astype(np.float64)

        seed = self._sample_seed(sample_area, remaining, weights)
        center = self._shift_to_mode(seed, weights)

        distance2 = np.sum((self.grid - center) ** 2, axis=-1)
        selected = remaining & (distance2 <= self.radius2)
        if not selected.any():
            return None

        support = ndimage.convolve(
            selected.astype(np.int32), _EIGHT_NEIGHBOURS, mode='constant', cval=0
        )
        selected |= (
            remaining
            & (distance2 <= 4.0 * self.radius2)
            & (support >= self.required_neighbours)
        )

        if selected.sum() < self.threshold:
            return None
        return center, selected

    def _sample_seed(
        self,
        sample_area: np.ndarray,
        remaining: np.ndarray,
        weights: np.ndarray
    ) -> np.ndarray:
        """Densest of several random 3x3 neighbourhood means."""
        height, width = remaining.shape
        candidates = np.flatnonzero(sample_area)

        best = None
        best_density = -1.0
        for pick in self.rng.choice(candidates, size=self.samples):
            r, c = divmod(int(pick), width)
            window = (slice(max(r - 1, 0), r + 2), slice(max(c - 1, 0), c + 2))
            mean = self.grid[window][remaining[window]].mean(axis=0)

            inside = np.sum((self.histogram - mean) ** 2, axis=1) <= self.radius2
            density = weights[inside].sum()
            if density > best_density:
                best, best_density = mean, density

        return best

    def _shift_to_mode(self, seed: np.ndarray, weights: np.ndarray) -> np.ndarray:
        center = seed
        for _ in range(self.trial_to_converge):
            inside = np.sum((self.histogram - center) ** 2, axis=1) <= self.radius2
            w = weights * inside
            total = w.sum()
            if total <= 0:
                break
            shifted = w @ self.histogram / total
            moved = np.linalg.norm(shifted - center)
            center = shifted
            if moved < self.threshold_converged:
                break
        return center


def _nearest(colors: np.ndarray, centers: np.ndarray) -> np.ndarray:
    distance2 = np.sum((colors[:, np.newaxis, :] - centers[np.newaxis, :, :]) ** 2, axis=-1)
    return np.argmin(distance2, axis=1)


def _class_means(colors: np.ndarray, labels: np.ndarray, count: int) -> np.ndarray:
    sums = np.zeros((count, colors.shape[1]), dtype=np.float64)
    np.add.at(sums, labels, colors)
    tally = np.bincount(labels, minlength=count).astype(np.float64)
    means = np.zeros_like(sums)
    filled = tally > 0
    means[filled] = sums[filled] / tally[filled, np.newaxis]
    return means


def _eliminate_regions(labels: np.ndarray, min_region_size: int) -> np.ndarray:
    """Give every 4-connected fragment below the size limit to its dominant neighbour class."""
    labels = labels.copy()
    changed = True
    while changed:
        changed = False
        for k in np.unique(labels):
            components, count = ndimage.label(labels == k)
            if count == 0:
                continue
            sizes = np.bincount(components.ravel())
            objects = ndimage.find_objects(components)

            for index in np.flatnonzero(sizes[1:] < min_region_size):
                box = objects[index]
                window = tuple(slice(max(s.start - 1, 0), s.stop + 1) for s in box)
                fragment = components[window] == index + 1
                border = ndimage.binary_dilation(fragment) & ~fragment

                neighbours = labels[window][border]
                neighbours = neighbours[neighbours != k]
                if neighbours.size == 0:
                    continue

                labels[window][fragment] = np.bincount(neighbours).argmax()
                changed = True

    return labels
