"""Core types for the mean-shift segmentation pipeline."""
from dataclasses import dataclass, field
from typing import Optional, List, Tuple
from enum import Enum, IntEnum
import numpy as np


class Speedup(Enum):
    """Trade-off between mode-seeking fidelity and cost."""
    NO_SPEEDUP = "none"
    MEDIUM_SPEEDUP = "medium"
    HIGH_SPEEDUP = "high"


class ClassicOption(IntEnum):
    """Degree of segmentation for the classic algorithm."""
    QUANTIZATION = 0
    OVERSEGMENTATION = 1
    UNDERSEGMENTATION = 2


# (top, left, bottom, right), inclusive
Rect = Tuple[int, int, int, int]


@dataclass
class ClassicConfig:
    """Parameters consulted only by the classic histogram-sampling algorithm.

    The three-element tuples are indexed by ``ClassicOption``.
    """
    option: ClassicOption = ClassicOption.UNDERSEGMENTATION

    # A single (0, 0, 0, 0) rectangle (or an empty list) selects auto-segmentation
    rects: List[Rect] = field(default_factory=lambda: [(0, 0, 0, 0)])

    trial_to_converge: int = 15
    class_threshold: Tuple[float, float, float] = (2.5, 5.0, 10.0)  # promille
    max_trial_random_color: int = 25
    rect_radius: Tuple[float, float, float] = (8.0, 6.0, 4.0)
    auto_radius: Tuple[float, float, float] = (2.0, 3.0, 4.0)
    min_var: float = 0.0
    random_state: int = 42

    @property
    def auto_segmentation(self) -> bool:
        return not self.rects or (len(self.rects) == 1 and tuple(self.rects[0]) == (0, 0, 0, 0))


@dataclass
class MeanShiftConfig:
    """Configuration for mean-shift segmentation."""
    # Variant selection
    classic_algorithm: bool = False

    # Density mode seeking
    speedup: Speedup = Speedup.MEDIUM_SPEEDUP
    sigma_s: float = 5.0
    sigma_r: float = 5.0
    threshold_converged: float = 0.1
    max_trial: int = 10

    # Region post-processing
    max_neighbour_color_distance: float = 3.0
    min_region_size: int = 15

    classic: ClassicConfig = field(default_factory=ClassicConfig)

    def validate(self) -> None:
        """Check every parameter before any work is attempted.

        Raises:
            ConfigurationError: If a parameter is out of range
        """
        if not self.sigma_s > 0:
            raise ConfigurationError(f"sigma_s must be positive, got {self.sigma_s}")
        if not self.sigma_r > 0:
            raise ConfigurationError(f"sigma_r must be positive, got {self.sigma_r}")
        if not self.threshold_converged > 0:
            raise ConfigurationError(
                f"threshold_converged must be positive, got {self.threshold_converged}"
            )
        if not self.max_neighbour_color_distance > 0:
            raise ConfigurationError(
                "max_neighbour_color_distance must be positive, "
                f"got {self.max_neighbour_color_distance}"
            )
        if self.min_region_size < 1:
            raise ConfigurationError(
                f"min_region_size must be at least 1, got {self.min_region_size}"
            )
        if self.max_trial < 1:
            raise ConfigurationError(f"max_trial must be at least 1, got {self.max_trial}")
        if not isinstance(self.speedup, Speedup):
            raise ConfigurationError(f"Unknown speedup: {self.speedup!r}")

        if self.classic_algorithm:
            self._validate_classic()

    def _validate_classic(self) -> None:
        classic = self.classic
        try:
            ClassicOption(classic.option)
        except ValueError:
            raise ConfigurationError(f"Unknown classic option: {classic.option!r}")
        if classic.trial_to_converge < 1:
            raise ConfigurationError("trial_to_converge must be at least 1")
        if classic.max_trial_random_color < 1:
            raise ConfigurationError("max_trial_random_color must be at least 1")
        for name in ("class_threshold", "rect_radius", "auto_radius"):
            values = getattr(classic, name)
            if len(values) != len(ClassicOption):
                raise ConfigurationError(f"{name} needs one value per option, got {values}")
            if any(v <= 0 for v in values):
                raise ConfigurationError(f"{name} values must be positive, got {values}")
        if classic.min_var < 0:
            raise ConfigurationError(f"min_var must not be negative, got {classic.min_var}")
        for rect in classic.rects:
            if len(rect) != 4:
                raise ConfigurationError(f"Rectangles are (top, left, bottom, right), got {rect}")


@dataclass
class FeatureSpace:
    """Joint spatial/range feature vectors, one row per pixel in raster order."""
    data: np.ndarray  # (N, spatial_dims + range_dims)
    height: int
    width: int
    spatial_dims: int = 2

    @property
    def range_dims(self) -> int:
        return self.data.shape[1] - self.spatial_dims

    @property
    def dims(self) -> int:
        return self.data.shape[1]

    @property
    def size(self) -> int:
        return self.height * self.width

    def lattice(self) -> np.ndarray:
        """View of the features arranged on the image grid (H, W, D)."""
        return self.data.reshape(self.height, self.width, self.dims)


@dataclass
class ModeSeekResult:
    """Per-pixel converged feature vectors plus convergence diagnostics."""
    converged: np.ndarray            # (N, D)
    trials_to_converge: np.ndarray   # histogram, index = iterations used
    empty_windows: int = 0
    spatial_dims: int = 2

    @property
    def filtered_range(self) -> np.ndarray:
        """Range part of the converged vectors (N, R)."""
        return self.converged[:, self.spatial_dims:]


@dataclass
class Regions:
    """Label map with one mode and pixel tally per label."""
    labels: np.ndarray             # (H, W) int32, dense in [0, region_count)
    modes: np.ndarray              # (region_count, R) range values
    mode_point_counts: np.ndarray  # (region_count,)

    @property
    def region_count(self) -> int:
        return len(self.mode_point_counts)


@dataclass
class SegmentationResult:
    """Everything a segmentation run produces."""
    labels: np.ndarray
    palette: np.ndarray                        # (K, 3) uint8
    mode_point_counts: np.ndarray
    modes: np.ndarray
    segmented_image: Optional[np.ndarray] = None
    filtered_image: Optional[np.ndarray] = None
    trials_to_converge: Optional[np.ndarray] = None
    empty_windows: int = 0

    @property
    def region_count(self) -> int:
        return len(self.palette)


@dataclass
class IngestResult:
    """Result from raster image ingestion."""
    image_rgb: np.ndarray  # (H, W, 3) uint8
    original_path: str
    width: int
    height: int
    has_alpha: bool


class SegmentationError(Exception):
    """Base exception for segmentation errors."""
    pass


class ConfigurationError(SegmentationError):
    """Raised when parameters are rejected before processing."""
    pass


class AllocationError(SegmentationError):
    """Raised when a working buffer could not be allocated."""
    pass


class ImageFormatError(SegmentationError):
    """Raised when an input image does not have a supported layout."""
    pass
