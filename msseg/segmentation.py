"""Mean-shift segmentation entry points.

Two non-interoperable algorithms sit behind the same ``Segmenter`` contract:

- ``DensitySegmenter``: per-pixel mode seeking in the joint spatial/range
  space, connected-component labeling, region fusion and pruning.
- ``ClassicSegmenter``: histogram-sampling color clustering.

``MeanShiftSegmentation`` validates the configuration, converts the input to
the range space, runs the selected segmenter inside a scoped workspace and
assembles the outputs.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple
import numpy as np

from msseg.types import (
    MeanShiftConfig,
    ModeSeekResult,
    Regions,
    SegmentationResult,
    AllocationError,
    ImageFormatError,
)
from msseg.color_space import rgb_to_luv, luv_to_rgb, channels_to_uint8
from msseg.raster_ingest import ingest_from_array
from msseg.feature_space import build_feature_space
from msseg.mode_seeker import ModeSeeker
from msseg.connectivity import connect
from msseg.region_merger import fuse_regions, prune_regions
from msseg.output import ToDisplay, assemble_output, render_filtered
from msseg.classic import ClassicClusterer

logger = logging.getLogger(__name__)

# Upper bound on filter rounds spent looking for a fixed point
MAX_FILTER_ROUNDS = 100


class Workspace:
    """Large buffers owned by a single segmentation call."""

    def __init__(self):
        self._buffers: Dict[str, Any] = {}

    def hold(self, name: str, buffer: Any) -> Any:
        self._buffers[name] = buffer
        return buffer

    def release(self) -> None:
        self._buffers.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._buffers


@contextmanager
def scoped_workspace() -> Iterator[Workspace]:
    """Yield a workspace that is emptied on every exit path.

    Raises:
        AllocationError: If a buffer could not be allocated
    """
    workspace = Workspace()
    try:
        yield workspace
    except MemoryError as e:
        raise AllocationError(f"Could not allocate segmentation buffers: {e}") from e
    finally:
        workspace.release()


class Segmenter(ABC):
    """Common contract of the segmentation algorithms."""

    def __init__(self, config: MeanShiftConfig):
        self.config = config

    @abstractmethod
    def segment(
        self,
        range_image: np.ndarray,
        workspace: Workspace,
        weight_map: Optional[np.ndarray] = None
    ) -> Tuple[Regions, Optional[ModeSeekResult]]:
        """Segment an (H, W, R) range image."""


class DensitySegmenter(Segmenter):
    """Mode seeking, connected components, fusion and pruning."""

    def mode_seeker(self) -> ModeSeeker:
        return ModeSeeker(
            sigma_s=self.config.sigma_s,
            sigma_r=self.config.sigma_r,
            threshold_converged=self.config.threshold_converged,
            max_trial=self.config.max_trial,
            speedup=self.config.speedup
        )

    def segment(
        self,
        range_image: np.ndarray,
        workspace: Workspace,
        weight_map: Optional[np.ndarray] = None
    ) -> Tuple[Regions, Optional[ModeSeekResult]]:
        height, width = range_image.shape[:2]

        features = workspace.hold("features", build_feature_space(range_image))
        mode_seek = workspace.hold("mode_seek", self.mode_seeker().seek(features, weight_map))

        regions = workspace.hold("regions", connect(mode_seek.filtered_range, height, width))
        regions = fuse_regions(regions, self.config.max_neighbour_color_distance)
        regions = prune_regions(regions, self.config.min_region_size)
        return regions, mode_seek


class ClassicSegmenter(Segmenter):
    """Histogram-sampling color clustering; produces no filtered image."""

    def segment(
        self,
        range_image: np.ndarray,
        workspace: Workspace,
        weight_map: Optional[np.ndarray] = None
    ) -> Tuple[Regions, Optional[ModeSeekResult]]:
        if weight_map is not None:
            logger.warning("The classic algorithm ignores the weight map")

        clusterer = ClassicClusterer(
            self.config.classic,
            max_trial=self.config.max_trial,
            min_region_size=self.config.min_region_size,
            threshold_converged=self.config.threshold_converged
        )
        regions = workspace.hold("regions", clusterer.cluster(range_image))
        return regions, None


def create_segmenter(config: MeanShiftConfig) -> Segmenter:
    """Pick the algorithm selected by ``config.classic_algorithm``."""
    if config.classic_algorithm:
        return ClassicSegmenter(config)
    return DensitySegmenter(config)


class MeanShiftSegmentation:
    """Mean-shift image segmentation."""

    def __init__(self, config: Optional[MeanShiftConfig] = None):
        self.config = config or MeanShiftConfig()

    def run(
        self,
        image: np.ndarray,
        weight_map: Optional[np.ndarray] = None,
        render_images: bool = True
    ) -> SegmentationResult:
        """
        Segment an RGB image, returning every output and diagnostic.

        Args:
            image: (H, W, 3) / (H, W, 4) / (H, W) image, uint8 or float in [0, 1]
            weight_map: Optional (H, W) weights for the mode-seeking windows
            render_images: Whether to render segmented and filtered images

        Returns:
            SegmentationResult; empty labels and palette for a zero-sized image

        Raises:
            ConfigurationError: If the configuration is invalid
            ImageFormatError: If the image layout is not supported
            AllocationError: If working buffers could not be allocated
        """
        self.config.validate()
        rgb = ingest_from_array(image).image_rgb

        with scoped_workspace() as workspace:
            luv = workspace.hold("luv", rgb_to_luv(rgb))
            return self._segment(luv, luv_to_rgb, workspace, weight_map, render_images)

    def segment(self, image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Segment an image into (labels, palette)."""
        result = self.run(image, render_images=False)
        return result.labels, result.palette

    def segment_images(
        self,
        image: np.ndarray
    ) -> Tuple[Optional[np.ndarray], np.ndarray, np.ndarray, np.ndarray]:
        """
        Segment an image into (filtered, segmented, labels, palette).

        The filtered image is None for the classic algorithm.
        """
        result = self.run(image)
        return result.filtered_image, result.segmented_image, result.labels, result.palette

    def segment_channels(
        self,
        channel1: np.ndarray,
        channel2: np.ndarray,
        channel3: np.ndarray
    ) -> np.ndarray:
        """
        Segment three pre-split channels without any color conversion.

        The channels are used directly as the range part of the feature space,
        so the bandwidths are interpreted in the channels' own units.

        Returns:
            (H, W) label map
        """
        self.config.validate()
        channels = [np.asarray(c, dtype=np.float64) for c in (channel1, channel2, channel3)]
        if any(c.ndim != 2 for c in channels):
            raise ImageFormatError("Channels must be 2D arrays")
        if len({c.shape for c in channels}) != 1:
            raise ImageFormatError(
                f"Channel shapes differ: {[c.shape for c in channels]}"
            )

        with scoped_workspace() as workspace:
            range_image = workspace.hold("channels", np.stack(channels, axis=-1))
            result = self._segment(range_image, channels_to_uint8, workspace, None, False)
        return result.labels

    def filter(
        self,
        image: np.ndarray,
        weight_map: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Mean-shift filter an image: every pixel takes its converged color.

        Only the mode-seeking stage runs (labeling, fusion and pruning are
        skipped). The density mode seeker is used whatever the value of
        ``classic_algorithm``.

        Mode seeking is repeated on the rounded 8-bit output until a round
        changes no pixel, so filtering the result again returns it unchanged.
        At most ``MAX_FILTER_ROUNDS`` rounds are run.

        Returns:
            (H, W, 3) uint8 filtered image
        """
        self.config.validate()
        rgb = ingest_from_array(image).image_rgb
        height, width = rgb.shape[:2]
        if height * width == 0:
            return np.zeros((height, width, 3), dtype=np.uint8)

        seeker = DensitySegmenter(self.config).mode_seeker()
        filtered = rgb
        with scoped_workspace() as workspace:
            for rounds in range(1, MAX_FILTER_ROUNDS + 1):
                luv = workspace.hold("luv", rgb_to_luv(filtered))
                features = workspace.hold("features", build_feature_space(luv))
                mode_seek = workspace.hold("mode_seek", seeker.seek(features, weight_map))
                rendered = render_filtered(mode_seek, height, width, luv_to_rgb)
                if np.array_equal(rendered, filtered):
                    break
                filtered = rendered
            else:
                logger.warning(
                    f"Filter did not reach a fixed point in {MAX_FILTER_ROUNDS} rounds"
                )

        logger.info(f"Filter: {width}x{height} image, {rounds} rounds")
        return filtered

    def _segment(
        self,
        range_image: np.ndarray,
        to_display: ToDisplay,
        workspace: Workspace,
        weight_map: Optional[np.ndarray],
        render_images: bool
    ) -> SegmentationResult:
        height, width = range_image.shape[:2]
        if height * width == 0:
            logger.info("Empty image, nothing to segment")
            return _empty_result(height, width, range_image.shape[2], render_images)

        segmenter = create_segmenter(self.config)
        regions, mode_seek = segmenter.segment(range_image, workspace, weight_map)
        result = assemble_output(regions, to_display, mode_seek, render_images)

        logger.info(
            f"{type(segmenter).__name__}: {width}x{height} image -> "
            f"{result.region_count} regions"
        )
        return result


def _empty_result(
    height: int,
    width: int,
    range_dims: int,
    render_images: bool
) -> SegmentationResult:
    image = np.zeros((height, width, 3), dtype=np.uint8) if render_images else None
    return SegmentationResult(
        labels=np.zeros((height, width), dtype=np.int32),
        palette=np.zeros((0, 3), dtype=np.uint8),
        mode_point_counts=np.zeros(0, dtype=np.int64),
        modes=np.zeros((0, range_dims), dtype=np.float64),
        segmented_image=image,
        filtered_image=image
    )
