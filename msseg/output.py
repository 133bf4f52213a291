"""Assembly of the caller-visible segmentation outputs."""
from typing import Callable, Optional
import numpy as np

from msseg.types import Regions, SegmentationResult, ModeSeekResult

ToDisplay = Callable[[np.ndarray], np.ndarray]


def assemble_output(
    regions: Regions,
    to_display: ToDisplay,
    mode_seek: Optional[ModeSeekResult] = None,
    render_images: bool = True
) -> SegmentationResult:
    """
    Produce labels, palette and images from the final regions.

    Args:
        regions: Pruned regions
        to_display: Converts (..., R) range values to (..., 3) uint8 colors
        mode_seek: Mode-seeking output; when given, the filtered image is
            rendered from each pixel's own converged value
        render_images: Whether to render the segmented (and filtered) image

    Returns:
        SegmentationResult with labels renumbered contiguously from 0
    """
    height, width = regions.labels.shape
    present, labels = np.unique(regions.labels, return_inverse=True)
    labels = np.asarray(labels).reshape(height, width).astype(np.int32)

    modes = regions.modes[present] if len(present) else regions.modes[:0]
    counts = regions.mode_point_counts[present] if len(present) else regions.mode_point_counts[:0]

    palette = to_display(modes) if len(modes) else np.zeros((0, 3), dtype=np.uint8)

    segmented = None
    filtered = None
    if render_images:
        segmented = palette[labels] if len(palette) else np.zeros((height, width, 3), dtype=np.uint8)
        if mode_seek is not None:
            filtered = render_filtered(mode_seek, height, width, to_display)

    result = SegmentationResult(
        labels=labels,
        palette=palette,
        mode_point_counts=counts,
        modes=modes,
        segmented_image=segmented,
        filtered_image=filtered
    )
    if mode_seek is not None:
        result.trials_to_converge = mode_seek.trials_to_converge
        result.empty_windows = mode_seek.empty_windows
    return result


def render_filtered(
    mode_seek: ModeSeekResult,
    height: int,
    width: int,
    to_display: ToDisplay
) -> np.ndarray:
    """Render each pixel with its own converged range value."""
    if height * width == 0:
        return np.zeros((height, width, 3), dtype=np.uint8)
    filtered = mode_seek.filtered_range.reshape(height, width, -1)
    return to_display(filtered)
