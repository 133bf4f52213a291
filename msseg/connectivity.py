"""Connected-component labeling of the mode-filtered image."""
import logging
import numpy as np
from skimage.measure import label

from msseg.types import Regions

logger = logging.getLogger(__name__)


def quantize_modes(filtered_range: np.ndarray) -> np.ndarray:
    """Round converged range values to the integer grid used for equality tests."""
    return np.rint(filtered_range).astype(np.int64)


def connect(filtered_range: np.ndarray, height: int, width: int) -> Regions:
    """
    Label maximal 4-connected runs of pixels sharing the same quantized mode.

    Two neighbouring pixels belong to the same region when their converged range
    vectors are equal after rounding to the nearest integer. Labels are numbered
    in raster order of the first pixel of each region, and that pixel's
    (unrounded) converged value becomes the region's mode.

    Args:
        filtered_range: (H * W, R) converged range values in raster order
        height: Image height
        width: Image width

    Returns:
        Regions with dense labels, modes and pixel tallies
    """
    filtered_range = np.asarray(filtered_range, dtype=np.float64)
    n = height * width
    range_dims = filtered_range.shape[1] if filtered_range.ndim == 2 else 0

    if n == 0:
        return Regions(
            labels=np.zeros((height, width), dtype=np.int32),
            modes=np.zeros((0, range_dims), dtype=np.float64),
            mode_point_counts=np.zeros(0, dtype=np.int64)
        )

    # One integer id per distinct quantized color
    _, color_ids = np.unique(quantize_modes(filtered_range), axis=0, return_inverse=True)
    color_ids = np.asarray(color_ids).reshape(height, width)

    # background=-1 so that color id 0 is labeled like every other color
    components = label(color_ids, background=-1, connectivity=1)

    _, first_pixel, inverse = np.unique(
        components.ravel(), return_index=True, return_inverse=True
    )
    order = np.argsort(first_pixel, kind='stable')
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))

    labels = rank[np.asarray(inverse).ravel()].reshape(height, width).astype(np.int32)
    seeds = first_pixel[order]
    modes = filtered_range[seeds].copy()
    counts = np.bincount(labels.ravel(), minlength=len(seeds)).astype(np.int64)

    logger.info(f"Connected components: {len(seeds)} regions")
    return Regions(labels=labels, modes=modes, mode_point_counts=counts)
