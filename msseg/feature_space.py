"""Joint spatial/range feature space construction."""
import numpy as np

from msseg.types import FeatureSpace, ImageFormatError


def build_feature_space(range_image: np.ndarray) -> FeatureSpace:
    """
    Stack pixel coordinates and range values into feature vectors.

    The feature of pixel (r, c) is [r, c, ch0(r, c), ..., chR-1(r, c)], rows in
    raster order. A zero-sized image gives an empty feature space.

    Args:
        range_image: (H, W, R) array of range values (e.g. L, u, v)

    Returns:
        FeatureSpace with data of shape (H * W, 2 + R)
    """
    range_image = np.asarray(range_image, dtype=np.float64)
    if range_image.ndim == 2:
        range_image = range_image[..., np.newaxis]
    if range_image.ndim != 3:
        raise ImageFormatError(f"Expected (H, W, R) range image, got shape {range_image.shape}")

    height, width, range_dims = range_image.shape
    data = np.empty((height * width, 2 + range_dims), dtype=np.float64)

    rows, cols = np.mgrid[0:height, 0:width]
    data[:, 0] = rows.ravel()
    data[:, 1] = cols.ravel()
    data[:, 2:] = range_image.reshape(-1, range_dims)

    return FeatureSpace(data=data, height=height, width=width)
