"""RGB <-> CIE Luv conversion for the range part of the feature space."""
import numpy as np
from skimage.color import rgb2luv, luv2rgb


def rgb_to_luv(rgb: np.ndarray) -> np.ndarray:
    """
    Convert RGB values to CIE Luv.

    Args:
        rgb: (..., 3) array, uint8 in [0, 255] or float in [0, 1]

    Returns:
        (..., 3) float64 array of L, u, v values (L in [0, 100])
    """
    rgb = np.asarray(rgb)
    if rgb.size == 0:
        return np.zeros(rgb.shape, dtype=np.float64)

    if rgb.dtype == np.uint8:
        rgb = rgb.astype(np.float64) / 255.0
    else:
        rgb = rgb.astype(np.float64)

    shape = rgb.shape
    luv = rgb2luv(rgb.reshape(-1, 1, 3))
    return luv.reshape(shape)


def luv_to_rgb(luv: np.ndarray) -> np.ndarray:
    """
    Convert CIE Luv values back to 8-bit RGB.

    Args:
        luv: (..., 3) array of L, u, v values

    Returns:
        (..., 3) uint8 array
    """
    luv = np.asarray(luv, dtype=np.float64)
    if luv.size == 0:
        return np.zeros(luv.shape, dtype=np.uint8)

    shape = luv.shape
    rgb = luv2rgb(luv.reshape(-1, 1, 3))
    rgb = np.clip(np.rint(rgb * 255.0), 0, 255).astype(np.uint8)
    return rgb.reshape(shape)


def channels_to_uint8(values: np.ndarray) -> np.ndarray:
    """Round raw channel values into 8-bit range without any color conversion."""
    values = np.asarray(values, dtype=np.float64)
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)
