"""Raster image ingestion and export."""
from pathlib import Path
from typing import Union
import numpy as np
from PIL import Image
from PIL import ImageOps

from msseg.types import IngestResult, ImageFormatError


def ingest(path: Union[str, Path]) -> IngestResult:
    """
    Ingest a raster image file as 8-bit RGB.

    Args:
        path: Path to image file

    Returns:
        IngestResult holding an (H, W, 3) uint8 image

    Raises:
        FileNotFoundError: If file doesn't exist
        ImageFormatError: If file cannot be loaded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise ImageFormatError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            # Apply EXIF orientation transformation to handle rotation
            img = ImageOps.exif_transpose(img)

            if img.mode == 'RGBA':
                has_alpha = True
                # Composite on white background
                background = Image.new('RGB', img.size, (255, 255, 255))
                background.paste(img, mask=img.split()[3])
                img = background
            elif img.mode != 'RGB':
                has_alpha = img.mode in ('LA', 'P')
                img = img.convert('RGB')
            else:
                has_alpha = False

            width, height = img.size
            image_rgb = np.array(img, dtype=np.uint8)

    except (IOError, OSError) as e:
        raise ImageFormatError(f"Failed to load image {path}: {e}") from e

    return IngestResult(
        image_rgb=image_rgb,
        original_path=str(path),
        width=width,
        height=height,
        has_alpha=has_alpha
    )


def ingest_from_array(image: np.ndarray, path: str = "") -> IngestResult:
    """
    Create IngestResult from numpy array.

    Args:
        image: Image array (H, W), (H, W, 3) or (H, W, 4); uint8 or float in [0, 1]
        path: Optional path for reference

    Returns:
        IngestResult
    """
    image = np.asarray(image)

    if image.ndim == 2:
        # Grayscale - convert to RGB
        image = np.stack([image] * 3, axis=-1)

    if image.ndim != 3:
        raise ImageFormatError(f"Expected 2D or 3D array, got {image.ndim}D")

    if image.dtype != np.uint8:
        image = image.astype(np.float64)
        if image.size and image.max() <= 1.0:
            image = image * 255.0
        image = np.clip(np.rint(image), 0, 255)

    if image.shape[2] == 4:
        # RGBA - composite on white
        has_alpha = True
        alpha = image[..., 3:4].astype(np.float64) / 255.0
        rgb = image[..., :3].astype(np.float64)
        image = np.rint(rgb * alpha + 255.0 * (1 - alpha))
    elif image.shape[2] == 3:
        has_alpha = False
    else:
        raise ImageFormatError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    height, width = image.shape[:2]

    return IngestResult(
        image_rgb=image.astype(np.uint8),
        original_path=path,
        width=width,
        height=height,
        has_alpha=has_alpha
    )


def save_image(image: np.ndarray, path: Union[str, Path]) -> Path:
    """Write an (H, W, 3) uint8 image, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.asarray(image, dtype=np.uint8)).save(path)
    return path
