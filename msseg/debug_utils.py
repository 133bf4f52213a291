"""Debug utilities for auditing segmentation results."""
import logging
from pathlib import Path
from typing import Dict, Union
import numpy as np
from skimage.segmentation import mark_boundaries

from msseg.types import SegmentationResult
from msseg.raster_ingest import save_image

logger = logging.getLogger(__name__)


def audit_segmentation(result: SegmentationResult, phase: str = "output") -> dict:
    """
    Audit a segmentation result and log summary statistics.

    Checks that every pixel belongs to exactly one label, that labels are dense
    and that the per-label tallies add up to the image size.

    Args:
        result: Segmentation result to audit
        phase: Description of the phase (for logging)

    Returns:
        Dictionary with audit statistics
    """
    labels = result.labels
    total_pixels = int(labels.size)
    counts = np.asarray(result.mode_point_counts)

    stats = {
        "total_pixels": total_pixels,
        "region_count": result.region_count,
        "counted_pixels": int(counts.sum()),
        "smallest_region": int(counts.min()) if counts.size else 0,
        "largest_region": int(counts.max()) if counts.size else 0,
        "dense_labels": True,
        "partition_ok": True,
    }

    if total_pixels:
        present = np.unique(labels)
        stats["dense_labels"] = bool(
            len(present) == result.region_count
            and present[0] == 0
            and present[-1] == result.region_count - 1
        )
        tally = np.bincount(labels.ravel(), minlength=result.region_count)
        stats["partition_ok"] = bool(
            stats["counted_pixels"] == total_pixels
            and len(tally) == len(counts)
            and np.array_equal(tally, counts)
        )

    if not stats["dense_labels"]:
        logger.warning(f"Segmentation audit ({phase}): labels are not dense")
    if not stats["partition_ok"]:
        logger.warning(
            f"Segmentation audit ({phase}): region tallies sum to "
            f"{stats['counted_pixels']}, image has {total_pixels} pixels"
        )

    if result.trials_to_converge is not None and result.trials_to_converge.size:
        trials = result.trials_to_converge
        stats["inherited_modes"] = int(trials[0])
        stats["hit_max_trial"] = int(trials[-1])
        logger.debug(f"Iterations to converge: {trials.tolist()}")

    logger.info(
        f"Segmentation audit ({phase}): {stats['region_count']} regions, "
        f"sizes {stats['smallest_region']}..{stats['largest_region']} pixels, "
        f"{total_pixels} pixels total"
    )

    return stats


def save_stage_images(
    result: SegmentationResult,
    output_dir: Union[str, Path],
    original: np.ndarray = None
) -> Dict[str, Path]:
    """
    Save filtered, segmented and boundary-overlay images for inspection.

    Args:
        result: Segmentation result
        output_dir: Directory to write PNG files into
        original: Optional original RGB image used as overlay background

    Returns:
        Mapping of stage name to written path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = {}
    if not result.labels.size:
        logger.warning("Empty segmentation, no stage images written")
        return written

    if result.filtered_image is not None:
        written["filtered"] = save_image(result.filtered_image, output_dir / "1_filtered.png")

    if result.segmented_image is not None:
        written["segmented"] = save_image(result.segmented_image, output_dir / "2_segmented.png")

    background = original if original is not None else result.segmented_image
    if background is not None:
        overlay = mark_boundaries(background, result.labels, color=(1, 0, 0))
        overlay = (np.clip(overlay, 0, 1) * 255).astype(np.uint8)
        written["boundaries"] = save_image(overlay, output_dir / "3_boundaries.png")

    for name, path in written.items():
        logger.info(f"Stage '{name}' saved to {path}")

    return written
