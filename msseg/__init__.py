"""Mean-shift image segmentation package."""
from msseg.types import (
    Speedup,
    ClassicOption,
    ClassicConfig,
    MeanShiftConfig,
    SegmentationResult,
    IngestResult,
    SegmentationError,
    ConfigurationError,
    AllocationError,
    ImageFormatError,
)
from msseg.segmentation import MeanShiftSegmentation

__all__ = [
    "Speedup",
    "ClassicOption",
    "ClassicConfig",
    "MeanShiftConfig",
    "SegmentationResult",
    "IngestResult",
    "SegmentationError",
    "ConfigurationError",
    "AllocationError",
    "ImageFormatError",
    "MeanShiftSegmentation",
]
