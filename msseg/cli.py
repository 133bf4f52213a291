"""Command line interface for msseg."""
import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from msseg.segmentation import MeanShiftSegmentation
from msseg.raster_ingest import ingest, save_image
from msseg.debug_utils import audit_segmentation, save_stage_images
from msseg.types import (
    ClassicConfig,
    ClassicOption,
    MeanShiftConfig,
    SegmentationError,
    Speedup,
)

SPEEDUPS = {s.value: s for s in Speedup}
OPTIONS = {
    'quantization': ClassicOption.QUANTIZATION,
    'over': ClassicOption.OVERSEGMENTATION,
    'under': ClassicOption.UNDERSEGMENTATION,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    defaults = MeanShiftConfig()
    parser = argparse.ArgumentParser(
        prog='msseg',
        description='Segment an image with mean shift'
    )

    parser.add_argument(
        'input',
        type=str,
        help='Input image path'
    )

    parser.add_argument(
        '-o', '--output',
        type=str,
        help='Segmented image path (default: input_segmented.png)'
    )

    parser.add_argument(
        '--labels',
        type=str,
        default=None,
        help='Save the label map as a .npy file'
    )

    parser.add_argument(
        '--filtered',
        type=str,
        default=None,
        help='Save the mean-shift filtered image'
    )

    parser.add_argument(
        '--filter-only',
        action='store_true',
        help='Only run mode seeking and write the filtered image to --output'
    )

    parser.add_argument(
        '--speedup',
        choices=sorted(SPEEDUPS),
        default=defaults.speedup.value,
        help=f'Mode-seeking speedup level (default: {defaults.speedup.value})'
    )

    parser.add_argument(
        '--sigma-s',
        type=float,
        default=defaults.sigma_s,
        help=f'Spatial bandwidth in pixels (default: {defaults.sigma_s})'
    )

    parser.add_argument(
        '--sigma-r',
        type=float,
        default=defaults.sigma_r,
        help=f'Range bandwidth in Luv units (default: {defaults.sigma_r})'
    )

    parser.add_argument(
        '--max-color-distance',
        type=float,
        default=defaults.max_neighbour_color_distance,
        help='Fuse adjacent regions closer than this '
             f'(default: {defaults.max_neighbour_color_distance})'
    )

    parser.add_argument(
        '--threshold-converged',
        type=float,
        default=defaults.threshold_converged,
        help=f'Mean-shift convergence tolerance (default: {defaults.threshold_converged})'
    )

    parser.add_argument(
        '--min-region-size',
        type=int,
        default=defaults.min_region_size,
        help=f'Minimum region size in pixels (default: {defaults.min_region_size})'
    )

    parser.add_argument(
        '--max-trial',
        type=int,
        default=defaults.max_trial,
        help=f'Iteration cap per starting point (default: {defaults.max_trial})'
    )

    parser.add_argument(
        '--classic',
        action='store_true',
        help='Use the classic histogram-sampling algorithm'
    )

    parser.add_argument(
        '--option',
        choices=sorted(OPTIONS),
        default='under',
        help='Degree of segmentation for --classic (default: under)'
    )

    parser.add_argument(
        '--save-stages',
        type=str,
        default=None,
        help='Directory to save pipeline stage debug images'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log debug details'
    )

    return parser


def config_from_args(parsed_args: argparse.Namespace) -> MeanShiftConfig:
    """Build a configuration from parsed arguments."""
    return MeanShiftConfig(
        classic_algorithm=parsed_args.classic,
        speedup=SPEEDUPS[parsed_args.speedup],
        sigma_s=parsed_args.sigma_s,
        sigma_r=parsed_args.sigma_r,
        threshold_converged=parsed_args.threshold_converged,
        max_trial=parsed_args.max_trial,
        max_neighbour_color_distance=parsed_args.max_color_distance,
        min_region_size=parsed_args.min_region_size,
        classic=ClassicConfig(option=OPTIONS[parsed_args.option])
    )


def main(args=None):
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s'
    )

    input_path = Path(parsed_args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    if parsed_args.output:
        output_path = Path(parsed_args.output)
    else:
        suffix = '_filtered' if parsed_args.filter_only else '_segmented'
        output_path = input_path.with_name(f"{input_path.stem}{suffix}.png")

    config = config_from_args(parsed_args)
    segmentation = MeanShiftSegmentation(config)

    try:
        image = ingest(input_path).image_rgb

        if parsed_args.filter_only:
            print(f"Mode: Filter ({config.speedup.value} speedup)")
            save_image(segmentation.filter(image), output_path)
            print(f"Filtered image: {output_path}")
            return 0

        mode = 'Classic' if config.classic_algorithm else f"Density ({config.speedup.value} speedup)"
        print(f"Mode: {mode}")

        result = segmentation.run(image)
        audit_segmentation(result)

        save_image(result.segmented_image, output_path)
        print(f"Regions: {result.region_count}")
        print(f"Segmented image: {output_path}")

        if parsed_args.labels:
            labels_path = Path(parsed_args.labels)
            labels_path.parent.mkdir(parents=True, exist_ok=True)
            np.save(labels_path, result.labels)
            print(f"Labels: {labels_path}")

        if parsed_args.filtered:
            if result.filtered_image is None:
                print("Warning: the classic algorithm has no filtered image", file=sys.stderr)
            else:
                save_image(result.filtered_image, parsed_args.filtered)
                print(f"Filtered image: {parsed_args.filtered}")

        if parsed_args.save_stages:
            save_stage_images(result, parsed_args.save_stages, original=image)
            print(f"Debug stages saved to: {parsed_args.save_stages}")

        return 0

    except (SegmentationError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
