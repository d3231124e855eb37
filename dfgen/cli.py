"""
Command line interface for deformation field generation.

Example usage:
    dfgen-generate \\
        -in1 fixed.mha \\
        -ipp1 fixed_points.txt \\
        -ipp2 moving_points.txt \\
        -out deformation.mha \\
        -k TPS -s 0.0
"""

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from dfgen.core.config import GeneratorConfig, KERNEL_NAMES
from dfgen.core.errors import DeformationFieldError
from dfgen.core.generator import DeformationFieldGenerator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dfgen-generate',
        description=(
            'Generate a deformation field from corresponding landmarks. The field '
            'is sampled on the grid of the first input image and maps every cell '
            'through the kernel transform fitted to the landmark pairs.'
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Required arguments
    parser.add_argument('-in1', '--in1', dest='in1', required=True,
                        help='Input image 1: defines the output grid and resolves '
                             'index-valued points in ipp1')
    parser.add_argument('-ipp1', '--ipp1', dest='ipp1', required=True,
                        help='Source landmark point file')
    parser.add_argument('-ipp2', '--ipp2', dest='ipp2', required=True,
                        help='Target landmark point file')
    parser.add_argument('-out', '--out', dest='out', required=True,
                        help='Output deformation field')

    # Optional arguments
    parser.add_argument('-in2', '--in2', dest='in2',
                        help='Input image 2: only needed when ipp2 contains indices')
    parser.add_argument('-k', '--kernel', dest='kernel', choices=KERNEL_NAMES, type=str.upper,
                        help='Kernel transform type (default: TPS)')
    parser.add_argument('-s', '--stiffness', dest='stiffness', type=float,
                        help='Stiffness: 0 interpolates the landmarks, larger values '
                             'approximate them (default: 0.0)')
    parser.add_argument('--poisson-ratio', type=float,
                        help='Poisson ratio of the elastic body splines (default: 0.25)')
    parser.add_argument('--workers', type=int,
                        help='Number of evaluation threads (default: 1)')
    parser.add_argument('--config', help='Path to YAML configuration file')
    parser.add_argument('--quiet', action='store_true', help='Suppress output')

    return parser


def load_config(args: argparse.Namespace) -> GeneratorConfig:
    """Load the configuration file (if any) and apply command-line overrides."""
    if args.config is not None:
        if not Path(args.config).exists():
            print(f"Warning: Config file {args.config} not found, using defaults", file=sys.stderr)
            config = GeneratorConfig()
        else:
            config = GeneratorConfig.from_yaml(args.config)
    else:
        config = GeneratorConfig()

    if args.kernel is not None:
        config.kernel.name = args.kernel
    if args.stiffness is not None:
        config.kernel.stiffness = args.stiffness
    if args.poisson_ratio is not None:
        config.kernel.poisson_ratio = args.poisson_ratio
    if args.workers is not None:
        config.evaluation.num_workers = args.workers
    if args.quiet:
        config.verbose = False

    config.validate()
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the generator.

    Returns:
        0 on success, the error's exit status on a fatal error
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        generator = DeformationFieldGenerator(config)
        generator.run(
            reference_image=args.in1,
            source_points=args.ipp1,
            target_points=args.ipp2,
            output_path=args.out,
            second_image=args.in2,
        )
    except DeformationFieldError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code

    return 0


if __name__ == '__main__':
    sys.exit(main())
