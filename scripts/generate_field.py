#!/usr/bin/env python3
"""
Command-line script for generating a deformation field from landmarks.

Example usage:
    python generate_field.py \\
        -in1 fixed.nii.gz \\
        -ipp1 fixed_points.txt \\
        -ipp2 moving_points.txt \\
        -out dvf.nii.gz \\
        -k EBS -s 0.5
"""

import sys

from dfgen.cli import main


if __name__ == '__main__':
    sys.exit(main())
