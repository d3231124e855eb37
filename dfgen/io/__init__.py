"""I/O utilities for reference images, landmark files and deformation fields."""

from dfgen.io.loaders import GridDescriptor, describe, describe_nifti, describe_numpy, describe_with_sitk
from dfgen.io.points import PointSet, read_points, write_points
from dfgen.io.savers import save_dvf, load_dvf

__all__ = [
    'GridDescriptor',
    'describe',
    'describe_nifti',
    'describe_numpy',
    'describe_with_sitk',
    'PointSet',
    'read_points',
    'write_points',
    'save_dvf',
    'load_dvf',
]
