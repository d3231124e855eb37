"""Dense deformation field utilities."""

from dfgen.deformation.field import DisplacementField, evaluate_displacement_field
from dfgen.deformation.displacement import compute_displacement_statistics, compute_field_statistics

__all__ = [
    'DisplacementField',
    'evaluate_displacement_field',
    'compute_displacement_statistics',
    'compute_field_statistics',
]
