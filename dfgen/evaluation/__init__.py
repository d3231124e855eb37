"""Quality metrics for generated deformation fields."""

from dfgen.evaluation.metrics import (
    jacobian_determinant,
    jacobian_statistics,
    landmark_residuals,
)

__all__ = [
    'jacobian_determinant',
    'jacobian_statistics',
    'landmark_residuals',
]
