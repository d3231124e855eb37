"""
Quality metrics for generated deformation fields.

Includes Jacobian determinant and landmark residual error.
"""

import numpy as np


def jacobian_determinant(field) -> np.ndarray:
    """
    Compute the Jacobian determinant of x -> x + u(x) in physical units.

    Derivatives are taken along the grid axes with the grid spacing, so the
    result is in the axis-aligned frame of the grid.

    Args:
        field: DisplacementField with (*size, D) vectors

    Returns:
        jac_det: (*size) Jacobian determinant at each cell
    """
    vectors = field.vectors.astype(np.float64)
    dim = field.dimension
    spacing = field.grid.spacing

    if any(s < 2 for s in field.grid.size):
        raise ValueError(f"Jacobian needs at least 2 cells along every axis, got {field.grid.size}")

    # jac[..., i, j] = d(x_i + u_i) / d x_j
    jac = np.empty(vectors.shape[:-1] + (dim, dim))
    for i in range(dim):
        grads = np.gradient(vectors[..., i], *spacing)
        for j in range(dim):
            jac[..., i, j] = grads[j] + (1.0 if i == j else 0.0)

    return np.linalg.det(jac)


def jacobian_statistics(field) -> dict:
    """
    Compute statistics of the Jacobian determinant.

    Args:
        field: DisplacementField

    Returns:
        Dictionary of Jacobian statistics
    """
    jac_det = jacobian_determinant(field)

    stats = {
        'mean': float(jac_det.mean()),
        'std': float(jac_det.std()),
        'min': float(jac_det.min()),
        'max': float(jac_det.max()),
        'num_folding': int((jac_det <= 0).sum()),
        'percent_folding': float((jac_det <= 0).mean() * 100),
    }

    return stats


def landmark_residuals(transform,
                       source: np.ndarray,
                       target: np.ndarray,
                       ) -> dict:
    """
    Compute how far the transform maps each source landmark from its target.

    Args:
        transform: Fitted KernelTransform
        source: (N, D) source landmarks
        target: (N, D) target landmarks

    Returns:
        Dictionary with per-landmark errors and summary statistics
    """
    source = np.asarray(source, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    N = len(source)

    if N == 0:
        return {'errors': np.zeros(0), 'mean': np.nan, 'std': np.nan, 'max': np.nan,
                'mse': np.nan, 'num_landmarks': 0}

    mapped = transform.transform_points(source)
    errors = np.linalg.norm(mapped - target, axis=1)

    return {
        'errors': errors,
        'mean': float(errors.mean()),
        'std': float(errors.std()),
        'max': float(errors.max()),
        'median': float(np.median(errors)),
        'mse': float(np.mean(errors ** 2)),
        'num_landmarks': N,
    }
