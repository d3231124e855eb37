"""
Summary statistics of displacement vectors.
"""

import numpy as np
from typing import Optional


def compute_displacement_statistics(displacements: np.ndarray,
                                    valid_mask: Optional[np.ndarray] = None,
                                    ) -> dict:
    """
    Compute statistics of a set of displacement vectors.

    Args:
        displacements: (N, D) displacement vectors in physical units
        valid_mask: Optional (N,) mask of vectors to include

    Returns:
        Dictionary of statistics
    """
    displacements = np.asarray(displacements, dtype=np.float64)
    if valid_mask is None:
        valid_mask = np.ones(len(displacements), dtype=bool)

    valid_disps = displacements[valid_mask]

    if len(valid_disps) == 0:
        return {
            'num_valid': 0,
            'num_excluded': len(displacements),
        }

    magnitudes = np.linalg.norm(valid_disps, axis=1)

    stats = {
        'num_valid': int(valid_mask.sum()),
        'num_excluded': int((~valid_mask).sum()),
        'mean_magnitude': float(magnitudes.mean()),
        'std_magnitude': float(magnitudes.std()),
        'max_magnitude': float(magnitudes.max()),
        'median_magnitude': float(np.median(magnitudes)),
        'mean_displacement': tuple(float(v) for v in valid_disps.mean(axis=0)),
        'std_displacement': tuple(float(v) for v in valid_disps.std(axis=0)),
    }

    return stats


def compute_field_statistics(field) -> dict:
    """
    Compute statistics of a dense displacement field.

    Args:
        field: DisplacementField

    Returns:
        Dictionary of statistics over all grid cells
    """
    vectors = field.vectors.reshape(-1, field.dimension)
    stats = compute_displacement_statistics(vectors)
    stats['num_cells'] = field.num_cells
    stats['populated_cells'] = field.populated_cells()
    return stats
