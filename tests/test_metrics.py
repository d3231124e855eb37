"""
Tests for deformation field quality metrics.
"""

import pytest
import numpy as np
from dfgen.core import make_grid
from dfgen.deformation import DisplacementField
from dfgen.evaluation import jacobian_determinant, jacobian_statistics, landmark_residuals
from dfgen.kernels import fit_kernel_transform


def test_jacobian_zero_field():
    """Test that a zero field has unit Jacobian determinant."""
    grid = make_grid((5, 6, 7))
    field = DisplacementField(vectors=np.zeros((5, 6, 7, 3)), grid=grid)

    jac_det = jacobian_determinant(field)

    assert jac_det.shape == (5, 6, 7)
    assert np.allclose(jac_det, 1.0)


def test_jacobian_linear_stretch():
    """Test that u(x) = 0.1 x stretches area by 1.1 in physical units."""
    grid = make_grid((6, 4), spacing=(2.0, 0.5))
    points = grid.index_to_physical(grid.indices()).reshape(6, 4, 2)
    vectors = np.zeros((6, 4, 2))
    vectors[..., 0] = 0.1 * points[..., 0]
    field = DisplacementField(vectors=vectors, grid=grid)

    stats = jacobian_statistics(field)

    assert np.isclose(stats['mean'], 1.1)
    assert np.isclose(stats['min'], 1.1)
    assert stats['num_folding'] == 0


def test_jacobian_detects_folding():
    grid = make_grid((6, 6))
    points = grid.index_to_physical(grid.indices()).reshape(6, 6, 2)
    vectors = np.zeros((6, 6, 2))
    vectors[..., 0] = -2.0 * points[..., 0]
    field = DisplacementField(vectors=vectors, grid=grid)

    stats = jacobian_statistics(field)

    assert stats['num_folding'] == 36
    assert np.isclose(stats['percent_folding'], 100.0)


def test_jacobian_requires_two_cells():
    grid = make_grid((1, 5))
    field = DisplacementField(vectors=np.zeros((1, 5, 2)), grid=grid)

    with pytest.raises(ValueError):
        jacobian_determinant(field)


def test_landmark_residuals():
    """Test residuals of an interpolating and an approximating fit."""
    rng = np.random.RandomState(0)
    source = rng.uniform(0, 10, size=(10, 2))
    target = source + rng.normal(0, 1.0, size=(10, 2))

    exact = landmark_residuals(fit_kernel_transform(source, target), source, target)
    smooth = landmark_residuals(fit_kernel_transform(source, target, stiffness=5.0), source, target)

    assert exact['num_landmarks'] == 10
    assert exact['max'] < 1e-6
    assert smooth['mean'] > exact['mean']
    assert smooth['errors'].shape == (10,)


if __name__ == '__main__':
    pytest.main([__file__])
