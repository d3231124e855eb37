"""
Kernel transform fitting and evaluation.

Solves the landmark interpolation (stiffness = 0) or approximation
(stiffness > 0) system

    [ K + stiffness * I   P ] [ W ]   [ Y ]
    [ P^T                 0 ] [ A ] = [ 0 ]

where K holds the kernel evaluated between source landmarks, P the affine
basis [1, x] of every source landmark and Y the landmark displacements
(target - source). The fitted transform is

    T(q) = q + [1, q] A + sum_i G(q - p_i) W_i
"""

from dataclasses import dataclass
from typing import Union
import warnings

import numpy as np
from scipy import linalg
from scipy.spatial.distance import pdist

from dfgen.core.errors import (
    ConfigurationError,
    MalformedInput,
    SingularSystem,
    UnsupportedConfiguration,
)
from dfgen.core.grid import SUPPORTED_DIMENSIONS
from dfgen.kernels.radial import KernelFamily, RadialKernel, make_kernel

# Upper bound on kernel values materialized at once during evaluation
_BLOCK_ELEMENTS = 1 << 22


@dataclass(frozen=True)
class KernelTransform:
    """
    A fitted kernel transform.

    Immutable after fitting; safe to share between evaluation threads.

    Attributes:
        kernel: Kernel strategy the transform was fitted with
        source_landmarks: (N, D) source landmark coordinates
        weights: (N, D) kernel weights
        affine: (D + 1, D) affine coefficients, row 0 is the translation
        stiffness: Regularization used for the fit
    """
    kernel: RadialKernel
    source_landmarks: np.ndarray
    weights: np.ndarray
    affine: np.ndarray
    stiffness: float = 0.0

    def __post_init__(self):
        for name in ('source_landmarks', 'weights', 'affine'):
            array = np.array(getattr(self, name), dtype=np.float64)
            array.setflags(write=False)
            object.__setattr__(self, name, array)

    @property
    def dimension(self) -> int:
        return self.source_landmarks.shape[1]

    @property
    def num_landmarks(self) -> int:
        return self.source_landmarks.shape[0]

    @property
    def family(self) -> KernelFamily:
        return self.kernel.family

    @property
    def is_identity(self) -> bool:
        return not (self.weights.any() or self.affine.any())

    def displacement(self, points: np.ndarray) -> np.ndarray:
        """
        Displacement T(q) - q at query points.

        Args:
            points: (M, D) or (D,) physical coordinates

        Returns:
            displacements with the same shape as ``points``
        """
        points = np.asarray(points, dtype=np.float64)
        single = points.ndim == 1
        points = np.atleast_2d(points)
        if points.shape[1] != self.dimension:
            raise UnsupportedConfiguration(
                f"Query point dimensionality {points.shape[1]} does not match "
                f"transform dimensionality {self.dimension}"
            )

        out = np.empty_like(points)
        for start in range(0, len(points), self._block_size()):
            q = points[start:start + self._block_size()]
            diff = q[:, None, :] - self.source_landmarks[None, :, :]
            g = self.kernel(diff)
            if self.kernel.matrix_valued:
                nonrigid = np.einsum('mnab,nb->ma', g, self.weights)
            else:
                nonrigid = g @ self.weights
            out[start:start + len(q)] = nonrigid + self.affine[0] + q @ self.affine[1:]

        return out[0] if single else out

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Map points through the transform."""
        points = np.asarray(points, dtype=np.float64)
        return points + self.displacement(points)

    def transform_point(self, point) -> np.ndarray:
        """Map a single D-dimensional point."""
        return self.transform_points(np.asarray(point, dtype=np.float64).reshape(-1))

    def __call__(self, points: np.ndarray) -> np.ndarray:
        """Alias for transform_points."""
        return self.transform_points(points)

    def _block_size(self) -> int:
        per_point = self.num_landmarks * (self.dimension ** 2 if self.kernel.matrix_valued else 1)
        return max(1, _BLOCK_ELEMENTS // max(1, per_point))

    def __repr__(self) -> str:
        return (f"KernelTransform(kernel={self.family.value}, dim={self.dimension}, "
                f"landmarks={self.num_landmarks}, stiffness={self.stiffness})")


def fit_kernel_transform(source: np.ndarray,
                         target: np.ndarray,
                         kernel: Union[str, KernelFamily] = KernelFamily.TPS,
                         stiffness: float = 0.0,
                         poisson_ratio: float = 0.25,
                         ) -> KernelTransform:
    """
    Fit a kernel transform mapping source landmarks onto target landmarks.

    Args:
        source: (N, D) source landmarks in physical coordinates
        target: (N, D) target landmarks in physical coordinates
        kernel: Kernel family or name
        stiffness: 0 for exact interpolation, > 0 for approximation
        poisson_ratio: Poisson ratio of the elastic body splines

    Returns:
        Fitted KernelTransform

    Raises:
        MalformedInput: Landmark sets of different size or dimensionality
        UnsupportedConfiguration: Dimensionality other than 2 or 3
        SingularSystem: The system has no unique solution
    """
    source, target = _check_landmarks(source, target)
    stiffness = float(stiffness)
    if not np.isfinite(stiffness) or stiffness < 0:
        raise ConfigurationError(f"Stiffness must be non-negative, got {stiffness}")

    n, dim = source.shape
    kernel_obj = make_kernel(kernel, dim, poisson_ratio=poisson_ratio)
    displacements = target - source

    # Homogeneous system: the zero solution is exact and of minimum norm
    if not displacements.any():
        return KernelTransform(
            kernel=kernel_obj,
            source_landmarks=source,
            weights=np.zeros((n, dim)),
            affine=np.zeros((dim + 1, dim)),
            stiffness=stiffness,
        )

    _check_landmark_geometry(source, stiffness)

    P = np.hstack([np.ones((n, 1)), source])
    K = build_kernel_matrix(kernel_obj, source)
    if stiffness > 0:
        K[np.diag_indices_from(K)] += stiffness

    if kernel_obj.matrix_valued:
        P = np.kron(P, np.eye(dim))
        rhs = np.concatenate([displacements.reshape(-1), np.zeros((dim + 1) * dim)])
    else:
        rhs = np.vstack([displacements, np.zeros((dim + 1, dim))])

    m = P.shape[1]
    L = np.block([[K, P], [P.T, np.zeros((m, m))]])

    solution = _solve_symmetric(L, rhs)

    if kernel_obj.matrix_valued:
        weights = solution[:n * dim].reshape(n, dim)
        affine = solution[n * dim:].reshape(dim + 1, dim)
    else:
        weights = solution[:n]
        affine = solution[n:]

    return KernelTransform(
        kernel=kernel_obj,
        source_landmarks=source,
        weights=weights,
        affine=affine,
        stiffness=stiffness,
    )


def build_kernel_matrix(kernel: RadialKernel, landmarks: np.ndarray) -> np.ndarray:
    """
    Kernel matrix between all landmark pairs.

    Returns an (N, N) matrix for scalar kernels and an (N*D, N*D) matrix of
    (D, D) blocks for matrix-valued kernels.
    """
    landmarks = np.asarray(landmarks, dtype=np.float64)
    n, dim = landmarks.shape
    diff = landmarks[:, None, :] - landmarks[None, :, :]
    g = kernel(diff)
    if kernel.matrix_valued:
        return g.transpose(0, 2, 1, 3).reshape(n * dim, n * dim)
    return g


def _check_landmarks(source, target):
    source = np.asarray(source, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)

    if source.ndim != 2 or target.ndim != 2:
        raise MalformedInput(
            f"Landmarks must be (N, D) arrays, got shapes {source.shape} and {target.shape}"
        )
    if source.shape[1] != target.shape[1]:
        raise MalformedInput(
            f"Source landmarks are {source.shape[1]}D but target landmarks are {target.shape[1]}D"
        )
    if len(source) != len(target):
        raise MalformedInput(
            f"Number of source points ({len(source)}) does not equal "
            f"number of target points ({len(target)})"
        )
    if len(source) == 0:
        raise MalformedInput("At least one landmark pair is required")
    if source.shape[1] not in SUPPORTED_DIMENSIONS:
        raise UnsupportedConfiguration(f"Unsupported landmark dimensionality: {source.shape[1]}")
    if not (np.all(np.isfinite(source)) and np.all(np.isfinite(target))):
        raise MalformedInput("Landmark coordinates must be finite")

    return source, target


def _check_landmark_geometry(source: np.ndarray, stiffness: float) -> None:
    n, dim = source.shape
    P = np.hstack([np.ones((n, 1)), source])
    if np.linalg.matrix_rank(P) < dim + 1:
        raise SingularSystem(
            f"Kernel system is singular: the {n} source landmarks do not span "
            f"{dim}D space (at least {dim + 1} affinely independent landmarks are needed)"
        )
    if stiffness == 0 and n > 1 and pdist(source).min() == 0:
        raise SingularSystem(
            "Kernel system is singular: duplicate source landmarks "
            "cannot be interpolated with stiffness 0"
        )


def _solve_symmetric(L: np.ndarray, rhs: np.ndarray) -> np.ndarray:
    try:
        with warnings.catch_warnings():
            warnings.simplefilter('error', linalg.LinAlgWarning)
            solution = linalg.solve(L, rhs, assume_a='sym')
    except (np.linalg.LinAlgError, linalg.LinAlgWarning) as e:
        raise SingularSystem(f"Kernel system is singular: {e}") from e

    if not np.all(np.isfinite(solution)):
        raise SingularSystem("Kernel system solution is not finite")

    return solution
