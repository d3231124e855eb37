"""
Radial basis kernels for landmark-based kernel transforms.

Each kernel family is a closed enumeration member mapped to a strategy
object. Scalar kernels return phi(r) for every difference vector; the
elastic body splines are matrix-valued and return a (D, D) block per
difference vector.
"""

from enum import Enum
from typing import Union

import numpy as np

from dfgen.core.errors import UnsupportedConfiguration
from dfgen.core.grid import SUPPORTED_DIMENSIONS


class KernelFamily(Enum):
    """Enumerated kernel transform types, valued by their command line names."""
    TPS = 'TPS'
    TPSR2LOGR = 'TPSR2LOGR'
    VS = 'VS'
    EBS = 'EBS'
    EBSR = 'EBSR'

    @classmethod
    def from_name(cls, name: Union[str, 'KernelFamily']) -> 'KernelFamily':
        """Look up a kernel family by (case-insensitive) name."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).upper())
        except ValueError:
            valid = ', '.join(member.value for member in cls)
            raise UnsupportedConfiguration(
                f"Invalid kernel transform type: {name}. Choose one of {valid}"
            ) from None


def _r2logr(r: np.ndarray) -> np.ndarray:
    """r^2 log(r), continuously extended with 0 at r = 0."""
    r = np.asarray(r, dtype=np.float64)
    out = np.zeros_like(r)
    nonzero = r > 0
    out[nonzero] = r[nonzero] ** 2 * np.log(r[nonzero])
    return out


class RadialKernel:
    """
    Base class for scalar radial basis kernels.

    Subclasses implement ``radial(r)``; calling the kernel on difference
    vectors of shape (..., D) returns values of shape (...).
    """

    family = None
    matrix_valued = False

    def __init__(self, dimension: int):
        if dimension not in SUPPORTED_DIMENSIONS:
            raise UnsupportedConfiguration(
                f"{type(self).__name__} does not support dimension {dimension}"
            )
        self.dimension = dimension

    def radial(self, r: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def __call__(self, diff: np.ndarray) -> np.ndarray:
        diff = np.asarray(diff, dtype=np.float64)
        return self.radial(np.linalg.norm(diff, axis=-1))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dimension={self.dimension})"


class ThinPlateSplineKernel(RadialKernel):
    """
    Thin-plate spline: the fundamental solution of the biharmonic equation.

    r^2 log(r) in 2D and r in 3D.
    """

    family = KernelFamily.TPS

    def radial(self, r):
        if self.dimension == 2:
            return _r2logr(r)
        return np.asarray(r, dtype=np.float64).copy()


class ThinPlateR2LogRSplineKernel(RadialKernel):
    """Thin-plate spline r^2 log(r) in any dimension."""

    family = KernelFamily.TPSR2LOGR

    def radial(self, r):
        return _r2logr(r)


class VolumeSplineKernel(RadialKernel):
    """Volume spline phi(r) = r."""

    family = KernelFamily.VS

    def radial(self, r):
        return np.asarray(r, dtype=np.float64).copy()


class _ElasticKernel(RadialKernel):
    """Matrix-valued kernels derived from the Navier equation of linear elasticity."""

    matrix_valued = True

    def __init__(self, dimension: int, poisson_ratio: float = 0.25):
        super().__init__(dimension)
        if not -1.0 < poisson_ratio < 0.5:
            raise UnsupportedConfiguration(
                f"Poisson ratio must lie in (-1, 0.5), got {poisson_ratio}"
            )
        self.poisson_ratio = float(poisson_ratio)

    def radial(self, r):
        raise TypeError(f"{type(self).__name__} is matrix-valued; call it on difference vectors")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dimension={self.dimension}, poisson_ratio={self.poisson_ratio})"


class ElasticBodySplineKernel(_ElasticKernel):
    """
    Elastic body spline.

    G(x) = alpha * r^3 * I - 3 * r * x x^T, with alpha = 12 (1 - nu) - 1.
    """

    family = KernelFamily.EBS

    @property
    def alpha(self) -> float:
        return 12.0 * (1.0 - self.poisson_ratio) - 1.0

    def __call__(self, diff):
        diff = np.asarray(diff, dtype=np.float64)
        r = np.linalg.norm(diff, axis=-1)[..., None, None]
        outer = diff[..., :, None] * diff[..., None, :]
        return self.alpha * r ** 3 * np.eye(self.dimension) - 3.0 * r * outer


class ElasticBodyReciprocalSplineKernel(_ElasticKernel):
    """
    Elastic body reciprocal spline.

    G(x) = alpha * r * I - 3 * x x^T / r, with alpha = 8 (1 - nu) - 1,
    and G(0) = 0.
    """

    family = KernelFamily.EBSR

    @property
    def alpha(self) -> float:
        return 8.0 * (1.0 - self.poisson_ratio) - 1.0

    def __call__(self, diff):
        diff = np.asarray(diff, dtype=np.float64)
        r = np.linalg.norm(diff, axis=-1)[..., None, None]
        nonzero = r > 1e-12
        r_safe = np.where(nonzero, r, 1.0)
        outer = diff[..., :, None] * diff[..., None, :]
        g = self.alpha * r * np.eye(self.dimension) - 3.0 * outer / r_safe
        return np.where(nonzero, g, 0.0)


_KERNELS = {
    KernelFamily.TPS: ThinPlateSplineKernel,
    KernelFamily.TPSR2LOGR: ThinPlateR2LogRSplineKernel,
    KernelFamily.VS: VolumeSplineKernel,
    KernelFamily.EBS: ElasticBodySplineKernel,
    KernelFamily.EBSR: ElasticBodyReciprocalSplineKernel,
}


def make_kernel(family: Union[str, KernelFamily],
                dimension: int,
                poisson_ratio: float = 0.25,
                ) -> RadialKernel:
    """
    Create the kernel strategy for a family and dimensionality.

    Args:
        family: Kernel family or its name ('TPS', 'TPSR2LOGR', 'VS', 'EBS', 'EBSR')
        dimension: Spatial dimensionality (2 or 3)
        poisson_ratio: Poisson ratio of the elastic body splines

    Returns:
        Kernel strategy object
    """
    family = KernelFamily.from_name(family)
    kernel_cls = _KERNELS[family]
    if kernel_cls.matrix_valued:
        return kernel_cls(dimension, poisson_ratio=poisson_ratio)
    return kernel_cls(dimension)
