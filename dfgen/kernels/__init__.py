"""Radial basis kernels and kernel transforms."""

from dfgen.kernels.radial import (
    KernelFamily,
    RadialKernel,
    ThinPlateSplineKernel,
    ThinPlateR2LogRSplineKernel,
    VolumeSplineKernel,
    ElasticBodySplineKernel,
    ElasticBodyReciprocalSplineKernel,
    make_kernel,
)
from dfgen.kernels.transform import KernelTransform, fit_kernel_transform, build_kernel_matrix

__all__ = [
    'KernelFamily',
    'RadialKernel',
    'ThinPlateSplineKernel',
    'ThinPlateR2LogRSplineKernel',
    'VolumeSplineKernel',
    'ElasticBodySplineKernel',
    'ElasticBodyReciprocalSplineKernel',
    'make_kernel',
    'KernelTransform',
    'fit_kernel_transform',
    'build_kernel_matrix',
]
