"""
Error taxonomy for deformation field generation.

Every error is fatal to the current run. Each class carries the exit status
the command line tool returns when it is raised.
"""

import numpy as np


class DeformationFieldError(Exception):
    """Base class for all fatal generation errors."""

    exit_code = 1


class UnsupportedConfiguration(DeformationFieldError, ValueError):
    """Requested scalar type / dimensionality (or kernel) has no implementation."""

    exit_code = 2


class ConfigurationError(DeformationFieldError, ValueError):
    """Invalid generator settings (kernel name, stiffness, workers, ...)."""

    exit_code = 2


class MalformedInput(DeformationFieldError, ValueError):
    """Point files unreadable, inconsistent lengths or mixed dimensionality."""

    exit_code = 3


class MissingDependency(DeformationFieldError):
    """Index-valued landmarks without a reference grid to resolve them."""

    exit_code = 4


class SingularSystem(DeformationFieldError, np.linalg.LinAlgError):
    """The kernel-fit linear system has no unique solution."""

    exit_code = 5


class IOFailure(DeformationFieldError, OSError):
    """An image header could not be read or the output could not be written."""

    exit_code = 6
