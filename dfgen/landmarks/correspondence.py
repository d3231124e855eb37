"""
Landmark correspondences between two coordinate spaces.

Point files may hold physical coordinates or grid indices; index-valued
landmarks are resolved through the index-to-physical map of the grid they
were picked on.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import numpy as np

from dfgen.core.errors import MalformedInput, MissingDependency, UnsupportedConfiguration
from dfgen.core.grid import Grid, SUPPORTED_DIMENSIONS
from dfgen.io.points import PointSet, read_points


@dataclass(frozen=True)
class CorrespondenceSet:
    """
    Ordered landmark pairs in physical coordinates.

    ``source[i]`` and ``target[i]`` are the same feature in the two spaces.
    """
    source: np.ndarray
    target: np.ndarray

    def __post_init__(self):
        source = np.array(self.source, dtype=np.float64)
        target = np.array(self.target, dtype=np.float64)

        if source.ndim != 2 or target.ndim != 2:
            raise MalformedInput(
                f"Landmarks must be (N, D) arrays, got shapes {source.shape} and {target.shape}"
            )
        if len(source) != len(target):
            raise MalformedInput(
                f"Number of input points ({len(source)}) does not equal "
                f"number of output points ({len(target)})"
            )
        if source.shape[1] != target.shape[1]:
            raise MalformedInput(
                f"Source landmarks are {source.shape[1]}D but target landmarks are {target.shape[1]}D"
            )
        if source.shape[1] not in SUPPORTED_DIMENSIONS:
            raise UnsupportedConfiguration(f"Unsupported landmark dimensionality: {source.shape[1]}")

        source.setflags(write=False)
        target.setflags(write=False)
        object.__setattr__(self, 'source', source)
        object.__setattr__(self, 'target', target)

    @property
    def dimension(self) -> int:
        return self.source.shape[1]

    @property
    def displacements(self) -> np.ndarray:
        return self.target - self.source

    def pairs(self) -> Iterator[Tuple[tuple, tuple]]:
        for s, t in zip(self.source, self.target):
            yield tuple(s), tuple(t)

    def __len__(self) -> int:
        return len(self.source)


def round_half_away_from_zero(values: np.ndarray) -> np.ndarray:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    values = np.asarray(values, dtype=np.float64)
    return np.where(values >= 0, np.floor(values + 0.5), np.ceil(values - 0.5)).astype(np.int64)


def indices_to_physical(indices: np.ndarray, grid: Grid) -> np.ndarray:
    """
    Convert index-valued landmarks to physical coordinates.

    Each component is first rounded to the nearest integer index.
    """
    indices = np.atleast_2d(np.asarray(indices, dtype=np.float64))
    if indices.shape[1] != grid.dimension:
        raise MalformedInput(
            f"Index landmarks are {indices.shape[1]}D but the reference grid is {grid.dimension}D"
        )
    return grid.index_to_physical(round_half_away_from_zero(indices))


def resolve_point_set(point_set: PointSet,
                      grid: Optional[Grid] = None,
                      ) -> np.ndarray:
    """
    Physical coordinates of a point set.

    Args:
        point_set: Points read from file
        grid: Grid the points were picked on; required when they are indices

    Returns:
        (N, D) physical coordinates

    Raises:
        MissingDependency: Index-valued points without a grid
    """
    if not point_set.are_indices:
        return point_set.points
    if grid is None:
        raise MissingDependency(
            f"The input points in {point_set.path} are given as indices, "
            f"but no accompanying image is provided"
        )
    return indices_to_physical(point_set.points, grid)


def load_correspondences(source_path: str,
                         target_path: str,
                         source_grid: Optional[Grid] = None,
                         target_grid: Optional[Grid] = None,
                         dimension: Optional[int] = None,
                         ) -> CorrespondenceSet:
    """
    Read two landmark files and pair them up in physical coordinates.

    Args:
        source_path: Point file with source landmarks
        target_path: Point file with target landmarks
        source_grid: Grid resolving index-valued source landmarks
        target_grid: Grid resolving index-valued target landmarks
        dimension: Expected dimensionality of both files

    Returns:
        CorrespondenceSet in physical coordinates, in file order

    Raises:
        MalformedInput: Unreadable files or unequal number of points
        MissingDependency: Index-valued landmarks without their grid
    """
    source_points = read_points(source_path, dimension=dimension)
    target_points = read_points(target_path, dimension=dimension)

    if len(source_points) != len(target_points):
        raise MalformedInput(
            f"Number of input points ({len(source_points)}) does not equal "
            f"number of output points ({len(target_points)})"
        )

    return CorrespondenceSet(
        source=resolve_point_set(source_points, source_grid),
        target=resolve_point_set(target_points, target_grid),
    )
