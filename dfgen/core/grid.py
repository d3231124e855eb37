"""
Spatial grid geometry.

A grid maps integer cell indices to physical coordinates through
``physical = origin + spacing * index``. Direction cosines of a reference
image are not part of the map; fields are always axis-aligned.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from dfgen.core.errors import MalformedInput, UnsupportedConfiguration

SUPPORTED_DIMENSIONS = (2, 3)


@dataclass(frozen=True)
class Grid:
    """
    Regular sampling grid in physical space.

    Axes follow the image convention (x, y[, z]): ``size[0]`` is the number
    of cells along x, and so on.
    """
    size: tuple
    spacing: tuple
    origin: tuple

    def __post_init__(self):
        size = tuple(int(s) for s in self.size)
        spacing = tuple(float(s) for s in self.spacing)
        origin = tuple(float(o) for o in self.origin)

        dim = len(size)
        if dim not in SUPPORTED_DIMENSIONS:
            raise UnsupportedConfiguration(f"Unsupported grid dimensionality: {dim}")
        if len(spacing) != dim or len(origin) != dim:
            raise MalformedInput(
                f"Grid size, spacing and origin must have the same length, "
                f"got {len(size)}, {len(spacing)}, {len(origin)}"
            )
        if any(s <= 0 for s in size):
            raise MalformedInput(f"Invalid grid size: {size}")
        if any(not np.isfinite(s) or s <= 0 for s in spacing):
            raise MalformedInput(f"Invalid grid spacing: {spacing}")

        object.__setattr__(self, 'size', size)
        object.__setattr__(self, 'spacing', spacing)
        object.__setattr__(self, 'origin', origin)

    @classmethod
    def from_metadata(cls, metadata: dict) -> 'Grid':
        """Build a grid from a ``{'size', 'spacing', 'origin'}`` dict."""
        return cls(
            size=metadata['size'],
            spacing=metadata['spacing'],
            origin=metadata['origin'],
        )

    @property
    def dimension(self) -> int:
        return len(self.size)

    @property
    def num_cells(self) -> int:
        return int(np.prod(self.size))

    def index_to_physical(self, indices: np.ndarray) -> np.ndarray:
        """
        Map grid indices to physical coordinates.

        Args:
            indices: (M, D) or (D,) integer (or continuous) indices

        Returns:
            points: physical coordinates with the same shape
        """
        indices = np.asarray(indices, dtype=np.float64)
        self._check_trailing_dim(indices)
        return np.asarray(self.origin) + indices * np.asarray(self.spacing)

    def physical_to_index(self, points: np.ndarray) -> np.ndarray:
        """Continuous index of physical points (inverse of index_to_physical)."""
        points = np.asarray(points, dtype=np.float64)
        self._check_trailing_dim(points)
        return (points - np.asarray(self.origin)) / np.asarray(self.spacing)

    def indices(self, start: int = 0, stop: Optional[int] = None) -> np.ndarray:
        """
        Integer indices of a contiguous range of cells in row-major order.

        Cell ``n`` of the flat range is ``np.unravel_index(n, size)``, so the
        last axis varies fastest, matching a C-ordered ``(*size, D)`` array.
        """
        if stop is None:
            stop = self.num_cells
        flat = np.arange(start, stop)
        return np.stack(np.unravel_index(flat, self.size), axis=1)

    def to_metadata(self) -> dict:
        return {
            'size': self.size,
            'spacing': self.spacing,
            'origin': self.origin,
        }

    def _check_trailing_dim(self, array: np.ndarray) -> None:
        if array.shape[-1] != self.dimension:
            raise UnsupportedConfiguration(
                f"Point dimensionality {array.shape[-1]} does not match "
                f"grid dimensionality {self.dimension}"
            )


def make_grid(size: Sequence[int],
              spacing: Optional[Sequence[float]] = None,
              origin: Optional[Sequence[float]] = None,
              ) -> Grid:
    """Convenience constructor with unit spacing and zero origin defaults."""
    dim = len(size)
    if spacing is None:
        spacing = (1.0,) * dim
    if origin is None:
        origin = (0.0,) * dim
    return Grid(size=tuple(size), spacing=tuple(spacing), origin=tuple(origin))
