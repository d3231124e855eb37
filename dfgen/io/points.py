"""
Landmark point file I/O.

Text format::

    index            <- or 'point'; optional, defaults to indices
    3                <- number of points
    10 20 30
    11.5 22 31
    12 24 33

Points tagged 'index' are grid indices of a reference image, points tagged
'point' are physical coordinates.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from dfgen.core.errors import IOFailure, MalformedInput


@dataclass(frozen=True)
class PointSet:
    """An ordered list of D-dimensional points read from a file."""
    points: np.ndarray
    are_indices: bool
    path: Optional[str] = None

    @property
    def dimension(self) -> int:
        return self.points.shape[1]

    def __len__(self) -> int:
        return len(self.points)


def read_points(path: str, dimension: Optional[int] = None) -> PointSet:
    """
    Read a landmark point file.

    Args:
        path: Path to the point file
        dimension: Expected dimensionality (checked when given)

    Returns:
        PointSet with an (N, D) float64 array

    Raises:
        MalformedInput: File missing, unreadable or inconsistent
    """
    path = Path(path)

    try:
        with open(path, 'r') as f:
            lines = [line.split() for line in f]
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedInput(f"Error while opening input point file {path}: {e}") from e

    tokens = [line for line in lines if line]
    if not tokens:
        raise MalformedInput(f"Input point file {path} is empty")

    header = tokens[0][0].lower()
    if header in ('index', 'point'):
        are_indices = header == 'index'
        rest = tokens[0][1:]
        tokens = ([rest] if rest else []) + tokens[1:]
    else:
        are_indices = True

    if not tokens or len(tokens[0]) != 1:
        raise MalformedInput(f"Input point file {path} does not declare the number of points")

    try:
        declared = int(tokens[0][0])
        rows = [[float(v) for v in row] for row in tokens[1:]]
    except ValueError as e:
        raise MalformedInput(f"Input point file {path} contains a non-numeric value: {e}") from e

    if declared < 0:
        raise MalformedInput(f"Input point file {path} declares {declared} points")
    if declared != len(rows):
        raise MalformedInput(
            f"Input point file {path} declares {declared} points but contains {len(rows)}"
        )

    widths = {len(row) for row in rows}
    if len(widths) > 1:
        raise MalformedInput(f"Points in {path} do not all have the same dimensionality: {sorted(widths)}")

    width = widths.pop() if widths else (dimension or 0)
    if dimension is not None and width != dimension:
        raise MalformedInput(f"Points in {path} are {width}D, expected {dimension}D")

    points = np.array(rows, dtype=np.float64).reshape(len(rows), width)
    if not np.all(np.isfinite(points)):
        raise MalformedInput(f"Input point file {path} contains non-finite coordinates")

    return PointSet(points=points, are_indices=are_indices, path=str(path))


def write_points(path: str, points: np.ndarray, are_indices: bool = False) -> None:
    """
    Write a landmark point file.

    Args:
        path: Output path
        points: (N, D) points
        are_indices: Tag the points as grid indices instead of physical points
    """
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    path = Path(path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            f.write('index\n' if are_indices else 'point\n')
            f.write(f"{len(points)}\n")
            for row in points:
                f.write(' '.join(repr(float(v)) for v in row) + '\n')
    except OSError as e:
        raise IOFailure(f"Could not write point file {path}: {e}") from e
