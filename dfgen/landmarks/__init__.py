"""Landmark correspondence handling."""

from dfgen.landmarks.correspondence import (
    CorrespondenceSet,
    round_half_away_from_zero,
    indices_to_physical,
    resolve_point_set,
    load_correspondences,
)

__all__ = [
    'CorrespondenceSet',
    'round_half_away_from_zero',
    'indices_to_physical',
    'resolve_point_set',
    'load_correspondences',
]
